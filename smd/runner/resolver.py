"""
Dependency resolver.

Pure functions over a loaded Document. Ready stories come back in
document order; the priority field some documents carry is for display
only.
"""

from dataclasses import dataclass, field

from smd.prd.models import Document, Story


@dataclass
class BlockedStory:
    """A pending story that cannot start yet."""
    story_id: str
    unmet: list[str] = field(default_factory=list)    # Known deps not yet completed
    unknown: list[str] = field(default_factory=list)  # Deps naming no story at all


def _dependency_complete(doc: Document, dep_id: str) -> bool:
    dep = doc.get(dep_id)
    return dep is not None and dep.is_complete


def is_ready(doc: Document, story: Story) -> bool:
    """A story is ready when it is pending and every dependency is complete.

    Unknown dependency ids never resolve, so such a story never becomes
    ready.
    """
    if not story.is_pending:
        return False
    return all(_dependency_complete(doc, dep_id) for dep_id in story.dependencies)


def ready(doc: Document) -> list[str]:
    """Ids of stories eligible to start now, in document order."""
    return [s.id for s in doc.stories if is_ready(doc, s)]


def blocked(doc: Document) -> list[BlockedStory]:
    """Pending stories held back by dependencies, with the reasons."""
    result = []
    for story in doc.stories:
        if not story.is_pending or is_ready(doc, story):
            continue
        entry = BlockedStory(story_id=story.id)
        for dep_id in story.dependencies:
            dep = doc.get(dep_id)
            if dep is None:
                entry.unknown.append(dep_id)
            elif not dep.is_complete:
                entry.unmet.append(dep_id)
        result.append(entry)
    return result
