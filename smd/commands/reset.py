"""
smd reset - Return stories to pending.

The operator's path out of a failed story: failed stories are never
retried automatically.
"""

from smd.lib.config import RunConfig
from smd.lib.constants import STATUS_FAILED, STATUS_PENDING
from smd.prd.models import Document
from smd.prd.store import StateStore, StateStoreError
from smd.runner.locking import is_locked
from smd.workflow.fsm import transition


def select_stories(doc: Document, ids: list[str], failed: bool, all_stories: bool) -> tuple[list[str], list[str]]:
    """Pick the stories to reset. Returns (selected ids, unknown ids)."""
    if all_stories:
        return [s.id for s in doc.stories if s.status != STATUS_PENDING], []

    selected = []
    unknown = []
    for story_id in ids:
        if doc.get(story_id) is None:
            unknown.append(story_id)
        elif story_id not in selected:
            selected.append(story_id)
    if failed:
        for story in doc.stories:
            if story.status == STATUS_FAILED and story.id not in selected:
                selected.append(story.id)
    return selected, unknown


def cmd_reset(args, config: RunConfig) -> int:
    """Reset the given stories (or all failed / all stories) to pending."""
    ids = list(getattr(args, "ids", None) or [])
    failed = getattr(args, "failed", False)
    all_stories = getattr(args, "all", False)

    if not ids and not failed and not all_stories:
        print("ERROR: Nothing to reset. Give story IDs, --failed, or --all")
        return 1

    if is_locked(config.smd_dir):
        print("ERROR: A run is active. Stop it before resetting stories.")
        return 1

    store = StateStore(config.prd_file)
    if not store.exists():
        print(f"ERROR: No state document at {config.prd_file}")
        return 1

    reset_ids: list[str] = []
    unknown: list[str] = []

    def apply(doc: Document) -> None:
        selected, missing = select_stories(doc, ids, failed, all_stories)
        unknown.extend(missing)
        for story_id in selected:
            story = doc.get(story_id)
            if transition(story, STATUS_PENDING, force=True):
                story.passes = False
                reset_ids.append(story_id)

    try:
        store.mutate(apply)
    except StateStoreError as e:
        print(f"ERROR: {e}")
        return 1

    for story_id in unknown:
        print(f"WARNING: Story '{story_id}' not found")
    if reset_ids:
        print(f"Reset {len(reset_ids)} story(ies) to pending: {', '.join(reset_ids)}")
    else:
        print("Nothing to reset")
    return 1 if unknown and not reset_ids else 0
