"""
Data models for the smd state document.

The document is shared with the conversion tool and the workers, so
unknown keys are carried through untouched in `extra`.
"""

from dataclasses import dataclass, field
from typing import Optional

from smd.lib.constants import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
)

_STORY_KEYS = ("id", "title", "description", "dependencies", "status", "passes", "notes")
_DOCUMENT_KEYS = ("description", "branchName", "userStories")


def normalize_status(status: Optional[str], passes: bool) -> str:
    """Reconcile the status field with the legacy passes flag.

    A missing status is derived from passes. A pending story whose worker
    already set passes is treated as completed.
    """
    if status is None or status == STATUS_PENDING:
        return STATUS_COMPLETED if passes else STATUS_PENDING
    return status


@dataclass
class Story:
    """One unit of schedulable work.

    title, description and notes are opaque to the scheduler. notes is
    written by workers only.
    """
    id: str
    title: str = ""
    description: str = ""
    dependencies: list[str] = field(default_factory=list)
    status: str = STATUS_PENDING
    passes: bool = False
    notes: str = ""
    extra: dict = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.status == STATUS_COMPLETED or self.passes

    @property
    def is_pending(self) -> bool:
        return self.status == STATUS_PENDING

    @property
    def is_running(self) -> bool:
        return self.status == STATUS_IN_PROGRESS

    @classmethod
    def from_dict(cls, data: dict) -> "Story":
        passes = bool(data.get("passes") or False)
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            description=data.get("description") or "",
            dependencies=list(data.get("dependencies") or []),
            status=normalize_status(data.get("status"), passes),
            passes=passes,
            notes=data.get("notes") or "",
            extra={k: v for k, v in data.items() if k not in _STORY_KEYS},
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
        }
        data.update(self.extra)
        data["dependencies"] = list(self.dependencies)
        data["status"] = self.status
        data["passes"] = self.passes or self.status == STATUS_COMPLETED
        data["notes"] = self.notes
        return data


@dataclass
class Document:
    """The state document: run metadata plus the ordered story list."""
    description: str = ""
    branch_name: str = ""
    stories: list[Story] = field(default_factory=list)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Document":
        return cls(
            description=data.get("description") or "",
            branch_name=data.get("branchName") or "",
            stories=[Story.from_dict(s) for s in data.get("userStories") or []],
            extra={k: v for k, v in data.items() if k not in _DOCUMENT_KEYS},
        )

    def to_dict(self) -> dict:
        data = {
            "description": self.description,
            "branchName": self.branch_name,
        }
        data.update(self.extra)
        data["userStories"] = [s.to_dict() for s in self.stories]
        return data

    def get(self, story_id: str) -> Optional[Story]:
        """Find a story by id (linear scan, first match)."""
        for story in self.stories:
            if story.id == story_id:
                return story
        return None

    @property
    def total(self) -> int:
        return len(self.stories)

    @property
    def completed_count(self) -> int:
        return sum(1 for s in self.stories if s.is_complete)

    def count(self, status: str) -> int:
        return sum(1 for s in self.stories if s.status == status)

    @property
    def all_complete(self) -> bool:
        return self.total > 0 and self.completed_count == self.total
