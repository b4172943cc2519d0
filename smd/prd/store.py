"""
State store for the smd state document (smd-prd.json).

The document is the single source of truth for story status. Every write
is a full read-modify-replace cycle: the new content goes to a temporary
file in the same directory and is then renamed over the document, so a
reader never sees a half-written file.

Writes are not serialized between processes. Workers edit their own
story's fields, the scheduler edits the story it owns, and the last full
write wins.
"""

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Mapping

from smd.lib.constants import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
)
from smd.lib.validate import ValidationError, validate, validate_before_write
from smd.prd.models import Document

logger = logging.getLogger(__name__)

SCHEMA_NAME = "prd"
READ_ATTEMPTS = 5
READ_RETRY_DELAY = 0.2


class StateStoreError(Exception):
    """The state document is missing, unreadable, or invalid."""
    pass


@dataclass(frozen=True)
class Snapshot:
    """Opaque point-in-time view of story statuses (id -> status)."""
    statuses: Mapping[str, str]


@dataclass
class SnapshotDiff:
    """Status changes between a snapshot and the current document."""
    completed: int = 0
    failed: int = 0
    started: int = 0
    reverted: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.completed or self.failed or self.started or self.reverted)


def _atomic_write_text(path: Path, content: str) -> None:
    """Write content to a sibling temp file, fsync, then os.replace over path."""
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class StateStore:
    """File-backed store for the state document."""

    def __init__(self, path: Path):
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def create_empty(self) -> Document:
        """Write an empty document for the conversion tool to populate."""
        doc = Document()
        self._write(doc)
        return doc

    def _read_raw(self) -> dict:
        """Read and parse the document, retrying while a writer is mid-flight.

        Workers write the file directly, not always atomically, so a short
        run of parse failures is expected and tolerated.
        """
        if not self.path.exists():
            raise StateStoreError(f"State document not found: {self.path}")

        last_error = None
        for attempt in range(READ_ATTEMPTS):
            try:
                text = self.path.read_text(encoding="utf-8")
                if text.strip():
                    return json.loads(text)
                last_error = "file is empty"
            except json.JSONDecodeError as e:
                last_error = str(e)
            except OSError as e:
                raise StateStoreError(f"Cannot read {self.path}: {e}") from e
            logger.debug(f"Unreadable state document (attempt {attempt + 1}): {last_error}")
            time.sleep(READ_RETRY_DELAY)

        raise StateStoreError(f"Invalid JSON in {self.path}: {last_error}")

    def load(self) -> Document:
        """Load, validate and normalize the document."""
        data = self._read_raw()
        try:
            validate(data, SCHEMA_NAME)
        except ValidationError as e:
            raise StateStoreError(f"{self.path}: {e}") from None
        return Document.from_dict(data)

    def _write(self, doc: Document) -> None:
        data = doc.to_dict()
        try:
            validate_before_write(data, SCHEMA_NAME, self.path)
        except ValidationError as e:
            raise StateStoreError(str(e)) from None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write_text(self.path, json.dumps(data, indent=2) + "\n")

    def mutate(self, fn: Callable[[Document], Document | None]) -> Document:
        """Apply fn to a freshly loaded document and persist the result.

        fn may modify the document in place and return None.
        """
        doc = self.load()
        result = fn(doc)
        if result is not None:
            doc = result
        self._write(doc)
        return doc

    def snapshot(self) -> Snapshot:
        doc = self.load()
        return Snapshot(MappingProxyType({s.id: s.status for s in doc.stories}))

    def diff(self, snapshot: Snapshot) -> SnapshotDiff:
        """Count status changes since snapshot was taken."""
        doc = self.load()
        result = SnapshotDiff()
        for story in doc.stories:
            before = snapshot.statuses.get(story.id)
            if before == story.status:
                continue
            if story.status == STATUS_COMPLETED:
                result.completed += 1
            elif story.status == STATUS_FAILED:
                result.failed += 1
            elif story.status == STATUS_IN_PROGRESS:
                result.started += 1
            elif story.status == STATUS_PENDING and before is not None:
                result.reverted += 1
        return result


def set_story_status(store: StateStore, story_id: str, status: str, force: bool = False) -> Document:
    """Move exactly one story to status, validated by the story FSM.

    Completing a story also sets its legacy passes flag.

    Raises:
        StateStoreError: if the story does not exist
        InvalidTransition: if the move is not allowed
    """
    from smd.workflow.fsm import transition

    def apply(doc: Document) -> None:
        story = doc.get(story_id)
        if story is None:
            raise StateStoreError(f"Story '{story_id}' not found in {store.path}")
        transition(story, status, force=force)
        if status == STATUS_COMPLETED:
            story.passes = True
        elif force and status == STATUS_PENDING:
            story.passes = False

    return store.mutate(apply)


def reset_in_progress(store: StateStore) -> list[str]:
    """Return every in_progress story to pending. Returns the reset ids."""
    from smd.workflow.fsm import transition

    reset_ids: list[str] = []

    def apply(doc: Document) -> None:
        for story in doc.stories:
            if story.is_running:
                transition(story, STATUS_PENDING)
                reset_ids.append(story.id)

    if store.exists() and store.load().count(STATUS_IN_PROGRESS):
        store.mutate(apply)
    return reset_ids
