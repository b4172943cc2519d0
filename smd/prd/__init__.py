"""
State document handling for smd.

Typed models for smd-prd.json and the crash-safe store that reads and
writes it.
"""

from smd.prd.models import Document, Story, normalize_status
from smd.prd.store import (
    Snapshot,
    SnapshotDiff,
    StateStore,
    StateStoreError,
    reset_in_progress,
    set_story_status,
)

__all__ = [
    "Document",
    "Story",
    "normalize_status",
    "Snapshot",
    "SnapshotDiff",
    "StateStore",
    "StateStoreError",
    "reset_in_progress",
    "set_story_status",
]
