"""
Worker pool bookkeeping.

A fixed number of numbered slots, each bound to at most one running
story. The pool is owned by a Scheduler instance; nothing here is
process-global.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional


@dataclass
class WorkerSlot:
    """A slot occupied by one story's worker."""
    slot_id: int
    story_id: str
    handle: Any                                   # Supervisor-specific handle
    started_at: float = field(default_factory=time.time)

    @property
    def elapsed(self) -> float:
        return time.time() - self.started_at

    def elapsed_label(self) -> str:
        """Elapsed time as 'XmYs'."""
        mins, secs = divmod(int(self.elapsed), 60)
        return f"{mins}m{secs}s"


class PoolFull(Exception):
    """No free slot is available."""
    pass


class WorkerPool:
    """Bounded set of slots numbered 1..capacity."""

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self.capacity = capacity
        self._slots: dict[int, WorkerSlot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def __iter__(self) -> Iterator[WorkerSlot]:
        return iter(sorted(self._slots.values(), key=lambda s: s.slot_id))

    @property
    def free_count(self) -> int:
        return self.capacity - len(self._slots)

    @property
    def is_empty(self) -> bool:
        return not self._slots

    def next_free_slot(self) -> Optional[int]:
        """Lowest unoccupied slot id, or None when full."""
        for slot_id in range(1, self.capacity + 1):
            if slot_id not in self._slots:
                return slot_id
        return None

    def occupy(self, slot_id: int, story_id: str, handle: Any) -> WorkerSlot:
        if slot_id < 1 or slot_id > self.capacity:
            raise ValueError(f"slot {slot_id} outside 1..{self.capacity}")
        if slot_id in self._slots:
            raise PoolFull(f"slot {slot_id} already runs {self._slots[slot_id].story_id}")
        if self.slot_for(story_id) is not None:
            raise ValueError(f"story {story_id} already has a slot")
        slot = WorkerSlot(slot_id=slot_id, story_id=story_id, handle=handle, started_at=time.time())
        self._slots[slot_id] = slot
        return slot

    def release(self, slot_id: int) -> Optional[WorkerSlot]:
        return self._slots.pop(slot_id, None)

    def slot_for(self, story_id: str) -> Optional[WorkerSlot]:
        for slot in self._slots.values():
            if slot.story_id == story_id:
                return slot
        return None

    def status_line(self) -> str:
        """Compact running summary, e.g. 'W1:US-001(0m42s) W2:US-003(1m5s)'."""
        return " ".join(f"W{s.slot_id}:{s.story_id}({s.elapsed_label()})" for s in self)
