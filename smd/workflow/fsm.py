"""Story status state machine using the transitions library.

Every status write the scheduler makes goes through here, so an illegal
move (say, completed -> in_progress) is caught before it reaches disk.

Usage:
    from smd.workflow.fsm import transition

    transition(story, "in_progress")        # pending -> in_progress
    transition(story, "pending", force=True) # operator reset
"""

import logging
from typing import Callable

from transitions import Machine, MachineError

from smd.lib.constants import STORY_STATUSES
from smd.prd.models import Story

logger = logging.getLogger(__name__)


STATES = list(STORY_STATUSES)

TRANSITIONS = [
    # Scheduler dispatches a ready story
    {"trigger": "dispatch", "source": "pending", "dest": "in_progress"},

    # Worker outcome, decided by the completion classifier
    {"trigger": "succeed", "source": "in_progress", "dest": "completed"},
    {"trigger": "fail", "source": "in_progress", "dest": "failed"},
    {"trigger": "requeue", "source": "in_progress", "dest": "pending"},

    # Operator intervention
    {"trigger": "retry", "source": "failed", "dest": "pending"},
    {"trigger": "reopen", "source": "completed", "dest": "pending"},
]


def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        lookup.setdefault((t["source"], t["dest"]), t["trigger"])
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


class InvalidTransition(Exception):
    """Raised when attempting an invalid story status transition."""

    def __init__(self, from_state: str, to_state: str, story_id: str = ""):
        self.from_state = from_state
        self.to_state = to_state
        self.story_id = story_id
        super().__init__(
            f"Invalid transition: {from_state} -> {to_state}"
            + (f" (story: {story_id})" if story_id else "")
        )


class StoryFSM:
    """State machine bound to one Story.

    The story's status is written back after every transition.
    """

    def __init__(self, story: Story, on_transition: Callable[[str, str, str], None] | None = None):
        self.story = story
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=story.status,
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        self.story.status = to_state
        logger.debug(f"[FSM] {self.story.id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def can(self, trigger: str) -> bool:
        return trigger in self.machine.get_triggers(self.state)


def transition(story: Story, to_state: str, force: bool = False) -> bool:
    """Move a story to a new status with validation.

    Returns True if the status changed, False for a self-transition.

    Raises:
        InvalidTransition: If the move is not allowed
    """
    if to_state not in STATES:
        raise InvalidTransition(story.status, to_state, story.id)

    current = story.status
    if current == to_state:
        return False

    if force:
        logger.info(f"[STATE] {story.id}: {current} -> {to_state} (forced)")
        story.status = to_state
        return True

    trigger = TRIGGER_FOR.get((current, to_state))
    if trigger is None:
        raise InvalidTransition(current, to_state, story.id)

    fsm = StoryFSM(story)
    try:
        getattr(fsm, trigger)()
    except MachineError as e:
        raise InvalidTransition(current, to_state, story.id) from e
    return True


def can_transition(story: Story, to_state: str) -> bool:
    """Check whether a story may move to to_state without force."""
    if story.status == to_state:
        return True
    return (story.status, to_state) in TRIGGER_FOR
