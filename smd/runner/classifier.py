"""
Completion classifier.

Decides what a finished worker's story becomes: completed, failed, or
back to pending. The worker itself is opaque, so the verdict is taken from
the state document and the worker's log.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from smd.lib.constants import (
    DEFAULT_FAILURE_KEYWORDS,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
)
from smd.prd.models import Story
from smd.prd.store import StateStore, StateStoreError, set_story_status
from smd.runner.pool import WorkerPool, WorkerSlot
from smd.runner.supervisor import Supervisor, WorkerOutcome

logger = logging.getLogger(__name__)


@dataclass
class Classification:
    status: str
    reason: str


class OutcomeClassifier(ABC):
    """Strategy for turning a worker outcome into a story status."""

    @abstractmethod
    def classify(self, story: Story, outcome: WorkerOutcome) -> Classification:
        ...


class KeywordClassifier(OutcomeClassifier):
    """Default strategy, first match wins:

    1. the story's own completion flag is set -> completed
    2. the log mentions a failure keyword (case-insensitive) -> failed
    3. anything else -> pending, to be offered again on the next scan
    """

    def __init__(self, keywords=DEFAULT_FAILURE_KEYWORDS):
        self.keywords = tuple(k.lower() for k in keywords if k)

    def classify(self, story: Story, outcome: WorkerOutcome) -> Classification:
        if story.is_complete:
            return Classification(STATUS_COMPLETED, "story marked complete")

        log = outcome.log.lower()
        for keyword in self.keywords:
            if keyword in log:
                return Classification(STATUS_FAILED, f"log contains '{keyword}'")

        if outcome.exit_code:
            reason = f"exited with code {outcome.exit_code} without completing"
        else:
            reason = "exited without completing"
        return Classification(STATUS_PENDING, reason)


def finish_slot(
    store: StateStore,
    supervisor: Supervisor,
    pool: WorkerPool,
    slot: WorkerSlot,
    classifier: OutcomeClassifier,
) -> tuple[Classification, WorkerOutcome]:
    """Classify a finished slot, record the verdict, and free the slot.

    Only the slot's own story is written. The sentinel is consumed and the
    slot released even if the state document cannot be updated.
    """
    handle = slot.handle
    outcome = supervisor.outcome(handle)
    try:
        doc = store.load()
        story = doc.get(slot.story_id)
        if story is None:
            raise StateStoreError(f"Story '{slot.story_id}' disappeared from {store.path}")

        verdict = classifier.classify(story, outcome)
        # A worker may have rewritten its own status; the scheduler still owns the outcome
        force = story.status != STATUS_IN_PROGRESS
        if force and story.status != verdict.status:
            logger.warning(
                f"{story.id}: worker left status '{story.status}', overriding with '{verdict.status}'"
            )
        set_story_status(store, story.id, verdict.status, force=force)
        logger.info(f"Worker {slot.slot_id}: {story.id} -> {verdict.status} ({verdict.reason})")
    finally:
        supervisor.cleanup(handle)
        pool.release(slot.slot_id)
    return verdict, outcome
