"""
Scheduler loop.

Drives stories to completion through a bounded pool of workers:

    scan -> dispatch ready stories -> wait for a worker -> classify -> repeat

until every story is complete, nothing can run, the iteration cap is hit,
or a shutdown is requested. Whatever the exit path, running workers are
stopped and in_progress stories go back to pending, so the state document
always ends up reading "no run active".
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from rich.console import Console
from rich.markup import escape

from smd.lib.config import RunConfig
from smd.lib.constants import (
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_OK,
    LOG_ARCHIVE_DIRNAME,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
)
from smd.prd.models import Document
from smd.prd.store import StateStore, reset_in_progress
from smd.runner import resolver
from smd.runner.classifier import KeywordClassifier, OutcomeClassifier, finish_slot
from smd.runner.pool import WorkerPool, WorkerSlot
from smd.runner.resolver import BlockedStory
from smd.runner.supervisor import Supervisor

logger = logging.getLogger(__name__)


class RunOutcome(Enum):
    ALL_DONE = "all_done"
    EXHAUSTED = "exhausted"
    STALLED = "stalled"
    INTERRUPTED = "interrupted"

    @property
    def exit_code(self) -> int:
        if self is RunOutcome.ALL_DONE:
            return EXIT_OK
        if self is RunOutcome.INTERRUPTED:
            return EXIT_INTERRUPTED
        return EXIT_FAILURE


@dataclass
class SchedulerResult:
    """How a run ended."""
    outcome: RunOutcome
    iterations: int
    completed: int
    total: int
    failed: list[str] = field(default_factory=list)
    blocked: list[BlockedStory] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code


STATUS_ICONS = {
    STATUS_COMPLETED: "[green]✔[/green]",
    STATUS_IN_PROGRESS: "[yellow]⏳[/yellow]",
    STATUS_FAILED: "[red]✗[/red]",
}

VERDICT_STYLES = {
    STATUS_COMPLETED: ("[green]✓[/green]", "completed"),
    STATUS_FAILED: ("[red]✗[/red]", "failed"),
}


class Scheduler:
    """One run over one state document.

    The pool belongs to the instance, so two schedulers in one process
    never share slots.
    """

    def __init__(
        self,
        store: StateStore,
        supervisor: Supervisor,
        config: RunConfig,
        classifier: Optional[OutcomeClassifier] = None,
        console: Optional[Console] = None,
        shutdown: Optional[threading.Event] = None,
    ):
        self.store = store
        self.supervisor = supervisor
        self.config = config
        self.classifier = classifier or KeywordClassifier(config.failure_keywords)
        self.console = console or Console()
        self.shutdown = shutdown or threading.Event()
        self.pool = WorkerPool(config.max_workers)
        self.iteration = 0
        self.campaign_complete = False

    # --- lifecycle -------------------------------------------------------

    def run(self) -> SchedulerResult:
        """Run until a terminal outcome. Always leaves no worker running."""
        try:
            result = self._run()
        finally:
            self.stop_all()
        self._report(result)
        return result

    def recover(self) -> list[str]:
        """Reset stories a crashed run left in_progress.

        Only safe while holding the run lock: no other scheduler can own
        them.
        """
        reset_ids = reset_in_progress(self.store)
        if reset_ids:
            logger.warning(f"Recovered {len(reset_ids)} stale in_progress stories: {', '.join(reset_ids)}")
            self.console.print(
                f"[yellow]Reset {len(reset_ids)} stories left in progress by an earlier run[/yellow]"
            )
        return reset_ids

    def stop_all(self) -> None:
        """Stop every worker, clear sentinels, reset in_progress stories. Idempotent."""
        for slot in list(self.pool):
            self.console.print(f"   Stopping Worker {slot.slot_id} ({escape(slot.story_id)})")
            try:
                self.supervisor.stop(slot.handle)
            finally:
                self.supervisor.cleanup(slot.handle)
                self.pool.release(slot.slot_id)
        reset_ids = reset_in_progress(self.store)
        if reset_ids:
            logger.info(f"Returned to pending: {', '.join(reset_ids)}")

    # --- loop ------------------------------------------------------------

    def _run(self) -> SchedulerResult:
        self.recover()
        self.console.print(
            f"[bold]Starting Simply Done[/bold] (max {self.pool.capacity} workers, "
            f"{self.config.max_iterations} iterations)"
        )

        while self.iteration < self.config.max_iterations:
            if self.shutdown.is_set():
                return self._result(RunOutcome.INTERRUPTED)

            doc = self.store.load()
            if doc.all_complete:
                return self._result(RunOutcome.ALL_DONE, doc)
            if self.campaign_complete and self.pool.is_empty:
                return self._result(RunOutcome.ALL_DONE, doc)

            self._print_header(doc)
            if not self.campaign_complete:
                self._dispatch(doc)

            if self.pool.is_empty:
                return self._result(RunOutcome.STALLED, self.store.load())

            if not self._wait():
                return self._result(RunOutcome.INTERRUPTED)
            self.iteration += 1

        doc = self.store.load()
        if doc.all_complete or (self.campaign_complete and self.pool.is_empty):
            return self._result(RunOutcome.ALL_DONE, doc)
        return self._result(RunOutcome.EXHAUSTED, doc)

    def _dispatch(self, doc: Document) -> list[str]:
        """Fill free slots with ready stories, in document order."""
        started = []
        for story_id in resolver.ready(doc):
            if self.pool.free_count <= 0:
                break
            if self.pool.slot_for(story_id) is not None:
                continue
            slot_id = self.pool.next_free_slot()
            story = doc.get(story_id)
            self.console.print(
                f"   [yellow]→[/yellow] Starting Worker {slot_id}: [bold]{escape(story_id)}[/bold] - {escape(story.title)}"
            )
            handle = self.supervisor.start(story, slot_id)
            self.pool.occupy(slot_id, story_id, handle)
            started.append(story_id)
        return started

    def _wait(self) -> bool:
        """Block until at least one worker is done and classify all done ones.

        Returns False if shutdown was requested while waiting.
        """
        with self.console.status(self._running_line()) as status:
            while True:
                done = [slot for slot in self.pool if self.supervisor.is_done(slot.handle)]
                if done:
                    break
                if self.shutdown.wait(self.config.poll_interval):
                    return False
                status.update(self._running_line())

        for slot in done:
            self._finish(slot)
        return True

    def _finish(self, slot: WorkerSlot) -> None:
        elapsed = slot.elapsed_label()
        verdict, outcome = finish_slot(self.store, self.supervisor, self.pool, slot, self.classifier)
        if outcome.campaign_complete and not self.campaign_complete:
            self.campaign_complete = True
            logger.info(f"Worker {slot.slot_id} reported the campaign complete")
            self.console.print("   [green]Completion marker seen, draining active workers[/green]")

        icon, label = VERDICT_STYLES.get(verdict.status, ("[yellow]↺[/yellow]", "needs retry"))
        self.console.print(
            f"   {icon} Worker {slot.slot_id}: [bold]{escape(slot.story_id)}[/bold] {label} ({elapsed})"
        )

    # --- output ----------------------------------------------------------

    def _running_line(self) -> str:
        return f"[dim]Waiting for workers... {escape(self.pool.status_line())}[/dim]"

    def _print_header(self, doc: Document) -> None:
        self.console.print()
        self.console.rule(
            f"Iteration {self.iteration + 1} of {self.config.max_iterations} | "
            f"Progress: [green]{doc.completed_count}[/green]/{doc.total}",
            style="cyan",
        )
        for story in doc.stories:
            icon = STATUS_ICONS.get(story.status, "⬜")
            self.console.print(f"  {icon} [dim]{escape(story.id)}[/dim] {escape(story.title)}")

        queued = len(resolver.ready(doc))
        self.console.print(f"  [dim]Running: {len(self.pool)} workers | Queued: {queued}[/dim]")

    def _result(self, outcome: RunOutcome, doc: Optional[Document] = None) -> SchedulerResult:
        if doc is None:
            doc = self.store.load()
        result = SchedulerResult(
            outcome=outcome,
            iterations=self.iteration,
            completed=doc.completed_count,
            total=doc.total,
        )
        if outcome in (RunOutcome.STALLED, RunOutcome.EXHAUSTED):
            result.failed = [s.id for s in doc.stories if s.status == STATUS_FAILED]
            result.blocked = resolver.blocked(doc)
        return result

    def _report(self, result: SchedulerResult) -> None:
        self.console.print()
        if result.outcome is RunOutcome.ALL_DONE:
            self.console.print("[green]All tasks completed![/green]")
        elif result.outcome is RunOutcome.INTERRUPTED:
            self.console.print("[yellow]Workers stopped. Run smd again to resume.[/yellow]")
        elif result.outcome is RunOutcome.STALLED:
            if self.pool.capacity == 0:
                self.console.print("[red]No worker slots configured (MAX_PARALLEL_WORKERS=0).[/red]")
            if result.failed:
                self.console.print(
                    f"[red]Warning: {len(result.failed)} stories failed: {escape(', '.join(result.failed))}[/red]"
                )
            if result.blocked:
                self.console.print(
                    f"[red]Warning: {len(result.blocked)} stories pending but none ready. "
                    f"Check dependencies.[/red]"
                )
                for entry in result.blocked:
                    reasons = []
                    if entry.unmet:
                        reasons.append(f"waiting on {escape(', '.join(entry.unmet))}")
                    if entry.unknown:
                        reasons.append(f"unknown {escape(', '.join(entry.unknown))}")
                    self.console.print(f"   [dim]{escape(entry.story_id)}: {'; '.join(reasons)}[/dim]")
            self.console.print("[red]No stories can be started. Check for dependency issues or failures.[/red]")
        else:
            self.console.print(
                f"[red]Reached max iterations ({self.config.max_iterations}) without completing all tasks.[/red]"
            )

        self.console.print(f"[dim]Progress: {result.completed}/{result.total} completed[/dim]")
        self.console.print(f"[dim]Progress file: {escape(str(self.config.progress_file))}[/dim]")
        self.console.print(f"[dim]Worker logs: {escape(str(self.config.smd_dir))}/.smd-worker-*.log[/dim]")
        self.console.print(f"[dim]Logs of every attempt: {escape(str(self.config.smd_dir / LOG_ARCHIVE_DIRNAME))}/[/dim]")
