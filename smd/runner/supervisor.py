"""
Worker supervisor.

Launches one external agent process per active story and reports when it
has finished. The agent is opaque: the supervisor only knows its log, its
exit, and the sentinel file the exit wrapper leaves behind.
"""

import logging
import os
import re
import shutil
import signal
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from smd.lib.agents_config import AgentsConfig, get_stage_command
from smd.lib.constants import (
    ARCHIVED_LOG_PATTERN,
    COMPLETION_MARKER,
    LOG_ARCHIVE_DIRNAME,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    WORKER_DONE_PATTERN,
    WORKER_LOG_PATTERN,
    WORKER_PROMPT_PATTERN,
)
from smd.lib.prompts import build_worker_prompt
from smd.prd.models import Story
from smd.prd.store import StateStore, set_story_status

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.-]")


@dataclass
class WorkerOutcome:
    """What a finished worker left behind."""
    log: str
    process_exit_observed: bool
    exit_code: Optional[int] = None

    @property
    def campaign_complete(self) -> bool:
        """The agent declared the whole run finished."""
        return COMPLETION_MARKER in self.log


@dataclass
class SlotHandle:
    """A launched worker."""
    slot_id: int
    story_id: str
    log_path: Path
    sentinel_path: Path
    process: Optional[subprocess.Popen] = None


def read_log(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return ""
    except OSError as e:
        logger.warning(f"Failed to read worker log {path}: {e}")
        return ""


class Supervisor(ABC):
    """Starts workers and reports their completion.

    start() marks the story in_progress before anything is launched, so a
    scheduler scanning the same document cannot dispatch it twice.
    """

    def __init__(self, store: StateStore, work_dir: Path):
        self.store = store
        self.work_dir = work_dir

    def log_path(self, slot_id: int) -> Path:
        return self.work_dir / WORKER_LOG_PATTERN.format(slot=slot_id)

    def sentinel_path(self, slot_id: int) -> Path:
        return self.work_dir / WORKER_DONE_PATTERN.format(slot=slot_id)

    def start(self, story: Story, slot_id: int) -> SlotHandle:
        """Mark the story in_progress, then launch its worker. Does not block."""
        handle = SlotHandle(
            slot_id=slot_id,
            story_id=story.id,
            log_path=self.log_path(slot_id),
            sentinel_path=self.sentinel_path(slot_id),
        )
        # A stale sentinel from an earlier run would read as instant completion
        handle.sentinel_path.unlink(missing_ok=True)

        set_story_status(self.store, story.id, STATUS_IN_PROGRESS)
        try:
            self._launch(story, handle)
        except Exception:
            logger.exception(f"Failed to launch worker for {story.id}, returning it to pending")
            set_story_status(self.store, story.id, STATUS_PENDING)
            raise
        return handle

    @abstractmethod
    def _launch(self, story: Story, handle: SlotHandle) -> None:
        """Start the worker process for handle."""

    @abstractmethod
    def is_done(self, handle: SlotHandle) -> bool:
        """Non-blocking completion check."""

    @abstractmethod
    def outcome(self, handle: SlotHandle) -> WorkerOutcome:
        """Collect the finished worker's log and exit status."""

    @abstractmethod
    def stop(self, handle: SlotHandle) -> None:
        """Terminate a running worker."""

    def archive_log(self, handle: SlotHandle) -> Optional[Path]:
        """Copy the attempt's log to logs/<story>.<n>.log, n counting up from 1.

        The slot log itself is truncated by the next launch in that slot.
        """
        if not handle.log_path.exists():
            return None
        archive_dir = self.work_dir / LOG_ARCHIVE_DIRNAME
        archive_dir.mkdir(parents=True, exist_ok=True)
        story = _UNSAFE_FILENAME_CHARS.sub("_", handle.story_id)
        attempt = 1
        while (archive_dir / ARCHIVED_LOG_PATTERN.format(story=story, attempt=attempt)).exists():
            attempt += 1
        target = archive_dir / ARCHIVED_LOG_PATTERN.format(story=story, attempt=attempt)
        try:
            shutil.copyfile(handle.log_path, target)
        except OSError as e:
            logger.warning(f"Failed to archive {handle.log_path}: {e}")
            return None
        return target

    def cleanup(self, handle: SlotHandle) -> None:
        """Archive the log and consume the sentinel. Logs are never deleted."""
        self.archive_log(handle)
        handle.sentinel_path.unlink(missing_ok=True)


class ProcessSupervisor(Supervisor):
    """Runs each worker as a subprocess in its own process group."""

    def __init__(
        self,
        store: StateStore,
        work_dir: Path,
        agents: AgentsConfig,
        base_instructions: str,
        stop_timeout: float = 10.0,
        cwd: Optional[Path] = None,
    ):
        super().__init__(store, work_dir)
        self.agents = agents
        self.base_instructions = base_instructions
        self.stop_timeout = stop_timeout
        self.cwd = cwd

    def _launch(self, story: Story, handle: SlotHandle) -> None:
        prompt = build_worker_prompt(self.base_instructions, handle.slot_id, story.id, story.title)
        stage = get_stage_command(self.agents, "worker", {
            "prompt": prompt,
            "story_id": story.id,
            "slot_id": str(handle.slot_id),
        })

        wrapper = [sys.executable, "-m", "smd.runner.wrapper", "--sentinel", str(handle.sentinel_path)]
        if stage.prompt_via_stdin:
            prompt_path = self.work_dir / WORKER_PROMPT_PATTERN.format(slot=handle.slot_id)
            prompt_path.write_text(prompt)
            wrapper += ["--stdin-file", str(prompt_path)]
        cmd = wrapper + ["--"] + stage.cmd

        # Remove ANTHROPIC_API_KEY so the agent uses its OAuth credentials
        env = {k: v for k, v in os.environ.items() if k != "ANTHROPIC_API_KEY"}
        env["SMD_STORY_ID"] = story.id
        env["SMD_WORKER_ID"] = str(handle.slot_id)

        with open(handle.log_path, "wb") as log:
            handle.process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                cwd=str(self.cwd) if self.cwd else None,
                env=env,
                start_new_session=True,
            )
        logger.debug(f"Worker {handle.slot_id} started for {story.id} (pid {handle.process.pid})")

    def is_done(self, handle: SlotHandle) -> bool:
        if handle.sentinel_path.exists():
            return True
        return handle.process is None or handle.process.poll() is not None

    def outcome(self, handle: SlotHandle) -> WorkerOutcome:
        exit_code = None
        if handle.process is not None:
            try:
                # The sentinel can land a moment before the wrapper exits
                exit_code = handle.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                logger.warning(f"Worker {handle.slot_id} left its sentinel but is still running")
        return WorkerOutcome(
            log=read_log(handle.log_path),
            process_exit_observed=exit_code is not None,
            exit_code=exit_code,
        )

    def stop(self, handle: SlotHandle) -> None:
        proc = handle.process
        if proc is None or proc.poll() is not None:
            return
        try:
            os.killpg(proc.pid, signal.SIGTERM)
        except ProcessLookupError:
            return
        try:
            proc.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f"Worker {handle.slot_id} ignored SIGTERM, killing")
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            proc.wait()
