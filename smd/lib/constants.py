"""Shared constants for smd."""

import re

# Files inside the smd directory
PRD_FILENAME = "smd-prd.json"
PROMPT_FILENAME = "smd-prompt.md"
PROGRESS_FILENAME = "smd-progress.txt"
ENV_FILENAME = "smd.env"
AGENTS_FILENAME = "agents.yaml"
LOCK_FILENAME = ".smd.lock"
TASKS_DIRNAME = "tasks"
TASK_GLOB = "smd-prd-*.md"

# Per-slot worker artifacts, formatted with the slot id
WORKER_LOG_PATTERN = ".smd-worker-{slot}.log"
WORKER_DONE_PATTERN = ".smd-worker-{slot}.done"
WORKER_PROMPT_PATTERN = ".smd-worker-{slot}.prompt"

# Every finished attempt's log is copied here before the slot is reused
LOG_ARCHIVE_DIRNAME = "logs"
ARCHIVED_LOG_PATTERN = "{story}.{attempt}.log"

# Story statuses
STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STORY_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_FAILED)

# Emitted by a worker when the whole campaign is finished
COMPLETION_MARKER = "<promise>COMPLETE</promise>"

DEFAULT_MAX_WORKERS = 5
DEFAULT_MAX_ITERATIONS = 20
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_FAILURE_KEYWORDS = ("error", "failed", "exception")

# Exit codes
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

DIGITS_PATTERN = re.compile(r'^[0-9]+$')
