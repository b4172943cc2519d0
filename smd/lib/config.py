"""
Configuration loader for smd.

Run settings come from an optional smd.env inside the smd directory.
Command-line options override file values.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from smd.lib import envparse
from smd.lib.constants import (
    DEFAULT_FAILURE_KEYWORDS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MAX_WORKERS,
    DEFAULT_POLL_INTERVAL,
    ENV_FILENAME,
    PRD_FILENAME,
    PROGRESS_FILENAME,
    PROMPT_FILENAME,
    TASKS_DIRNAME,
    TASK_GLOB,
)

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration is missing or invalid. Fatal before scheduling starts."""
    pass


@dataclass
class RunConfig:
    """Settings for one scheduler run."""
    smd_dir: Path
    max_workers: int = DEFAULT_MAX_WORKERS
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    stop_timeout: float = 10.0      # Grace period before SIGKILL on shutdown
    convert_timeout: int = 900      # PRD -> JSON conversion can be slow
    failure_keywords: tuple[str, ...] = field(default=DEFAULT_FAILURE_KEYWORDS)
    notifications: bool = True

    @property
    def prd_file(self) -> Path:
        return self.smd_dir / PRD_FILENAME

    @property
    def prompt_file(self) -> Path:
        return self.smd_dir / PROMPT_FILENAME

    @property
    def progress_file(self) -> Path:
        return self.smd_dir / PROGRESS_FILENAME

    @property
    def tasks_dir(self) -> Path:
        return self.smd_dir / TASKS_DIRNAME

    @property
    def repo_dir(self) -> Path:
        """Project root the agents work in: the parent of the smd directory."""
        return self.smd_dir.resolve().parent


def _positive_int(env: dict, key: str, default: int, minimum: int = 1) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got '{raw}'") from None
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _positive_float(env: dict, key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got '{raw}'") from None
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def _keywords(env: dict) -> tuple[str, ...]:
    raw = env.get("FAILURE_KEYWORDS")
    if raw is None:
        return DEFAULT_FAILURE_KEYWORDS
    keywords = tuple(k.strip().lower() for k in raw.split(",") if k.strip())
    if not keywords:
        logger.warning("FAILURE_KEYWORDS is empty; worker failures will never be detected from logs")
    return keywords


def load_run_config(smd_dir: Path) -> RunConfig:
    """Load smd.env from smd_dir and return RunConfig.

    A missing smd.env yields defaults.

    Raises:
        ConfigError: if the file is malformed or a value is out of range
    """
    env_path = smd_dir / ENV_FILENAME
    try:
        env = envparse.load_env(env_path, required=False)
    except ValueError as e:
        raise ConfigError(str(e)) from None

    notifications = env.get("NOTIFICATIONS", "true").lower()
    if notifications not in ("true", "false"):
        logger.warning(f"Unknown NOTIFICATIONS value '{notifications}', using 'true'")
        notifications = "true"

    return RunConfig(
        smd_dir=smd_dir,
        # Zero workers is allowed: the scheduler then reports a stall immediately
        max_workers=_positive_int(env, "MAX_PARALLEL_WORKERS", DEFAULT_MAX_WORKERS, minimum=0),
        max_iterations=_positive_int(env, "MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS),
        poll_interval=_positive_float(env, "POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
        stop_timeout=_positive_float(env, "STOP_TIMEOUT", 10.0),
        convert_timeout=_positive_int(env, "CONVERT_TIMEOUT", 900),
        failure_keywords=_keywords(env),
        notifications=notifications == "true",
    )


def resolve_prd_path(smd_dir: Path, prd: str) -> Path:
    """Resolve a requirements document path relative to the smd directory."""
    path = Path(prd).expanduser()
    if path.is_absolute():
        return path
    return smd_dir / path


def find_task_documents(smd_dir: Path) -> list[Path]:
    """List requirements documents in <smd_dir>/tasks, sorted by name."""
    tasks_dir = smd_dir / TASKS_DIRNAME
    if not tasks_dir.is_dir():
        return []
    return sorted(p for p in tasks_dir.glob(TASK_GLOB) if p.is_file())
