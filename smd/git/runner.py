"""Runs git in a working tree and captures what it said."""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 30


@dataclass
class GitResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return not self.timed_out and self.returncode == 0

    @property
    def output(self) -> str:
        """stdout without surrounding whitespace."""
        return self.stdout.strip()


def run_git(args: list[str], cwd: Path, timeout: int = GIT_TIMEOUT_SECONDS) -> GitResult:
    """Run `git -C cwd <args>`.

    Never raises: a hung git comes back with timed_out set, and a missing
    git binary as returncode 127, so "no git" reads like "not a repo".
    """
    cmd = ["git", "-C", str(cwd), *args]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning(f"git {' '.join(args)} timed out after {timeout}s in {cwd}")
        return GitResult(-1, "", f"Command timed out after {timeout}s", timed_out=True)
    except FileNotFoundError:
        logger.debug("git executable not found")
        return GitResult(127, "", "git not found")

    if proc.returncode != 0:
        logger.debug(f"git {' '.join(args)} exited {proc.returncode}: {proc.stderr.strip()}")
    return GitResult(proc.returncode, proc.stdout, proc.stderr)
