"""
Desktop notifications when a run ends.

Sent through notify-send, so any freedesktop notification daemon shows
them. Without notify-send nothing happens.
"""

import logging
import shutil
import subprocess

logger = logging.getLogger(__name__)

APP_NAME = "Simply Done"
URGENCIES = ("low", "normal", "critical")
MAX_BODY_LENGTH = 200


def _notify_send_command(title: str, body: str, urgency: str) -> list[str]:
    if len(body) > MAX_BODY_LENGTH:
        body = body[:MAX_BODY_LENGTH] + "..."
    return ["notify-send", "--urgency", urgency, "--app-name", APP_NAME, title, body]


def notify(title: str, message: str, urgency: str = "normal"):
    """Show a desktop notification. Failures are logged, never raised."""
    if urgency not in URGENCIES:
        logger.warning(f"Invalid urgency '{urgency}', using 'normal'")
        urgency = "normal"

    if shutil.which("notify-send") is None:
        logger.debug("notify-send not available, not notifying")
        return

    try:
        result = subprocess.run(
            _notify_send_command(title, message, urgency),
            capture_output=True,
            text=True,
            timeout=5,
        )
    except subprocess.TimeoutExpired:
        logger.warning("notify-send timed out")
        return
    except OSError as e:
        logger.warning(f"Failed to run notify-send: {e}")
        return
    if result.returncode != 0:
        logger.warning(f"notify-send exited {result.returncode}: {result.stderr.strip()}")


def notify_all_done(total: int):
    notify(APP_NAME, f"All {total} stories completed", "low")


def notify_stalled(completed: int, total: int, failed: int):
    """Nothing can run: failures or unsatisfiable dependencies."""
    detail = f", {failed} failed" if failed else ""
    notify(APP_NAME, f"Stalled at {completed}/{total}{detail}", "critical")


def notify_exhausted(completed: int, total: int, max_iterations: int):
    notify(APP_NAME, f"Reached {max_iterations} iterations at {completed}/{total} complete")
