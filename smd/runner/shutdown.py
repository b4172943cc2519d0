"""
Shutdown handling for the scheduler.

SIGINT and SIGTERM only set an event. The scheduler notices it at its next
wait and performs the cleanup itself (stop workers, clear sentinels, reset
in_progress stories), so cleanup never runs inside a signal handler.
"""

import logging
import signal
import threading

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ShutdownHandler:
    """Turns termination signals into a threading.Event.

    Use as a context manager; the previous handlers are restored on exit.
    """

    def __init__(self, event: threading.Event | None = None):
        self.event = event or threading.Event()
        self.signum: int | None = None
        self._original: dict[int, object] = {}

    @property
    def requested(self) -> bool:
        return self.event.is_set()

    def request(self, signum: int | None = None) -> None:
        """Ask the scheduler to stop. Safe to call more than once."""
        if self.event.is_set():
            return
        self.signum = signum
        self.event.set()

    def _handle(self, signum, frame) -> None:
        name = signal.Signals(signum).name
        if self.event.is_set():
            logger.info(f"{name} received again, shutdown already in progress")
            return
        logger.warning(f"{name} received, stopping workers")
        self.request(signum)

    def install(self) -> None:
        # signal.signal only works from the main thread
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return
        for signum in HANDLED_SIGNALS:
            self._original[signum] = signal.signal(signum, self._handle)

    def restore(self) -> None:
        for signum, handler in self._original.items():
            signal.signal(signum, handler)
        self._original.clear()

    def __enter__(self) -> "ShutdownHandler":
        self.install()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()
