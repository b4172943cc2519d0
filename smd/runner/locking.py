"""
Run lock for smd.

One scheduler per smd directory. The lock is an flock on <smd_dir>/.smd.lock,
so it disappears with the process that holds it and a crashed run never
leaves a stale lock behind.
"""

import atexit
import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path

from smd.lib.constants import LOCK_FILENAME


class LockTimeout(Exception):
    """Lock acquisition timed out."""
    pass


def is_locked(smd_dir: Path) -> bool:
    """True if a scheduler currently holds the run lock for smd_dir."""
    lock_file = smd_dir / LOCK_FILENAME
    if not lock_file.exists():
        return False
    with open(lock_file, 'r') as fd:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        fcntl.flock(fd, fcntl.LOCK_UN)
    return False


def lock_holder(smd_dir: Path) -> str:
    """PID recorded by the current lock holder, or '' if unknown."""
    try:
        return (smd_dir / LOCK_FILENAME).read_text().strip()
    except OSError:
        return ""


@contextmanager
def run_lock(smd_dir: Path, timeout: float = 0):
    """
    Acquire the run lock for smd_dir, yield, release on exit.

    The lock file itself is never deleted; unlinking it would let two
    processes hold "exclusive" locks on different inodes.

    Raises:
        LockTimeout: if another process holds the lock past timeout seconds
    """
    lock_file = smd_dir / LOCK_FILENAME
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    # Open without truncating so a waiting process doesn't wipe the holder's pid
    fd = open(lock_file, 'a+')
    start = time.time()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.time() - start >= timeout:
                fd.close()
                holder = lock_holder(smd_dir)
                suffix = f" (pid {holder})" if holder else ""
                raise LockTimeout(f"Another smd run is active in {smd_dir}{suffix}")
            time.sleep(0.5)

    def cleanup():
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
            fd.close()
        except (OSError, ValueError):
            pass

    atexit.register(cleanup)
    try:
        fd.seek(0)
        fd.truncate()
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        atexit.unregister(cleanup)
        cleanup()
