"""
Lock management for taskledger.

Every command that reads, modifies and rewrites a feature's state files
(_meta.json, tasks.md, sync mappings) holds an exclusive flock on
<feature_dir>/.lock for the whole read-modify-write cycle. Without it a
second concurrent invocation would silently overwrite the first one's
changes (last full-file write wins).
"""

import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path

LOCK_FILE = ".lock"
POLL_INTERVAL = 0.1


class LockTimeout(Exception):
    """Lock acquisition timed out."""
    pass


def is_locked(feature_dir: Path) -> bool:
    """Check whether another process currently holds the feature lock."""
    lock_file = feature_dir / LOCK_FILE
    if not lock_file.exists():
        return False

    try:
        with open(lock_file, 'r') as fd:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                fcntl.flock(fd, fcntl.LOCK_UN)
                return False
            except BlockingIOError:
                return True
    except OSError:
        return False


@contextmanager
def _acquire_lock(lock_file: Path, timeout: float, lock_name: str):
    """
    Internal helper to acquire a file lock.

    Args:
        lock_file: Path to the lock file
        timeout: Seconds to wait for lock
        lock_name: Human-readable name for error messages
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    # Lock files are never deleted: unlinking one while another process
    # waits on it would hand out two "exclusive" locks on different inodes.
    fd = open(lock_file, 'a+')
    start = time.monotonic()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.monotonic() - start > timeout:
                fd.close()
                raise LockTimeout(f"Could not acquire {lock_name} within {timeout}s")
            time.sleep(POLL_INTERVAL)

    try:
        fd.seek(0)
        fd.truncate()
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()


@contextmanager
def feature_lock(feature_dir: Path, timeout: float = 30):
    """
    Acquire the per-feature lock, yield, release on exit.

    Different features can be worked on in parallel.
    """
    with _acquire_lock(feature_dir / LOCK_FILE, timeout, f"lock for {feature_dir.name}"):
        yield
