"""Advisory lock serializing installs into one root.

Uses both a per-path threading lock (for in-process concurrency)
and fcntl.flock (for cross-process concurrency). Neither waits: a second
run against a busy root fails straight away.

The lock file stays in the root after release. Unlinking it would let a
later process lock a fresh inode while an older holder still has the old one.
"""

from __future__ import annotations

import fcntl
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from npm_dist.errors import InstallLockError

LOCK_FILENAME = ".npm-dist.lock"

_path_locks: dict[str, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def _get_path_lock(path: Path) -> threading.Lock:
    """Get or create a per-path threading lock."""
    key = str(path.resolve())
    with _path_locks_guard:
        if key not in _path_locks:
            _path_locks[key] = threading.Lock()
        return _path_locks[key]


@contextmanager
def install_lock(root: Path | str) -> Iterator[Path]:
    """Hold the install lock for *root*; yields the lock file path."""
    root_path = Path(root)
    lock_path = root_path / LOCK_FILENAME
    try:
        root_path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise InstallLockError(f"Cannot create install root {root_path}: {exc}") from exc

    lock = _get_path_lock(lock_path)
    if not lock.acquire(blocking=False):
        raise InstallLockError(f"Another install into {root_path} is already running.")
    try:
        try:
            lock_fd = open(lock_path, "w")
        except OSError as exc:
            raise InstallLockError(f"Cannot open lock file {lock_path}: {exc}") from exc
        with lock_fd:
            try:
                fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError as exc:
                raise InstallLockError(
                    f"Another install into {root_path} is already running ({lock_path})."
                ) from exc
            try:
                yield lock_path
            finally:
                fcntl.flock(lock_fd, fcntl.LOCK_UN)
    finally:
        lock.release()
