"""Path-keyed mutual exclusion for the orchestration document.

The lock is a ``<path>.lock`` file created with ``O_CREAT | O_EXCL`` and
holding the owner's pid. Its presence means the document is being mutated.
A lock file older than the stale threshold is assumed to belong to a
crashed process and is removed. Contention is handled with exponential
backoff plus +/-25% jitter until the maximum wait is exceeded.

Anything that offers ``__enter__``/``__exit__`` and is built from a path can
replace ``FileLock`` (see ``Orchestrator(lock_factory=...)``).
"""

import errno
import os
import random
import sys
import time
from typing import Optional

from symphony.config import (
    LOCK_TIMEOUT_SECONDS, LOCK_STALE_SECONDS,
    LOCK_INITIAL_DELAY_SECONDS, LOCK_MAX_DELAY_SECONDS,
)
from symphony.errors import LockTimeoutError


def lock_backoff(attempt: int,
                 initial_delay: float = LOCK_INITIAL_DELAY_SECONDS,
                 max_delay: float = LOCK_MAX_DELAY_SECONDS) -> float:
    """Seconds to wait before lock attempt number *attempt* + 1."""
    base = min(initial_delay * (2 ** attempt), max_delay)
    jitter = (random.random() - 0.5) * 0.5 * base
    return max(0.0, base + jitter)


class FileLock:
    """Exclusive lock over *path*, usable as a context manager."""

    def __init__(self, path: str, timeout: float = LOCK_TIMEOUT_SECONDS,
                 stale_after: float = LOCK_STALE_SECONDS,
                 debug: bool = False):
        self.path = path
        self.lock_path = f"{path}.lock"
        self.timeout = timeout
        self.stale_after = stale_after
        self.debug = debug
        self._held = False

    def _dbg(self, msg: str):
        if self.debug:
            print(f"[SYMPHONY-LOCK] {msg}", file=sys.stderr)

    # -- acquisition ----------------------------------------------------------

    def _try_acquire(self) -> bool:
        try:
            fd = os.open(self.lock_path,
                         os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, 'w') as f:
            f.write(str(os.getpid()))
        return True

    def _lock_age(self) -> Optional[float]:
        try:
            return time.time() - os.stat(self.lock_path).st_mtime
        except FileNotFoundError:
            return None

    def _remove_if_stale(self) -> bool:
        age = self._lock_age()
        if age is None or age <= self.stale_after:
            return False
        try:
            os.unlink(self.lock_path)
        except FileNotFoundError:
            # another process recovered it first
            return False
        print(f"[SYMPHONY-LOCK] Warning: removed stale lock {self.lock_path} "
              f"({age:.0f}s old)", file=sys.stderr)
        return True

    def acquire(self):
        start = time.monotonic()
        attempt = 0
        while True:
            self._remove_if_stale()
            if self._try_acquire():
                self._held = True
                self._dbg(f"acquired {self.lock_path} after {attempt} "
                          f"retries")
                return

            elapsed = time.monotonic() - start
            if elapsed >= self.timeout:
                raise LockTimeoutError(self.lock_path, elapsed)

            delay = min(lock_backoff(attempt), self.timeout - elapsed)
            self._dbg(f"{self.lock_path} busy, retrying in {delay:.3f}s")
            time.sleep(delay)
            attempt += 1

    # -- release --------------------------------------------------------------

    def release(self):
        if not self._held:
            return
        self._held = False
        try:
            with open(self.lock_path, 'r') as f:
                owner = f.read().strip()
        except FileNotFoundError:
            return
        except OSError as exc:
            print(f"[SYMPHONY-LOCK] Warning: could not read lock "
                  f"{self.lock_path}: {exc}", file=sys.stderr)
            owner = str(os.getpid())
        if owner and owner != str(os.getpid()):
            # our lock was recovered as stale and re-taken by someone else
            print(f"[SYMPHONY-LOCK] Warning: {self.lock_path} now held by "
                  f"pid {owner}; leaving it in place", file=sys.stderr)
            return
        try:
            os.unlink(self.lock_path)
        except OSError as exc:
            if exc.errno != errno.ENOENT:
                print(f"[SYMPHONY-LOCK] Warning: failed to release lock "
                      f"{self.lock_path}: {exc}", file=sys.stderr)

    @property
    def held(self) -> bool:
        return self._held

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
