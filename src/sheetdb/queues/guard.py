"""
Per-table write locks.

Each table name maps to one re-entrant lock. `guarded` wraps a `Database`
write method so the call runs while holding the lock of the table named by
its first argument.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from functools import wraps
from typing import Iterator

from ..errors import LockTimeoutError

logger = logging.getLogger("sheetdb.guard")


class TableGuard:
    """Idle -> Locked -> Idle, one state machine per table name."""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, table: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(table)
            if lock is None:
                lock = self._locks[table] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, table: str, timeout: float | None = None) -> Iterator[None]:
        wait = self.timeout if timeout is None else timeout
        lock = self._lock_for(table)
        if not lock.acquire(timeout=wait):
            logger.warning("Lock wait on %s exceeded %.2fs", table, wait)
            raise LockTimeoutError(table, wait)
        try:
            yield
        finally:
            lock.release()


def guarded(fn):
    """Run ``fn(self, table, ...)`` under ``self.guard.hold(table)``."""

    @wraps(fn)
    def inner(self, table: str, *args, **kwargs):
        with self.guard.hold(table):
            return fn(self, table, *args, **kwargs)

    return inner
