"""
t4g.engine.locks — Per-user and re-rank locks
==============================================

Two process-wide locks guard derived reward state:

* ``user_locks`` — one lock per user id.  All writes for a user go
  through it, so two concurrent actions for the same user never
  interleave their read-modify-write.  Different users proceed in
  parallel.
* ``rank_lock`` — the single writer for the global leaderboard re-rank.
  Always taken *after* a user lock, never before, so the two can't
  deadlock.

Readers take neither.  Every acquisition is bounded; expiry raises
:class:`~t4g.errors.DependencyError`.  Row locks (``FOR UPDATE``) in the
services extend the same guarantee across processes on PostgreSQL.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from t4g.errors import DependencyError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 5.0


class _Slot:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class KeyedLock:
    """A lock per key, created on demand and dropped when unused."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._guard = threading.Lock()
        self._slots: dict[str, _Slot] = {}

    @contextmanager
    def hold(self, key: str, timeout: float = DEFAULT_LOCK_TIMEOUT) -> Iterator[None]:
        with self._guard:
            slot = self._slots.get(key)
            if slot is None:
                slot = self._slots[key] = _Slot()
            slot.holders += 1

        acquired = slot.lock.acquire(timeout=timeout)
        try:
            if not acquired:
                logger.error("Timed out waiting for %s lock on %s", self.name, key)
                raise DependencyError(f"Timed out waiting for {self.name} lock")
            yield
        finally:
            if acquired:
                slot.lock.release()
            with self._guard:
                slot.holders -= 1
                if slot.holders == 0:
                    self._slots.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._slots)


class TimedLock:
    """A single lock whose acquisition fails fast after *timeout*."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, timeout: float = DEFAULT_LOCK_TIMEOUT) -> Iterator[None]:
        if not self._lock.acquire(timeout=timeout):
            logger.error("Timed out waiting for %s lock", self.name)
            raise DependencyError(f"Timed out waiting for {self.name} lock")
        try:
            yield
        finally:
            self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()


# Module-level singletons — one per process
user_locks = KeyedLock("user")
rank_lock = TimedLock("leaderboard re-rank")
