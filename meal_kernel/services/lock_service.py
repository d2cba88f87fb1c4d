"""
LockManager -- keyed in-process locks with bounded waits.

Responsibility:
    Serializes mutating operations on the same subscription (or the same
    employee's compensation day) inside one process before they reach the
    database.  Every acquisition is bounded; an expired wait raises
    LockTimeoutError instead of hanging.

Architecture position:
    Kernel > Services -- concurrency infrastructure shared by the freeze,
    subscription and compensation services.

Invariants enforced:
    - At most one holder per key at a time.
    - Multi-key acquisition always happens in sorted key order, so two
      callers locking overlapping key sets cannot deadlock.
    - Locks are released on every exit path, including exceptions.

Failure modes:
    - LockTimeoutError when a key is not acquired within the timeout.

Non-goals:
    - Not a cross-process lock.  Across processes the row locks
      (SELECT ... FOR UPDATE) and the subscription version token provide
      the guarantee; this layer only removes avoidable contention.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from meal_kernel.exceptions import LockTimeoutError
from meal_kernel.logging_config import get_logger

logger = get_logger("services.locks")


class _KeyedLock:
    __slots__ = ("lock", "waiters")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.waiters = 0


class LockManager:
    """
    Registry of named locks.

    Usage:
        locks = LockManager(timeout_seconds=10)
        with locks.hold("subscription", subscription_id):
            ...
    """

    def __init__(self, timeout_seconds: float = 10.0):
        self.timeout_seconds = timeout_seconds
        self._guard = threading.Lock()
        self._locks: dict[str, _KeyedLock] = {}

    @staticmethod
    def key(kind: str, entity_id) -> str:
        return f"{kind}:{entity_id}"

    def _checkout(self, key: str) -> _KeyedLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyedLock()
            entry.waiters += 1
            return entry

    def _checkin(self, key: str, entry: _KeyedLock) -> None:
        with self._guard:
            entry.waiters -= 1
            if entry.waiters == 0:
                self._locks.pop(key, None)

    def _acquire(self, key: str, timeout: float) -> _KeyedLock:
        entry = self._checkout(key)
        if not entry.lock.acquire(timeout=timeout):
            self._checkin(key, entry)
            logger.warning(
                "lock_timeout",
                extra={"lock_key": key, "timeout_seconds": timeout},
            )
            raise LockTimeoutError(key, timeout)
        return entry

    def _release(self, key: str, entry: _KeyedLock) -> None:
        entry.lock.release()
        self._checkin(key, entry)

    @contextmanager
    def hold(self, kind: str, entity_id, timeout: float | None = None) -> Iterator[None]:
        """Hold one keyed lock for the duration of the block."""
        with self.hold_many(kind, [entity_id], timeout=timeout):
            yield

    @contextmanager
    def hold_many(
        self,
        kind: str,
        entity_ids: Iterable,
        timeout: float | None = None,
    ) -> Iterator[None]:
        """Hold several keyed locks, acquired in sorted order."""
        timeout = self.timeout_seconds if timeout is None else timeout
        keys = sorted({self.key(kind, entity_id) for entity_id in entity_ids})
        held: list[tuple[str, _KeyedLock]] = []
        try:
            for key in keys:
                held.append((key, self._acquire(key, timeout)))
            yield
        finally:
            for key, entry in reversed(held):
                self._release(key, entry)

    def is_held(self, kind: str, entity_id) -> bool:
        with self._guard:
            entry = self._locks.get(self.key(kind, entity_id))
        return entry is not None and entry.lock.locked()


_default_manager: LockManager | None = None
_default_guard = threading.Lock()


def get_lock_manager(timeout_seconds: float = 10.0) -> LockManager:
    """Process-wide LockManager shared by services that are not given one."""
    global _default_manager
    with _default_guard:
        if _default_manager is None:
            _default_manager = LockManager(timeout_seconds)
        return _default_manager
