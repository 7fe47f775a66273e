"""
SessionLockRegistry -- per-session serialization of count operations.

Responsibility:
    Serialize every mutating operation on one count session inside this
    process, so two counters closing the last two areas at the same moment
    cannot both observe "one area left" and both skip (or both run) the
    session completion.

Architecture position:
    Services -- imperative shell infrastructure, shared by every
    ``CountService`` in the process.  Cross-process ordering is the job of
    the repository's row lock and version check.

Invariants enforced:
    - At most one holder per session id at a time.
    - Operations on different sessions never wait on each other.
    - A waiter gives up after ``timeout`` seconds with
      ``ConcurrentModificationError``; nothing is left half-applied because
      it never started.
    - Bounded memory: a session's lock exists only while it is held or
      awaited.

Usage:
    locks = SessionLockRegistry()
    with locks.hold(session_id, timeout=5.0):
        ...
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from count_kernel.exceptions import ConcurrentModificationError
from count_kernel.logging_config import get_logger

logger = get_logger("services.session_lock")


class SessionLockRegistry:
    """
    ``threading.Lock`` per session id, kept only while someone holds or
    waits for it.

    Each entry carries a count of holders plus waiters; the entry is
    dropped when that count returns to zero, so a long-running process
    does not accumulate a lock for every session it has ever touched.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[UUID, threading.Lock] = {}
        self._users: dict[UUID, int] = {}

    def __len__(self) -> int:
        """Number of sessions with a current holder or waiter."""
        with self._guard:
            return len(self._locks)

    def _checkout(self, session_id: UUID) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            self._users[session_id] = self._users.get(session_id, 0) + 1
            return lock

    def _checkin(self, session_id: UUID) -> None:
        with self._guard:
            remaining = self._users[session_id] - 1
            if remaining:
                self._users[session_id] = remaining
            else:
                del self._users[session_id]
                del self._locks[session_id]

    @contextmanager
    def hold(self, session_id: UUID, timeout: float) -> Iterator[None]:
        """
        Hold the lock of one session for the duration of the block.

        Raises:
            ConcurrentModificationError: lock not acquired within ``timeout``.
        """
        lock = self._checkout(session_id)
        try:
            if not lock.acquire(timeout=timeout):
                logger.warning(
                    "session_lock_timeout",
                    extra={
                        "session_id": str(session_id),
                        "timeout_seconds": timeout,
                        "locked_sessions": len(self),
                    },
                )
                raise ConcurrentModificationError(
                    str(session_id), f"lock not acquired within {timeout}s",
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(session_id)
