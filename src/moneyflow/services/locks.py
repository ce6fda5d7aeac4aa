"""Per-user mutation locks.

Balance rules are read-modify-write, so two writers touching the same user's
ledger must not interleave. Every session for a user shares one re-entrant
lock from this registry.
"""

from __future__ import annotations

import threading


class UserLocks:
    """Process-wide map of user id -> ``threading.RLock``."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def for_user(self, user_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[user_id] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


default_locks = UserLocks()
