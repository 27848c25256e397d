"""
Per-tournament mutual exclusion for the results pipeline and its reversal.
Different tournaments run concurrently; the same tournament is serialised.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class TournamentLocks:
    """
    One re-entrant lock per tournament id, created on first use and dropped
    when its last holder or waiter leaves, so a long-lived process only
    tracks tournaments currently being worked on.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def lock_for(self, tournament_id: str) -> threading.RLock:
        """The tournament's current lock. Services go through hold()."""
        with self._guard:
            lock = self._locks.get(tournament_id)
            if lock is None:
                lock = self._locks[tournament_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, tournament_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(tournament_id)
            if lock is None:
                lock = self._locks[tournament_id] = threading.RLock()
            self._users[tournament_id] = self._users.get(tournament_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                remaining = self._users[tournament_id] - 1
                if remaining:
                    self._users[tournament_id] = remaining
                else:
                    del self._users[tournament_id]
                    self._locks.pop(tournament_id, None)


# Shared by every service instance in the process
tournament_locks = TournamentLocks()
