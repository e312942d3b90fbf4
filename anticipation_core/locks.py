"""
Per-plan locking.

Mutations of one plan and the recalculation that follows them run under the
plan's lock; different plans never wait on each other.
"""

import threading
from contextlib import contextmanager
from typing import Dict


class PlanLockRegistry:
    """Hands out one re-entrant lock per plan id"""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, plan_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(plan_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[plan_id] = lock
            return lock

    @contextmanager
    def hold(self, plan_id: str):
        lock = self.lock_for(plan_id)
        with lock:
            yield

    def discard(self, plan_id: str) -> None:
        """Forget the lock of a deleted plan"""
        with self._guard:
            self._locks.pop(plan_id, None)
