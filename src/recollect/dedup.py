"""Bounded FIFO cache of (session, run) pairs already persisted."""

from __future__ import annotations

from collections import OrderedDict

DEFAULT_DEDUP_CAPACITY: int = 1_024


class RunDedupCache:
    """
    Remembers which generation runs have already been persisted.

    Keys are ``"{session_id}::{run_id}"``. Once more than ``capacity`` keys
    are held, the oldest is evicted, so a very old run id may be accepted again.

    Example::

        cache = RunDedupCache(capacity=2)
        cache.add("s", "r1")   # True
        cache.add("s", "r1")   # False, already seen
    """

    def __init__(self, capacity: int = DEFAULT_DEDUP_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._keys: OrderedDict[str, None] = OrderedDict()

    @staticmethod
    def key(session_id: str, run_id: str) -> str:
        return f"{session_id}::{run_id}"

    @property
    def capacity(self) -> int:
        return self._capacity

    def add(self, session_id: str, run_id: str) -> bool:
        """Record a run. Returns False if it was already recorded."""
        key = self.key(session_id, run_id)
        if key in self._keys:
            return False
        self._keys[key] = None
        while len(self._keys) > self._capacity:
            self._keys.popitem(last=False)
        return True

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)
