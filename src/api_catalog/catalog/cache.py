"""Bounded key/value cache with time-based expiry."""

import time
from collections import OrderedDict
from typing import Callable, Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """Capacity-bounded map whose entries expire ``ttl`` seconds after insertion.

    Eviction drops the least-recently-inserted key. Expired entries are
    treated as misses and purged when read.
    """

    def __init__(self, max_size: int, ttl: float, clock: Callable[[], float] = time.monotonic):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[K, tuple[V, float]] = OrderedDict()

    def get(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, inserted_at = entry
        if self._clock() - inserted_at > self.ttl:
            del self._entries[key]
            return None
        return value

    def set(self, key: K, value: V) -> None:
        if key in self._entries:
            del self._entries[key]
        while len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = (value, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        return len(self._entries)
