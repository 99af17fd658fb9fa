"""Bounded LRU cache with optional TTL, used for ranked queries and embeddings."""

import time
from collections import OrderedDict
from typing import Callable, Generic, Hashable, TypeVar

import structlog

logger = structlog.get_logger()

V = TypeVar("V")


class LRUCache(Generic[V]):
    """Size-bounded cache. Least recently used entries are evicted first."""

    def __init__(self, max_size: int = 100, ttl_seconds: float | None = None, name: str = "cache"):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._entries: OrderedDict[Hashable, tuple[float, V]] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, count=False) is not None

    def _expired(self, stored_at: float) -> bool:
        return self.ttl_seconds is not None and time.monotonic() - stored_at > self.ttl_seconds

    def get(self, key: Hashable, count: bool = True) -> V | None:
        entry = self._entries.get(key)
        if entry is None or self._expired(entry[0]):
            if entry is not None:
                del self._entries[key]
            if count:
                self.misses += 1
            return None
        self._entries.move_to_end(key)
        if count:
            self.hits += 1
        return entry[1]

    def put(self, key: Hashable, value: V) -> None:
        self._entries[key] = (time.monotonic(), value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)
            self.evictions += 1

    def evict(self, key: Hashable) -> bool:
        return self._entries.pop(key, None) is not None

    def evict_where(self, predicate: Callable[[Hashable, V], bool]) -> int:
        doomed = [k for k, (_, v) in self._entries.items() if predicate(k, v)]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    def trim(self, target_size: int | None = None) -> int:
        """Drop expired entries, then oldest ones down to target_size."""
        removed = self.evict_where(lambda k, v: self._expired(self._entries[k][0]))
        target = self.max_size // 2 if target_size is None else target_size
        while len(self._entries) > target:
            self._entries.popitem(last=False)
            removed += 1
        if removed:
            logger.debug("cache_trimmed", cache=self.name, removed=removed, size=len(self))
        return removed

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict:
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
        }
