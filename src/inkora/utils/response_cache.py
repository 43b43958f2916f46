"""In-memory LRU tier with per-entry expiry."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from inkora.config.config import DEFAULT_MEMORY_CACHE_SIZE
from inkora.utils.logger import cache_logger as logger

TimeSource = Callable[[], float]


@dataclass(slots=True)
class CacheEntry:
    """A cached value; ``expires_at`` is an absolute timestamp or ``None``."""

    namespace: str
    key: str
    value: Any
    cached_at: float
    expires_at: float | None = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def remaining_ttl(self, now: float) -> float | None:
        if self.expires_at is None:
            return None
        return max(self.expires_at - now, 0.0)


class MemoryCache:
    """Bounded LRU keyed by access order.

    Reads and writes both refresh recency. Eviction only happens when a
    *new* key would push the size past ``max_size``; overwriting an existing
    key never evicts. Expired entries are dropped when they are read.
    """

    def __init__(
        self,
        namespace: str = "default",
        *,
        max_size: int = DEFAULT_MEMORY_CACHE_SIZE,
        default_ttl: float | None = None,
        time_source: TimeSource = time.time,
    ) -> None:
        self.namespace = namespace
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._max_size = max(int(max_size), 1)
        self._default_ttl = default_ttl
        self._now = time_source

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def get_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.is_expired(self._now()):
            del self._entries[key]
            self._misses += 1
            logger.debug(f"[Cache] Expired {self.namespace}:{key}")
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.get_entry(key)
        return default if entry is None else entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> CacheEntry:
        now = self._now()
        ttl_seconds = ttl if ttl is not None else self._default_ttl
        expires_at = now + ttl_seconds if ttl_seconds is not None else None
        entry = CacheEntry(self.namespace, key, value, now, expires_at)

        if key in self._entries:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            return entry

        while len(self._entries) >= self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"[Cache] Evicted LRU {self.namespace}:{evicted}")
        self._entries[key] = entry
        return entry

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        """Keys from least to most recently used, expired ones included."""

        return list(self._entries)

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def hit_rate(self) -> float:
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_rate": self.hit_rate,
            "size": len(self._entries),
            "max_size": self._max_size,
        }


__all__ = ["CacheEntry", "MemoryCache", "TimeSource"]
