"""In-process result cache keyed by normalized query text."""
from __future__ import annotations
from typing import Any, Callable, Dict, Optional
import time

from cachetools import TTLCache

from equipsearch import config
from equipsearch.tasks.normalization import normalize_text


class SearchCache:
    """Bounded LRU cache with an absolute per-entry TTL.

    Args:
        max_size: Entry bound; the least recently used entry is evicted first.
        ttl_s: Seconds an entry stays valid after insertion.
        timer: Clock used for expiry (``time.monotonic`` by default).
    """

    def __init__(
        self,
        max_size: int = config.CACHE_MAX_SIZE,
        ttl_s: float = config.CACHE_TTL_S,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.ttl_s = ttl_s
        self._cache: TTLCache = TTLCache(maxsize=max_size, ttl=ttl_s, timer=timer)
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(query: str) -> str:
        return normalize_text(query)

    def get(self, query: str) -> Optional[Any]:
        value = self._cache.get(self.key(query))
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def set(self, query: str, value: Any) -> None:
        self._cache[self.key(query)] = value

    def clear(self) -> None:
        self._cache.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._cache)

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._cache),
            "max_size": self.max_size,
            "ttl_s": self.ttl_s,
            "hits": self.hits,
            "misses": self.misses,
        }
