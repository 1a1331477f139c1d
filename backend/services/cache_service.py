"""
In-process response cache.

Wraps a cachetools TLRUCache so each entry carries its own TTL. One
instance is created per app in main.py and reached through
`deps.get_cache`; nothing in this module is a global.
"""
import logging
import time
from typing import Any, Callable, Iterable, Optional

from cachetools import TLRUCache

logger = logging.getLogger(__name__)


def _ttu(_key: str, value: tuple[Any, float], now: float) -> float:
    """Per-entry expiry: values are stored as (payload, ttl_seconds)."""
    return now + value[1]


class CacheService:
    """TTL cache with prefix keys and substring invalidation."""

    def __init__(self, default_ttl: int = 600, maxsize: int = 1024, prefix: str = "", timer: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self.prefix = prefix
        self._cache: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_ttu, timer=timer)
        self.hits = 0
        self.misses = 0

    def _make_key(self, key: str) -> str:
        """Create a cache key with prefix."""
        if self.prefix:
            return f"{self.prefix}:{key}"
        return key

    def get(self, key: str) -> Optional[Any]:
        """Get a value from cache (None on miss or expiry)."""
        entry = self._cache.get(self._make_key(key))
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry[0]

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set a value in cache."""
        self._cache[self._make_key(key)] = (value, ttl if ttl is not None else self.default_ttl)

    def delete(self, key: str) -> None:
        """Delete a value from cache."""
        self._cache.pop(self._make_key(key), None)

    async def get_or_set(self, key: str, default_func: Callable[[], Any], ttl: int | None = None) -> Any:
        """Get from cache or compute (awaiting coroutine factories) and store."""
        value = self.get(key)
        if value is None:
            value = default_func()
            if hasattr(value, "__await__"):
                value = await value
            self.set(key, value, ttl)
        return value

    def invalidate(self, fragments: Iterable[str]) -> int:
        """Drop every key containing any of the given fragments."""
        fragments = tuple(fragments)
        stale = [k for k in list(self._cache.keys()) if any(f in k for f in fragments)]
        for k in stale:
            self._cache.pop(k, None)
        if stale:
            logger.info(f"Cache invalidated {len(stale)} key(s) matching {fragments}")
        return len(stale)

    def clear(self) -> None:
        self._cache.clear()

    def stats(self) -> dict:
        return {
            "keys": len(self._cache),
            "hits": self.hits,
            "misses": self.misses,
        }
