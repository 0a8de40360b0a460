"""In-memory TTL cache with stale-on-error fallback. No Redis needed.

Entries past their TTL are stale, not gone: ``get`` still returns them so a
route can keep serving the last good payload while an upstream API is down.
Growth is bounded by ``max_entries`` with least-recently-used eviction.

Note: Each uvicorn worker has its own cache instance. With --workers 2,
data may be fetched twice (once per worker) and stale fallbacks differ per
worker. The cache still eliminates repeated calls within the same worker.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from errors import UpstreamUnavailableError
from services.clock import Clock, system_clock

logger = logging.getLogger(__name__)


class CacheTTL:
    """TTL tiers in seconds. Pick per data source by upstream update cadence."""

    SHORT = 30
    MEDIUM = 60
    LONG = 5 * 60
    VERY_LONG = 10 * 60


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class TTLCache:
    def __init__(self, max_entries: int = 100, clock: Clock = system_clock):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        # Insertion order doubles as recency order for LRU eviction
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()

    def get(self, key: str) -> Any | None:
        """Return the stored value regardless of freshness, or None."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            self._store.move_to_end(key)
            return entry.value

    def get_fresh(self, key: str) -> Any | None:
        """Return the value only while it is within its TTL."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None or not entry.is_fresh(self._clock()):
                return None
            self._store.move_to_end(key)
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float = CacheTTL.MEDIUM) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        with self._lock:
            if key in self._store:
                self._store.move_to_end(key)
            self._store[key] = CacheEntry(value=value, stored_at=self._clock(), ttl=ttl_seconds)
            while len(self._store) > self._max_entries:
                evicted, _ = self._store.popitem(last=False)
                logger.debug("Cache full, evicted %s", evicted)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def prune(self, grace_seconds: float = 0) -> int:
        """Drop entries that have been stale for longer than ``grace_seconds``.

        Pruning throws away fallback data, so callers should pass a generous
        grace period unless memory matters more than availability.
        """
        with self._lock:
            now = self._clock()
            expired = [
                key
                for key, entry in self._store.items()
                if now - entry.stored_at >= entry.ttl + grace_seconds
            ]
            for key in expired:
                del self._store[key]
        return len(expired)

    def stats(self) -> dict:
        with self._lock:
            now = self._clock()
            fresh = sum(1 for entry in self._store.values() if entry.is_fresh(now))
            return {
                "entries": len(self._store),
                "fresh": fresh,
                "stale": len(self._store) - fresh,
                "max_entries": self._max_entries,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


async def fetch_with_fallback(
    cache: TTLCache,
    key: str,
    fetch: Callable[[], Awaitable[Any]],
    ttl_seconds: float,
    source: str | None = None,
) -> Any:
    """Serve ``key`` fresh from cache, else fetch it, else fall back to stale.

    Raises UpstreamUnavailableError only when the fetch fails and nothing has
    ever been cached under ``key``.
    """
    cached = cache.get_fresh(key)
    if cached is not None:
        return cached

    try:
        value = await fetch()
    except Exception as e:
        stale = cache.get(key)
        if stale is not None:
            logger.warning("Upstream fetch failed for %s, serving stale cache: %s", key, e)
            return stale
        logger.error("Upstream fetch failed for %s with no cached fallback: %s", key, e)
        raise UpstreamUnavailableError(source or key) from e

    cache.set(key, value, ttl_seconds=ttl_seconds)
    return value
