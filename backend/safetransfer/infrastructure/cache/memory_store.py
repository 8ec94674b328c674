"""
In-Memory Cache Store

Bounded, TTL-governed key/value store living in the client process.
Single-threaded cooperative access: no operation awaits while it mutates
the store, so every synchronous method is atomic with respect to others.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import structlog
from opentelemetry import metrics

from ...domain.cache.entities import CacheEntry
from ...domain.cache.repository_interfaces import (
    CacheStore,
    EvictionCallback,
    KeyLike,
    PatternLike,
    TTLLike,
)
from ...domain.cache.value_objects import TTL, CacheEntryStatus, CacheStats

logger = structlog.get_logger(__name__)
meter = metrics.get_meter(__name__)

T = TypeVar("T")

cache_hits = meter.create_counter(
    "safetransfer_cache_hits_total", description="Cache lookups served from memory"
)
cache_misses = meter.create_counter(
    "safetransfer_cache_misses_total", description="Cache lookups that missed"
)
cache_removals = meter.create_counter(
    "safetransfer_cache_removals_total", description="Entries removed from the store"
)


def _ttl_seconds(ttl: Optional[TTLLike], default: TTL) -> float:
    if ttl is None:
        return default.seconds
    if isinstance(ttl, TTL):
        return ttl.seconds
    return TTL(float(ttl)).seconds


class InMemoryCacheStore(CacheStore):
    """
    In-process cache with per-entry TTL and oldest-first eviction.

    Capacity is a hard bound: inserting a new key into a full store first
    evicts the entry with the oldest stored_at. Overwriting an existing
    key never evicts anything else.
    """

    def __init__(
        self,
        max_size: int = 200,
        default_ttl: Optional[TTLLike] = None,
        on_evict: Optional[EvictionCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")

        self.max_size = max_size
        self.default_ttl = TTL(_ttl_seconds(default_ttl, TTL.short()))
        self.on_evict = on_evict
        self._clock = clock
        # Insertion order doubles as the tie-break for equal stored_at.
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _remove(self, key: str, status: CacheEntryStatus) -> Optional[CacheEntry]:
        entry = self._entries.pop(key, None)
        if entry is None:
            return None

        entry.mark(status)
        cache_removals.add(1, {"reason": status.value})
        if self.on_evict is not None:
            try:
                self.on_evict(key, entry)
            except Exception as e:
                logger.warning("Eviction callback failed", key=key, error=str(e))
        return entry

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._remove(key, CacheEntryStatus.EXPIRED)
            return None
        return entry

    def get(self, key: KeyLike) -> Optional[Any]:
        """Return the live value for key, or None."""
        entry = self._live_entry(str(key))
        if entry is None:
            cache_misses.add(1)
            return None
        cache_hits.add(1)
        return entry.value

    def set(self, key: KeyLike, value: Any, ttl: Optional[TTLLike] = None) -> None:
        """Store a value with ttl (default TTL when omitted)."""
        key = str(key)
        ttl_seconds = _ttl_seconds(ttl, self.default_ttl)

        if key in self._entries:
            # Re-insert so insertion order follows stored_at.
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            self._evict_oldest()

        self._entries[key] = CacheEntry(
            value=value, stored_at=self._clock(), ttl_seconds=ttl_seconds
        )

    def _evict_oldest(self) -> None:
        oldest_key = min(self._entries, key=lambda k: self._entries[k].stored_at)
        self._remove(oldest_key, CacheEntryStatus.EVICTED)
        logger.debug("Evicted oldest cache entry", key=oldest_key)

    def has(self, key: KeyLike) -> bool:
        """Check whether key holds a live value."""
        return self._live_entry(str(key)) is not None

    def delete(self, key: KeyLike) -> bool:
        """Remove one key, firing the eviction callback."""
        return self._remove(str(key), CacheEntryStatus.INVALIDATED) is not None

    def clear(self) -> int:
        """Remove every entry, firing the eviction callback per entry."""
        count = 0
        for key in list(self._entries):
            if self._remove(key, CacheEntryStatus.INVALIDATED) is not None:
                count += 1
        return count

    def invalidate_by_pattern(self, pattern: PatternLike) -> int:
        """
        Remove every key that starts with pattern.

        Plain prefix semantics: "customers:" removes customers:business:1
        and never transfers:business:1.
        """
        prefix = str(pattern)
        if not prefix:
            raise ValueError("Invalidation pattern cannot be empty")

        matching = [key for key in self._entries if key.startswith(prefix)]
        for key in matching:
            self._remove(key, CacheEntryStatus.INVALIDATED)

        if matching:
            logger.debug("Invalidated cache entries", pattern=prefix, count=len(matching))
        return len(matching)

    def purge_expired(self) -> int:
        """Remove every expired entry."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            self._remove(key, CacheEntryStatus.EXPIRED)
        return len(expired)

    async def get_or_set(
        self,
        key: KeyLike,
        fetch: Callable[[], Awaitable[T]],
        ttl: Optional[TTLLike] = None,
        dedupe: bool = False,
    ) -> T:
        """
        Return the cached value or fetch, store and return it.

        A failed fetch propagates and stores nothing. With dedupe, callers
        that miss while a fetch for the same key is running share it
        instead of starting another one.
        """
        key = str(key)
        cached = self.get(key)
        if cached is not None:
            return cached

        if not dedupe:
            value = await fetch()
            if value is not None:
                self.set(key, value, ttl)
            return value

        pending = self._in_flight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            value = await fetch()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved; the owner re-raises it below.
            future.exception()
            raise
        else:
            if value is not None:
                self.set(key, value, ttl)
            future.set_result(value)
            return value
        finally:
            self._in_flight.pop(key, None)

    def get_stats(self) -> CacheStats:
        """Snapshot of size, capacity and keys (expired entries included)."""
        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            keys=list(self._entries),
        )
