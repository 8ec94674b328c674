"""
Cache Repository Interfaces

Abstract contract for the cache store the domain services talk to.
Keys are plain strings here; the key space lives in value_objects.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from .entities import CacheEntry
from .value_objects import TTL, CacheKey, CachePattern, CacheStats

T = TypeVar("T")

KeyLike = Union[str, CacheKey]
PatternLike = Union[str, CachePattern]
TTLLike = Union[float, int, TTL]
EvictionCallback = Callable[[str, CacheEntry], None]


class CacheStore(ABC):
    """
    Abstract key/value store with per-entry TTL and bounded capacity.

    Expired entries are logically absent. Callers must treat get() and
    has() as if expired entries were already removed.
    """

    @abstractmethod
    def get(self, key: KeyLike) -> Optional[Any]:
        """Return the live value for key, or None."""
        pass

    @abstractmethod
    def set(self, key: KeyLike, value: Any, ttl: Optional[TTLLike] = None) -> None:
        """Store a value, evicting the oldest entry when full."""
        pass

    @abstractmethod
    def has(self, key: KeyLike) -> bool:
        """Check whether key holds a live value."""
        pass

    @abstractmethod
    def delete(self, key: KeyLike) -> bool:
        """Remove one key. Returns whether anything was removed."""
        pass

    @abstractmethod
    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        pass

    @abstractmethod
    def invalidate_by_pattern(self, pattern: PatternLike) -> int:
        """Remove every key starting with pattern. Returns the number removed."""
        pass

    @abstractmethod
    def purge_expired(self) -> int:
        """Remove expired entries. Returns the number removed."""
        pass

    @abstractmethod
    async def get_or_set(
        self,
        key: KeyLike,
        fetch: Callable[[], Awaitable[T]],
        ttl: Optional[TTLLike] = None,
        dedupe: bool = False,
    ) -> T:
        """Return the cached value or fetch, store and return it."""
        pass

    @abstractmethod
    def get_stats(self) -> CacheStats:
        """Snapshot of size, capacity and keys."""
        pass
