"""
Cache Domain Entities

Core entity of the in-process cache: one stored value with its freshness.
"""

from dataclasses import dataclass
from typing import Any

from .value_objects import CacheEntryStatus


@dataclass
class CacheEntry:
    """
    Cached value with its storage time and time to live.

    An entry is valid iff now - stored_at < ttl_seconds. Invalid entries
    are logically absent and must never be returned.
    """

    value: Any
    stored_at: float
    ttl_seconds: float
    status: CacheEntryStatus = CacheEntryStatus.ACTIVE

    def is_expired(self, now: float) -> bool:
        """Check if cache entry is expired at the given clock reading."""
        return now - self.stored_at >= self.ttl_seconds

    def remaining_seconds(self, now: float) -> float:
        return max(0.0, self.ttl_seconds - (now - self.stored_at))

    def mark(self, status: CacheEntryStatus) -> None:
        """Record why the entry left the store."""
        self.status = status
