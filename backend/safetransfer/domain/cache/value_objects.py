"""
Cache Value Objects

Immutable value objects for the cache domain: the key space, invalidation
patterns and TTL tiers. Every cached domain concept gets a deterministic,
collision-free key from here; nothing else builds key strings by hand.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, Field

from ...exceptions import CacheKeyException

SEPARATOR = ":"


class CacheEntryStatus(str, Enum):
    """Cache entry status enumeration."""

    ACTIVE = "active"
    EXPIRED = "expired"
    INVALIDATED = "invalidated"
    EVICTED = "evicted"


class CacheNamespace(str, Enum):
    """Top-level key namespaces."""

    CUSTOMERS = "customers"
    TRANSFERS = "transfers"
    ELIGIBILITY = "eligibility"

    @property
    def prefix(self) -> str:
        """Namespace prefix including the trailing separator."""
        return f"{self.value}{SEPARATOR}"


def _segment(name: str, value: Any) -> str:
    """Validate one identifier segment of a key."""
    text = "" if value is None else str(value).strip()
    if not text:
        raise CacheKeyException(name, value)
    if SEPARATOR in text or any(char.isspace() for char in text):
        raise CacheKeyException(name, value)
    return text


def _search_term(term: Any) -> str:
    """
    Normalize a free-text search term into a key segment.

    Percent-encoded, so distinct normalized terms never share a segment.
    """
    words = str(term or "").lower().split()
    if not words:
        raise CacheKeyException("term", term)
    return quote(" ".join(words), safe="")


@dataclass(frozen=True)
class CacheKey:
    """
    Immutable cache key value object.

    Keys are namespace, qualifier and identifiers joined by ":".
    Identifiers are validated so a key can never contain another key's
    namespace boundary.
    """

    value: str

    def __post_init__(self) -> None:
        """Validate cache key format."""
        if not self.value:
            raise ValueError("Cache key cannot be empty")

        if len(self.value) > 250:
            raise ValueError("Cache key too long (max 250 characters)")

        if any(char.isspace() for char in self.value):
            raise ValueError("Cache key cannot contain whitespace")

    @classmethod
    def customers_by_business(cls, business_id: Any) -> "CacheKey":
        """Customer list of one business."""
        return cls(f"customers:business:{_segment('business_id', business_id)}")

    @classmethod
    def customer_by_id(cls, customer_id: Any) -> "CacheKey":
        """Single customer."""
        return cls(f"customers:id:{_segment('customer_id', customer_id)}")

    @classmethod
    def customer_search(
        cls, business_id: Any, term: Any, variant: Optional[str] = None
    ) -> "CacheKey":
        """Customer search results of one business for one term."""
        business = _segment("business_id", business_id)
        key = f"customers:search:{business}:{_search_term(term)}"
        return cls(f"{key}:{variant}" if variant else key)

    @classmethod
    def transfers_by_business(
        cls, business_id: Any, variant: Optional[str] = None
    ) -> "CacheKey":
        """Transfer list of one business; variant distinguishes paged views."""
        key = f"transfers:business:{_segment('business_id', business_id)}"
        return cls(f"{key}:{variant}" if variant else key)

    @classmethod
    def transfers_by_client(
        cls, client_id: Any, variant: Optional[str] = None
    ) -> "CacheKey":
        """Transfer list of one customer."""
        key = f"transfers:client:{_segment('client_id', client_id)}"
        return cls(f"{key}:{variant}" if variant else key)

    @classmethod
    def transfer_by_id(cls, transfer_id: Any) -> "CacheKey":
        """Single transfer."""
        return cls(f"transfers:id:{_segment('transfer_id', transfer_id)}")

    @classmethod
    def eligibility(cls, document_number: Any, business_id: Any) -> "CacheKey":
        """Eligibility verdict of a customer/business pair."""
        document = _segment("document_number", document_number)
        business = _segment("business_id", business_id)
        return cls(f"eligibility:{document}:{business}")

    @property
    def namespace(self) -> str:
        return self.value.split(SEPARATOR, 1)[0]

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CachePattern:
    """
    Prefix used for bulk invalidation.

    A pattern always ends with the separator, so invalidating business
    "1" can never touch business "10".
    """

    prefix: str

    def __post_init__(self) -> None:
        if not self.prefix or not self.prefix.endswith(SEPARATOR):
            raise ValueError("Cache pattern must end with ':'")

    @classmethod
    def children_of(cls, key: CacheKey) -> "CachePattern":
        """Every variant stored below an exact key."""
        return cls(f"{key.value}{SEPARATOR}")

    @classmethod
    def namespace(cls, namespace: CacheNamespace) -> "CachePattern":
        return cls(namespace.prefix)

    @classmethod
    def customer_search(cls, business_id: Any) -> "CachePattern":
        """All search results of one business."""
        return cls(f"customers:search:{_segment('business_id', business_id)}:")

    @classmethod
    def eligibility_for_document(cls, document_number: Any) -> "CachePattern":
        """Eligibility of one customer as seen by every business."""
        return cls(f"eligibility:{_segment('document_number', document_number)}:")

    def __str__(self) -> str:
        return self.prefix


@dataclass(frozen=True)
class TTL:
    """
    Time To Live value object for cache expiration.

    Named tiers reflect staleness tolerance; eligibility is the shortest
    because it is the legally sensitive figure.
    """

    seconds: float

    def __post_init__(self) -> None:
        """Validate TTL value."""
        if self.seconds <= 0:
            raise ValueError("TTL must be positive")
        if self.seconds > 86400 * 365:  # Max 1 year
            raise ValueError("TTL too large (max 1 year)")

    @classmethod
    def of_seconds(cls, seconds: float) -> "TTL":
        return cls(seconds)

    @classmethod
    def minutes(cls, minutes: float) -> "TTL":
        return cls(minutes * 60)

    @classmethod
    def hours(cls, hours: float) -> "TTL":
        return cls(hours * 3600)

    # Common TTL presets
    @classmethod
    def short(cls) -> "TTL":
        """Default reads (1 minute)."""
        return cls.minutes(1)

    @classmethod
    def medium(cls) -> "TTL":
        """Customer and transfer lists (5 minutes)."""
        return cls.minutes(5)

    @classmethod
    def long(cls) -> "TTL":
        """Rarely-changing data (15 minutes)."""
        return cls.minutes(15)

    @classmethod
    def hour(cls) -> "TTL":
        return cls.hours(1)

    @classmethod
    def eligibility(cls) -> "TTL":
        """Eligibility verdicts (30 seconds)."""
        return cls(30)

    def __str__(self) -> str:
        return f"{self.seconds:g}s"


class CacheStats(BaseModel):
    """Snapshot of the cache store for diagnostics."""

    size: int = Field(..., ge=0, description="Number of stored entries")
    max_size: int = Field(..., ge=1, description="Store capacity")
    keys: List[str] = Field(default_factory=list, description="Stored keys")
    taken_at: datetime = Field(
        default_factory=datetime.now, description="When the snapshot was taken"
    )
