"""
Cache Manager Service

Owns the process-wide cache store, its background sweeper and the
invalidation service, and ties them to the session lifecycle: the store
is emptied on sign-out and tenant switch, and torn down on dispose.
"""

import time
from typing import Any, Callable, Dict, Optional

import structlog
from opentelemetry import trace

from ...core.config import Settings, get_settings
from ...domain.cache.domain_services import CacheInvalidationService
from ...domain.cache.entities import CacheEntry
from ...domain.cache.repository_interfaces import CacheStore
from ...domain.cache.value_objects import TTL, CacheStats
from ...infrastructure.cache.memory_store import InMemoryCacheStore
from ...infrastructure.cache.sweeper import CacheSweeper

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


def log_eviction(key: str, entry: CacheEntry) -> None:
    """Default eviction callback."""
    logger.debug("Cache entry removed", key=key, reason=entry.status.value)


class CacheManager:
    """
    High-level cache management service.

    One instance per process. Services take the store and invalidation
    service from here rather than building their own.
    """

    def __init__(
        self,
        store: CacheStore,
        sweep_interval_seconds: float = 60.0,
    ):
        self.store = store
        self.invalidation_service = CacheInvalidationService(store)
        self.sweeper = CacheSweeper(store, sweep_interval_seconds)
        self._disposed = False

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CacheManager":
        """Build a manager with an in-memory store sized from settings."""
        settings = settings or get_settings()
        store = InMemoryCacheStore(
            max_size=settings.CACHE_MAX_SIZE,
            default_ttl=TTL(settings.CACHE_DEFAULT_TTL_SECONDS),
            on_evict=log_eviction,
            clock=clock,
        )
        return cls(store, sweep_interval_seconds=settings.CACHE_SWEEP_INTERVAL_SECONDS)

    @property
    def invalidation(self) -> CacheInvalidationService:
        return self.invalidation_service

    @property
    def running(self) -> bool:
        return self.sweeper.running

    async def start(self) -> None:
        """Start background expiry sweeping."""
        if self._disposed:
            raise RuntimeError("Cache manager has been disposed")
        await self.sweeper.start()
        logger.info("Cache manager started", max_size=self.get_stats().max_size)

    def sign_out(self) -> int:
        """Drop everything cached for the signed-out user."""
        with tracer.start_as_current_span("cache.sign_out"):
            return self.invalidation_service.clear_all(reason="sign_out")

    def switch_tenant(self) -> int:
        """Drop everything cached for the previous business."""
        with tracer.start_as_current_span("cache.switch_tenant"):
            return self.invalidation_service.clear_all(reason="tenant_switch")

    async def dispose(self) -> None:
        """Stop the sweeper and empty the store."""
        if self._disposed:
            return
        await self.sweeper.stop()
        self.invalidation_service.clear_all(reason="dispose")
        self._disposed = True
        logger.info("Cache manager disposed")

    def get_stats(self) -> CacheStats:
        return self.store.get_stats()

    def health_check(self) -> Dict[str, Any]:
        """Cache health summary."""
        stats = self.get_stats()
        return {
            "status": "disposed" if self._disposed else "healthy",
            "sweeper_running": self.sweeper.running,
            "size": stats.size,
            "max_size": stats.max_size,
            "namespaces": self.invalidation_service.namespace_sizes(),
        }

    async def __aenter__(self) -> "CacheManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()
