"""
Cache Sweeper

Periodic background removal of expired entries. Expiry is already
enforced on read; the sweep only bounds memory held by dead entries.
"""

import asyncio
from typing import Optional

import structlog

from ...domain.cache.repository_interfaces import CacheStore

logger = structlog.get_logger(__name__)


class CacheSweeper:
    """Runs purge_expired() on a store every interval_seconds."""

    def __init__(self, store: CacheStore, interval_seconds: float = 60.0):
        if interval_seconds <= 0:
            raise ValueError("Sweep interval must be positive")

        self.store = store
        self.interval_seconds = interval_seconds
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def sweep_once(self) -> int:
        """Purge expired entries now."""
        removed = self.store.purge_expired()
        if removed:
            logger.debug("Swept expired cache entries", count=removed)
        return removed

    async def start(self) -> None:
        """Start background sweeping."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info("Cache sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop background sweeping."""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
            logger.info("Cache sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                self.sweep_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Cache sweep error", error=str(e))
