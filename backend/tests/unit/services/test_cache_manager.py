"""
Unit tests for Cache Manager Service.

Tests the lifecycle of the process-wide cache: creation from settings,
session events and teardown.
"""

import pytest

from safetransfer.core.config import Settings
from safetransfer.domain.cache.value_objects import TTL, CacheKey
from safetransfer.infrastructure.cache.memory_store import InMemoryCacheStore
from safetransfer.services.cache.cache_manager import CacheManager


class TestCacheManager:
    """Test CacheManager service."""

    @pytest.fixture
    def populated(self, cache_manager):
        """Manager holding one entry per namespace."""
        cache_manager.store.set(CacheKey.customers_by_business("b1"), ("c",))
        cache_manager.store.set(CacheKey.transfers_by_business("b1"), ("t",))
        cache_manager.store.set(CacheKey.eligibility("AB123456", "b1"), "verdict")
        return cache_manager

    def test_create_from_settings(self, settings):
        """Test the store is sized and timed from settings."""
        manager = CacheManager.create(
            settings.model_copy(update={"CACHE_MAX_SIZE": 7, "CACHE_DEFAULT_TTL_SECONDS": 120})
        )
        assert isinstance(manager.store, InMemoryCacheStore)
        assert manager.store.max_size == 7
        assert manager.store.default_ttl == TTL(120)
        assert manager.sweeper.interval_seconds == settings.CACHE_SWEEP_INTERVAL_SECONDS

    def test_invalidation_shares_store(self, cache_manager):
        """Test the invalidation service works on the manager's store."""
        assert cache_manager.invalidation is cache_manager.invalidation_service
        assert cache_manager.invalidation.store is cache_manager.store

    def test_sign_out_clears_everything(self, populated):
        """Test sign-out empties the store."""
        assert populated.sign_out() == 3
        assert populated.get_stats().size == 0

    def test_switch_tenant_clears_everything(self, populated):
        """Test a tenant switch empties the store."""
        assert populated.switch_tenant() == 3
        assert populated.get_stats().size == 0

    def test_health_check(self, populated):
        """Test the health summary reports size and namespaces."""
        health = populated.health_check()
        assert health["status"] == "healthy"
        assert health["sweeper_running"] is False
        assert health["size"] == 3
        assert health["max_size"] == 200
        assert health["namespaces"] == {"customers": 1, "transfers": 1, "eligibility": 1}

    @pytest.mark.asyncio
    async def test_start_and_dispose(self, populated):
        """Test start runs the sweeper and dispose stops it and clears."""
        await populated.start()
        assert populated.running

        await populated.dispose()
        assert not populated.running
        assert populated.get_stats().size == 0
        assert populated.health_check()["status"] == "disposed"

    @pytest.mark.asyncio
    async def test_dispose_is_idempotent(self, cache_manager):
        """Test disposing twice is harmless."""
        await cache_manager.dispose()
        await cache_manager.dispose()
        assert cache_manager.health_check()["status"] == "disposed"

    @pytest.mark.asyncio
    async def test_start_after_dispose(self, cache_manager):
        """Test a disposed manager cannot be restarted."""
        await cache_manager.dispose()
        with pytest.raises(RuntimeError):
            await cache_manager.start()

    @pytest.mark.asyncio
    async def test_async_context_manager(self):
        """Test the manager starts on enter and disposes on exit."""
        manager = CacheManager.create(Settings(ENVIRONMENT="test"))
        async with manager as active:
            assert active.running
            active.store.set("customers:id:c1", "c")
        assert not manager.running
        assert manager.get_stats().size == 0
