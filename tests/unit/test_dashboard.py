"""
Unit Tests - Dashboard Summary
"""
import pytest

from admin_panel.config.settings import MetricsSettings
from admin_panel.database.errors import StoreConfigurationError, StoreUnavailableError
from admin_panel.serving.cache import CacheManager, CacheUnavailableError
from admin_panel.serving.dashboard import DashboardService, growth, merge_activity
from tests.factories import FakeStatsOrders, FakeStatsPayments, activity


class MemoryCache:
    """CacheManager double keeping values in a dict"""

    def __init__(self, broken: bool = False):
        self.values = {}
        self.broken = broken
        self.writes = 0

    async def get_or_set(self, key, factory, ttl=None, cache_if=None):
        if self.broken:
            return await factory()
        if key in self.values:
            return self.values[key]
        value = await factory()
        if cache_if is None or cache_if(value):
            self.values[key] = value
            self.writes += 1
        return value


@pytest.fixture
def settings():
    return MetricsSettings(dashboard_window_days=30, recent_activity_limit=3)


class TestGrowth:
    @pytest.mark.parametrize("current,previous,expected", [
        (10, 5, 100),
        (5, 10, -50),
        (3, 0, 100),
        (0, 0, 0),
        (10, 3, 233),
    ])
    def test_growth(self, current, previous, expected):
        assert growth(current, previous) == expected


class TestMergeActivity:
    def test_newest_first_across_feeds(self):
        merged = merge_activity(
            [activity("order", "o1", 1), activity("order", "o2", 5)],
            [activity("transaction", "t1", 2), activity("transaction", "t2", 0)],
            limit=3,
        )
        assert [a.id for a in merged] == ["t2", "o1", "t1"]


class TestDashboardService:
    """Tests for DashboardService"""

    async def test_summary_sections(self, settings):
        service = DashboardService(FakeStatsOrders(), FakeStatsPayments(), settings=settings)

        summary = await service.compute_summary()

        assert summary.orders.total == 10
        assert summary.orders.completed == 8
        assert summary.orders.pending == 2
        assert summary.orders.total_amount == 650
        assert summary.orders.growth == 100
        assert summary.transactions.approved == 4
        assert summary.transactions.rejected == 2
        assert summary.transactions.total_amount == 320
        assert summary.transactions.growth == -25
        assert summary.users.new == 4
        assert summary.users.growth == 100
        assert [a.id for a in summary.recent_activity] == ["t2", "o1", "t1"]
        assert summary.unavailable == []

    async def test_unavailable_store_zeroes_its_sections(self, settings):
        payments = FakeStatsPayments(error=StoreUnavailableError("payments", "down"))
        service = DashboardService(FakeStatsOrders(), payments, settings=settings)

        summary = await service.compute_summary()

        assert summary.unavailable == ["recent_transactions", "transactions"]
        assert summary.transactions.total == 0
        assert summary.orders.total == 10
        assert [a.kind for a in summary.recent_activity] == ["order", "order"]

    async def test_configuration_error_propagates(self, settings):
        orders = FakeStatsOrders(error=StoreConfigurationError("orders", "missing"))
        service = DashboardService(orders, FakeStatsPayments(), settings=settings)

        with pytest.raises(StoreConfigurationError):
            await service.compute_summary()

    async def test_complete_summary_is_cached(self, settings):
        cache = MemoryCache()
        service = DashboardService(FakeStatsOrders(), FakeStatsPayments(), cache=cache, settings=settings)

        first = await service.get_summary()
        second = await service.get_summary()

        assert cache.writes == 1
        assert first == second

    async def test_degraded_summary_is_not_cached(self, settings):
        cache = MemoryCache()
        payments = FakeStatsPayments(error=StoreUnavailableError("payments", "down"))
        service = DashboardService(FakeStatsOrders(), payments, cache=cache, settings=settings)

        summary = await service.get_summary()

        assert summary.unavailable
        assert cache.writes == 0

    async def test_refresh_bypasses_cache(self, settings):
        cache = MemoryCache()
        orders = FakeStatsOrders()
        service = DashboardService(orders, FakeStatsPayments(), cache=cache, settings=settings)

        await service.get_summary()
        orders.error = StoreUnavailableError("orders", "down")
        cached = await service.get_summary()
        live = await service.get_summary(refresh=True)

        assert cached.unavailable == []
        assert live.unavailable == ["orders", "recent_orders", "users"]
        assert cache.writes == 1
        assert (await service.get_summary()).orders.total == 10

    async def test_broken_cache_falls_through(self, settings):
        service = DashboardService(
            FakeStatsOrders(), FakeStatsPayments(), cache=MemoryCache(broken=True), settings=settings
        )

        summary = await service.get_summary()

        assert summary.orders.total == 10


class TestCacheManagerFallThrough:
    async def test_uninitialized_redis_computes_live(self):
        async def factory():
            return {"value": 1}

        assert await CacheManager("dashboard").get_or_set("summary", factory) == {"value": 1}

    async def test_get_raises_when_redis_is_not_initialized(self):
        with pytest.raises(CacheUnavailableError):
            await CacheManager("dashboard").get("summary")
