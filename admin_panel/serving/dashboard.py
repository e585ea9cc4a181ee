"""
Dashboard Summary

System-wide counters for the admin landing page: orders, transactions and
users over a rolling window, growth against the previous window of the same
length, and a merged feed of recent orders and transactions.

Each section is computed independently. A section whose store fails is
returned zeroed and named in ``unavailable``; the summary as a whole only
fails on a configuration error. Complete summaries are cached in Redis for
``MetricsSettings.dashboard_cache_ttl`` seconds.
"""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Awaitable, List, Optional, Protocol, TypeVar

import structlog
from pydantic import BaseModel, Field

from admin_panel.config.settings import MetricsSettings
from admin_panel.database.errors import StoreUnavailableError
from admin_panel.reconciliation.records import (
    OrderStatus,
    SUCCESSFUL_TRANSACTION_STATUSES,
    TransactionStatus,
    to_decimal,
)
from admin_panel.serving.cache import CacheManager
from admin_panel.stores.statistics import Activity, StatusBreakdown, UserGrowth

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CACHE_NAMESPACE = "dashboard"
SUMMARY_KEY = "summary"


class OrderStatisticsSource(Protocol):
    async def order_statistics(self, since: datetime, previous_since: datetime) -> StatusBreakdown:
        ...

    async def user_statistics(self, since: datetime, previous_since: datetime) -> UserGrowth:
        ...

    async def recent_orders(self, limit: int) -> List[Activity]:
        ...


class TransactionStatisticsSource(Protocol):
    async def transaction_statistics(self, since: datetime, previous_since: datetime) -> StatusBreakdown:
        ...

    async def recent_transactions(self, limit: int) -> List[Activity]:
        ...


def growth(current: int, previous: int) -> int:
    """Percentage change versus the previous window, rounded to an integer."""
    if previous == 0:
        return 100 if current > 0 else 0
    return round((current - previous) / previous * 100)


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class OrderSummary(BaseModel):
    total: int = 0
    completed: int = 0
    processing: int = 0
    pending: int = 0
    failed: int = 0
    total_amount: float = 0.0
    growth: int = 0

    @classmethod
    def from_breakdown(cls, breakdown: StatusBreakdown) -> "OrderSummary":
        counts = breakdown.by_status
        return cls(
            total=breakdown.total,
            completed=counts.get(OrderStatus.COMPLETED.value, 0),
            processing=counts.get(OrderStatus.PROCESSING.value, 0),
            pending=counts.get(OrderStatus.PENDING.value, 0),
            failed=counts.get(OrderStatus.FAILED.value, 0),
            total_amount=float(breakdown.total_amount),
            growth=growth(breakdown.total, breakdown.previous_total),
        )


class TransactionSummaryStats(BaseModel):
    total: int = 0
    approved: int = 0
    pending: int = 0
    rejected: int = 0
    # successful transactions only
    total_amount: float = 0.0
    growth: int = 0

    @classmethod
    def from_breakdown(cls, breakdown: StatusBreakdown) -> "TransactionSummaryStats":
        counts = breakdown.by_status
        approved_amount = sum(
            (amount for status, amount in breakdown.amount_by_status.items()
             if status in SUCCESSFUL_TRANSACTION_STATUSES),
            Decimal("0"),
        )
        return cls(
            total=breakdown.total,
            approved=sum(counts.get(s, 0) for s in SUCCESSFUL_TRANSACTION_STATUSES),
            pending=counts.get(TransactionStatus.PENDING.value, 0),
            rejected=counts.get(TransactionStatus.REJECTED.value, 0),
            total_amount=float(approved_amount),
            growth=growth(breakdown.total, breakdown.previous_total),
        )


class UserSummary(BaseModel):
    total: int = 0
    new: int = 0
    growth: int = 0

    @classmethod
    def from_growth(cls, users: UserGrowth) -> "UserSummary":
        return cls(
            total=users.total,
            new=users.new,
            growth=growth(users.new, users.previous_new),
        )


class ActivityItem(BaseModel):
    kind: str
    id: str
    date: Optional[datetime] = None
    label: Optional[str] = None
    status: str
    amount: float = 0.0

    @classmethod
    def from_activity(cls, activity: Activity) -> "ActivityItem":
        return cls(
            kind=activity.kind,
            id=activity.id,
            date=activity.created_at,
            label=activity.label,
            status=activity.status,
            amount=float(to_decimal(activity.amount)),
        )


class DashboardSummary(BaseModel):
    """System summary shown on the dashboard landing page"""
    orders: OrderSummary = Field(default_factory=OrderSummary)
    transactions: TransactionSummaryStats = Field(default_factory=TransactionSummaryStats)
    users: UserSummary = Field(default_factory=UserSummary)
    recent_activity: List[ActivityItem] = Field(default_factory=list)
    window_days: int
    unavailable: List[str] = Field(default_factory=list)
    last_updated: datetime


def merge_activity(
    orders: List[Activity],
    transactions: List[Activity],
    limit: int,
) -> List[Activity]:
    """Newest first across both feeds; undated entries sort last."""
    merged = list(orders) + list(transactions)
    merged.sort(
        key=lambda a: (a.created_at is not None, a.created_at or datetime.min),
        reverse=True,
    )
    return merged[:limit]


# =============================================================================
# SERVICE
# =============================================================================

class DashboardService:
    """
    Builds the dashboard summary.

    Example:
        service = DashboardService(orders_store, payments_store)
        summary = await service.get_summary()
    """

    def __init__(
        self,
        orders: OrderStatisticsSource,
        payments: TransactionStatisticsSource,
        cache: Optional[CacheManager] = None,
        settings: Optional[MetricsSettings] = None,
    ):
        self.orders = orders
        self.payments = payments
        self.cache = cache
        self.settings = settings or MetricsSettings()

    async def get_summary(self, refresh: bool = False) -> DashboardSummary:
        """
        Cached summary, or a live one when ``refresh`` is set or no cache is
        configured. ``refresh`` never touches the cached entry, which expires
        by TTL only. Summaries with unavailable sections are never cached.
        """
        if self.cache is None or refresh:
            return await self.compute_summary()

        async def factory() -> dict:
            summary = await self.compute_summary()
            return summary.model_dump(mode="json")

        payload = await self.cache.get_or_set(
            SUMMARY_KEY,
            factory,
            ttl=self.settings.dashboard_cache_ttl,
            cache_if=lambda value: not value.get("unavailable"),
        )
        return DashboardSummary.model_validate(payload)

    async def compute_summary(self) -> DashboardSummary:
        window = timedelta(days=self.settings.dashboard_window_days)
        now = datetime.utcnow()
        since = now - window
        previous_since = since - window
        limit = self.settings.recent_activity_limit

        unavailable: List[str] = []

        order_stats, transaction_stats, user_stats, recent_orders, recent_transactions = (
            await asyncio.gather(
                self._section("orders", self.orders.order_statistics(since, previous_since), unavailable),
                self._section(
                    "transactions",
                    self.payments.transaction_statistics(since, previous_since),
                    unavailable,
                ),
                self._section("users", self.orders.user_statistics(since, previous_since), unavailable),
                self._section("recent_orders", self.orders.recent_orders(limit), unavailable),
                self._section(
                    "recent_transactions",
                    self.payments.recent_transactions(limit),
                    unavailable,
                ),
            )
        )

        activity = merge_activity(recent_orders or [], recent_transactions or [], limit)

        summary = DashboardSummary(
            orders=OrderSummary.from_breakdown(order_stats) if order_stats else OrderSummary(),
            transactions=(
                TransactionSummaryStats.from_breakdown(transaction_stats)
                if transaction_stats
                else TransactionSummaryStats()
            ),
            users=UserSummary.from_growth(user_stats) if user_stats else UserSummary(),
            recent_activity=[ActivityItem.from_activity(a) for a in activity],
            window_days=self.settings.dashboard_window_days,
            unavailable=sorted(unavailable),
            last_updated=now,
        )

        logger.info(
            "Dashboard summary computed",
            window_days=summary.window_days,
            orders=summary.orders.total,
            transactions=summary.transactions.total,
            unavailable=summary.unavailable,
        )
        return summary

    @staticmethod
    async def _section(name: str, work: Awaitable[T], unavailable: List[str]) -> Optional[T]:
        try:
            return await work
        except StoreUnavailableError as e:
            logger.warning("Dashboard section unavailable", section=name, error=e.message)
            unavailable.append(name)
            return None
