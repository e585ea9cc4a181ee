"""
Pagination & Batch Orchestrator

Drives the reconciliation pipeline over one page of users:

    list_users -> per user: list_orders_for_user -> extract identities ->
    pool candidates -> match transactions (one Payments Store query) ->
    aggregate

Users on a page are independent, so they are computed concurrently under a
semaphore sized by ``MetricsSettings.user_concurrency``. ``asyncio.gather``
keeps the store's ordering (newest-created first) regardless of completion
order. When one user fails the whole request, the remaining per-user tasks
are cancelled before the error propagates.
"""

import asyncio
import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Tuple

import structlog
from pydantic import BaseModel, Field

from admin_panel.config.settings import MetricsSettings
from admin_panel.database.errors import StoreConfigurationError, StoreUnavailableError
from admin_panel.reconciliation.aggregator import UserMetrics, aggregate
from admin_panel.reconciliation.matcher import TransactionMatcher
from admin_panel.reconciliation.metadata import extract_identities, pool_candidates
from admin_panel.reconciliation.records import (
    OrderRecord,
    TransactionRecord,
    UserFilters,
    UserRecord,
    normalize_transaction_status,
    to_decimal,
)

logger = structlog.get_logger(__name__)

ORDERS_UNAVAILABLE = "orders_unavailable"
TRANSACTIONS_UNAVAILABLE = "transactions_unavailable"


class InvalidPageRequestError(ValueError):
    """Caller input that cannot be turned into a page request."""


class OrderSource(Protocol):
    """What the orchestrator needs from the Orders Store."""

    def ensure_configured(self) -> None:
        ...

    async def list_users(
        self, filters: UserFilters, page: int, page_size: int
    ) -> Tuple[List[UserRecord], int]:
        ...

    async def list_orders_for_user(self, user_id: str) -> List[OrderRecord]:
        ...

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class UserWithMetrics(BaseModel):
    id: str
    email: str
    name: str = ""
    phone: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metrics: UserMetrics

    @classmethod
    def build(cls, user: UserRecord, metrics: UserMetrics, **extra) -> "UserWithMetrics":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name or "",
            phone=user.phone,
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
            metrics=metrics,
            **extra,
        )


class TransactionSummary(BaseModel):
    id: str
    external_id: Optional[str]
    amount: float
    status: str
    method: Optional[str]
    created_at: Optional[datetime]

    @classmethod
    def from_record(cls, record: TransactionRecord) -> "TransactionSummary":
        return cls(
            id=record.id,
            external_id=record.external_id,
            amount=float(to_decimal(record.amount)),
            status=normalize_transaction_status(record.status),
            method=record.method,
            created_at=record.created_at,
        )


class UserDetail(UserWithMetrics):
    """One user with metrics and the correlated transactions behind them"""
    transactions: List[TransactionSummary] = Field(default_factory=list)


class UsersPage(BaseModel):
    """Paginated user metrics listing"""
    users: List[UserWithMetrics]
    page: int
    totalPages: int
    totalItems: int
    limit: int
    degraded: bool = False


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total_items: int) -> int:
        return math.ceil(total_items / self.limit) if total_items > 0 else 0


def build_page_request(
    page: Optional[int],
    limit: Optional[int],
    settings: MetricsSettings,
) -> PageRequest:
    """
    Validate and bound a page request.

    ``page`` must be at least 1. ``limit`` is clamped into
    [min_page_size, max_page_size]; it is never rejected.

    Raises:
        InvalidPageRequestError: If ``page`` is below 1
    """
    page = 1 if page is None else page
    if page < 1:
        raise InvalidPageRequestError(f"page must be >= 1, got {page}")

    limit = settings.default_page_size if limit is None else limit
    limit = max(settings.min_page_size, min(limit, settings.max_page_size))
    return PageRequest(page=page, limit=limit)


# =============================================================================
# SERVICE
# =============================================================================

class UserMetricsService:
    """
    Builds paginated user metrics across the Orders and Payments stores.

    Example:
        service = UserMetricsService(orders_store, TransactionMatcher(payments_store))
        page = await service.get_users_page(UserFilters(search="ana"), page=1, limit=10)
    """

    def __init__(
        self,
        orders: OrderSource,
        matcher: TransactionMatcher,
        settings: Optional[MetricsSettings] = None,
    ):
        self.orders = orders
        self.matcher = matcher
        self.settings = settings or MetricsSettings()

    async def get_users_page(
        self,
        filters: UserFilters,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> UsersPage:
        """
        Fetch one page of users with their metrics.

        Failures computing one user's metrics are reflected in that user's
        metrics; failure to list the page itself propagates.

        Raises:
            InvalidPageRequestError: Before any store access, for a bad page
            StoreUnavailableError: If the base user page cannot be fetched
            StoreConfigurationError: If either store has no connection string
        """
        request = build_page_request(page, limit, self.settings)
        self.ensure_configured()

        users, total = await self.orders.list_users(filters, request.page, request.limit)
        logger.info(
            "User page fetched",
            page=request.page,
            limit=request.limit,
            users=len(users),
            total=total,
        )

        metrics = await self._compute_page(users)

        rows = [UserWithMetrics.build(user, m) for user, m in zip(users, metrics)]
        degraded = any(m.degraded for m in metrics)
        if degraded:
            logger.warning(
                "User page returned with degraded metrics",
                page=request.page,
                affected=sum(1 for m in metrics if m.degraded),
            )

        return UsersPage(
            users=rows,
            page=request.page,
            totalPages=request.total_pages(total),
            totalItems=total,
            limit=request.limit,
            degraded=degraded,
        )

    async def get_user_detail(self, user_id: str) -> Optional[UserDetail]:
        """One user with metrics and correlated transactions, or None if unknown."""
        self.ensure_configured()
        user = await self.orders.get_user(user_id)
        if user is None:
            return None

        metrics, transactions = await self.compute_user_metrics(user)
        return UserDetail.build(
            user,
            metrics,
            transactions=[TransactionSummary.from_record(t) for t in transactions],
        )

    def ensure_configured(self) -> None:
        """
        Fail fast when either store lacks a connection string.

        A page whose users carry no payment identifiers never queries the
        Payments Store, so its configuration is checked up front.

        Raises:
            StoreConfigurationError: If either store has no connection string
        """
        self.orders.ensure_configured()
        self.matcher.ensure_configured()

    async def _compute_page(self, users: Sequence[UserRecord]) -> List[UserMetrics]:
        semaphore = asyncio.Semaphore(self.settings.user_concurrency)

        async def bounded(user: UserRecord) -> UserMetrics:
            async with semaphore:
                return await self._compute_safely(user)

        tasks = [asyncio.create_task(bounded(user)) for user in users]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def compute_user_metrics(
        self, user: UserRecord
    ) -> Tuple[UserMetrics, Sequence[TransactionRecord]]:
        """
        Run the reconciliation pipeline for one user.

        Orders-store and payments-store round trip failures are soft: the
        affected side is treated as empty and a warning is recorded.
        """
        warnings: List[str] = []

        try:
            orders = await self.orders.list_orders_for_user(user.id)
        except StoreUnavailableError as e:
            logger.warning("Orders lookup failed, continuing without orders", user_id=user.id, error=e.message)
            orders = []
            warnings.append(ORDERS_UNAVAILABLE)

        # every order's identity must be known before the single match query
        identities = extract_identities(orders)
        candidates = pool_candidates(identities)

        result = await self.matcher.match(candidates, user_id=user.id)
        if result.degraded:
            warnings.append(TRANSACTIONS_UNAVAILABLE)

        metrics = aggregate(
            user,
            orders,
            result.transactions,
            identities=identities,
            top_services_limit=self.settings.top_services_limit,
        )
        if warnings:
            metrics = metrics.model_copy(update={"warnings": warnings + metrics.warnings})
        return metrics, result.transactions

    async def _compute_safely(self, user: UserRecord) -> UserMetrics:
        try:
            metrics, _ = await self.compute_user_metrics(user)
            return metrics
        except StoreConfigurationError:
            raise
        except Exception as e:
            logger.exception("User metrics computation failed", user_id=user.id)
            return UserMetrics.failed(user, f"{type(e).__name__}: {e}")
