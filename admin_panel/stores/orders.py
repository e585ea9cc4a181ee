"""
Orders Store gateway

Parameterized reads against the orders database: users, a user's orders and
the dashboard aggregates. Rows are mapped to plain records before the
session closes.
"""

from datetime import datetime
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from admin_panel.database.connection import StoreDatabase
from admin_panel.database.models import Order, User
from admin_panel.reconciliation.records import (
    OrderRecord,
    UserFilters,
    UserRecord,
    normalize_order_status,
)
from admin_panel.stores.statistics import Activity, StatusBreakdown, UserGrowth

logger = structlog.get_logger(__name__)

LIKE_ESCAPE = "\\"


def like_pattern(term: str) -> str:
    """Wrap a search term for a substring LIKE, escaping its wildcards."""
    escaped = (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


def to_user_record(user: User) -> UserRecord:
    return UserRecord(
        id=str(user.id),
        email=user.email,
        name=user.name,
        phone=user.phone,
        role=user.role,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def to_order_record(order: Order) -> OrderRecord:
    return OrderRecord(
        id=str(order.id),
        user_id=str(order.user_id),
        status=normalize_order_status(order.status),
        amount=order.amount,
        created_at=order.created_at,
        service_id=order.service_id,
        metadata=order.order_metadata,
    )


class OrdersStore:
    """Read operations against the Orders Store."""

    def __init__(self, db: StoreDatabase):
        self.db = db

    def ensure_configured(self) -> None:
        self.db.ensure_configured()

    @staticmethod
    def _user_conditions(filters: UserFilters) -> list:
        conditions = []
        if filters.role_filter:
            conditions.append(User.role == filters.role_filter)
        if filters.search_term:
            pattern = like_pattern(filters.search_term)
            conditions.append(
                or_(
                    User.name.ilike(pattern, escape=LIKE_ESCAPE),
                    User.email.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )
        return conditions

    async def list_users(
        self,
        filters: UserFilters,
        page: int,
        page_size: int,
    ) -> Tuple[List[UserRecord], int]:
        """
        One page of users, newest created first, plus the filtered total.

        Args:
            filters: Free text (name/email, case-insensitive) and role
            page: 1-indexed page number
            page_size: Rows per page
        """
        conditions = self._user_conditions(filters)
        offset = (page - 1) * page_size

        async def work(session: AsyncSession) -> Tuple[List[UserRecord], int]:
            count_query = select(func.count(User.id))
            query = select(User)
            if conditions:
                count_query = count_query.where(and_(*conditions))
                query = query.where(and_(*conditions))

            total = (await session.execute(count_query)).scalar() or 0

            query = (
                query.order_by(User.created_at.desc(), User.id.desc())
                .offset(offset)
                .limit(page_size)
            )
            result = await session.execute(query)
            return [to_user_record(u) for u in result.scalars().all()], total

        users, total = await self.db.run(work, operation="list_users")
        logger.debug(
            "Users listed",
            search=filters.search_term,
            role=filters.role_filter,
            page=page,
            page_size=page_size,
            total=total,
        )
        return users, total

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        async def work(session: AsyncSession) -> Optional[UserRecord]:
            result = await session.execute(select(User).where(User.id == user_id))
            user = result.scalar_one_or_none()
            return to_user_record(user) if user is not None else None

        return await self.db.run(work, operation="get_user")

    async def list_orders_for_user(self, user_id: str) -> List[OrderRecord]:
        """All of a user's orders, newest first."""
        async def work(session: AsyncSession) -> List[OrderRecord]:
            result = await session.execute(
                select(Order)
                .where(Order.user_id == user_id)
                .order_by(Order.created_at.desc(), Order.id.desc())
            )
            return [to_order_record(o) for o in result.scalars().all()]

        return await self.db.run(work, operation="list_orders_for_user")

    # =========================================================================
    # DASHBOARD AGGREGATES
    # =========================================================================

    async def order_statistics(self, since: datetime, previous_since: datetime) -> StatusBreakdown:
        """Orders per canonical status since ``since``, plus the previous window's count."""
        async def work(session: AsyncSession) -> StatusBreakdown:
            current = await session.execute(
                select(Order.status, func.count(Order.id), func.sum(Order.amount))
                .where(Order.created_at >= since)
                .group_by(Order.status)
            )
            previous = await session.execute(
                select(func.count(Order.id)).where(
                    and_(Order.created_at >= previous_since, Order.created_at < since)
                )
            )
            return StatusBreakdown.from_rows(
                current.all(),
                normalize_order_status,
                previous_total=previous.scalar() or 0,
            )

        return await self.db.run(work, operation="order_statistics")

    async def user_statistics(self, since: datetime, previous_since: datetime) -> UserGrowth:
        async def work(session: AsyncSession) -> UserGrowth:
            total = (await session.execute(select(func.count(User.id)))).scalar() or 0
            new = (
                await session.execute(select(func.count(User.id)).where(User.created_at >= since))
            ).scalar() or 0
            previous_new = (
                await session.execute(
                    select(func.count(User.id)).where(
                        and_(User.created_at >= previous_since, User.created_at < since)
                    )
                )
            ).scalar() or 0
            return UserGrowth(total=total, new=new, previous_new=previous_new)

        return await self.db.run(work, operation="user_statistics")

    async def recent_orders(self, limit: int) -> List[Activity]:
        async def work(session: AsyncSession) -> List[Activity]:
            result = await session.execute(
                select(Order, User.name)
                .outerjoin(User, Order.user_id == User.id)
                .order_by(Order.created_at.desc())
                .limit(limit)
            )
            return [
                Activity(
                    kind="order",
                    id=str(order.id),
                    status=normalize_order_status(order.status),
                    amount=order.amount,
                    created_at=order.created_at,
                    label=name,
                )
                for order, name in result.all()
            ]

        return await self.db.run(work, operation="recent_orders")
