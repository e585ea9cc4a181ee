"""
Payments Store gateway

Transactions are looked up by substring containment of candidate ids in
``external_id``. Candidates are bound as parameters with LIKE wildcards
escaped, so a candidate containing ``%`` or ``_`` matches literally.
"""

from datetime import datetime
from typing import Iterable, List

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from admin_panel.database.connection import StoreDatabase
from admin_panel.database.models import Transaction
from admin_panel.reconciliation.records import (
    TransactionRecord,
    normalize_transaction_status,
)
from admin_panel.stores.statistics import Activity, StatusBreakdown

logger = structlog.get_logger(__name__)


def to_transaction_record(transaction: Transaction) -> TransactionRecord:
    return TransactionRecord(
        id=str(transaction.id),
        external_id=transaction.external_id,
        status=transaction.status,
        amount=transaction.amount,
        method=transaction.method,
        created_at=transaction.created_at,
    )


class PaymentsStore:
    """Read operations against the Payments Store."""

    def __init__(self, db: StoreDatabase):
        self.db = db

    def ensure_configured(self) -> None:
        self.db.ensure_configured()

    async def find_transactions_by_external_id_candidates(
        self, candidates: Iterable[str]
    ) -> List[TransactionRecord]:
        """
        Transactions whose external id contains any of the candidates, newest first.

        An empty candidate set returns [] without touching the store.
        """
        usable = sorted({c for c in candidates if c})
        if not usable:
            return []

        async def work(session: AsyncSession) -> List[TransactionRecord]:
            result = await session.execute(
                select(Transaction)
                .where(
                    or_(*[
                        Transaction.external_id.contains(candidate, autoescape=True)
                        for candidate in usable
                    ])
                )
                .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            )
            return [to_transaction_record(t) for t in result.scalars().all()]

        rows = await self.db.run(work, operation="find_transactions_by_external_id_candidates")
        logger.debug("Transactions fetched", candidates=len(usable), rows=len(rows))
        return rows

    async def transaction_statistics(
        self, since: datetime, previous_since: datetime
    ) -> StatusBreakdown:
        """Transactions per canonical status since ``since``, plus the previous window's count."""
        async def work(session: AsyncSession) -> StatusBreakdown:
            current = await session.execute(
                select(
                    Transaction.status,
                    func.count(Transaction.id),
                    func.sum(Transaction.amount),
                )
                .where(Transaction.created_at >= since)
                .group_by(Transaction.status)
            )
            previous = await session.execute(
                select(func.count(Transaction.id)).where(
                    and_(
                        Transaction.created_at >= previous_since,
                        Transaction.created_at < since,
                    )
                )
            )
            return StatusBreakdown.from_rows(
                current.all(),
                normalize_transaction_status,
                previous_total=previous.scalar() or 0,
            )

        return await self.db.run(work, operation="transaction_statistics")

    async def recent_transactions(self, limit: int) -> List[Activity]:
        async def work(session: AsyncSession) -> List[Activity]:
            result = await session.execute(
                select(Transaction)
                .order_by(Transaction.created_at.desc())
                .limit(limit)
            )
            return [
                Activity(
                    kind="transaction",
                    id=str(t.id),
                    status=normalize_transaction_status(t.status),
                    amount=t.amount,
                    created_at=t.created_at,
                    label=t.method,
                )
                for t in result.scalars().all()
            ]

        return await self.db.run(work, operation="recent_transactions")
