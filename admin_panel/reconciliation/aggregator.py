"""
Metrics Aggregator

Reduces one user's orders and correlated transactions into a UserMetrics
projection. Pure and deterministic: the same inputs always produce the same
output, and missing optional fields never raise.
"""

from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from admin_panel.reconciliation.metadata import OrderIdentity, extract_identities
from admin_panel.reconciliation.records import (
    OrderRecord,
    TransactionRecord,
    UserRecord,
    is_successful_transaction,
    normalize_order_status,
    normalize_transaction_status,
    to_decimal,
)

TOP_SERVICES_LIMIT = 3
UNKNOWN_METHOD = "unknown"
SECONDS_PER_DAY = 86400


# =============================================================================
# METRICS MODELS
# =============================================================================

class LastPurchase(BaseModel):
    """Snapshot of the most recent order"""
    id: str
    date: Optional[datetime]
    status: str
    amount: float


class LastTransaction(BaseModel):
    """Snapshot of the most recent correlated transaction"""
    id: str
    external_id: Optional[str]
    date: Optional[datetime]
    status: str
    amount: float
    method: Optional[str]


class ServiceCount(BaseModel):
    service_name: str
    count: int


class UserMetrics(BaseModel):
    """Derived, per-request view of a user's orders and payments"""
    orders_count: int = 0
    total_spent: float = 0.0
    avg_order_value: float = 0.0
    last_purchase: Optional[LastPurchase] = None
    top_services: List[ServiceCount] = Field(default_factory=list)
    purchase_frequency: Optional[float] = None

    transactions_count: int = 0
    total_payments: float = 0.0
    last_transaction: Optional[LastTransaction] = None
    payment_methods: Dict[str, int] = Field(default_factory=dict)
    preferred_payment_method: Optional[str] = None

    external_payment_ids: List[str] = Field(default_factory=list)
    user_emails: List[str] = Field(default_factory=list)

    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failed(cls, user: UserRecord, error: str) -> "UserMetrics":
        """Zero/empty aggregates for a user whose pipeline failed."""
        return cls(
            user_emails=[user.email] if user.email else [],
            error=error,
        )

    @property
    def degraded(self) -> bool:
        return bool(self.warnings) or self.error is not None


# =============================================================================
# AGGREGATION
# =============================================================================

def _newest_first(orders: Sequence[OrderRecord]) -> List[OrderRecord]:
    return sorted(
        orders,
        key=lambda o: (o.created_at is not None, o.created_at or datetime.min),
        reverse=True,
    )


def _ordered_unique(values: Iterable[Optional[str]]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _unique_by_id(transactions: Iterable[TransactionRecord]) -> List[TransactionRecord]:
    seen = set()
    result = []
    for transaction in transactions:
        if transaction.id not in seen:
            seen.add(transaction.id)
            result.append(transaction)
    return result


def _oldest_first(orders: Sequence[OrderRecord]) -> List[OrderRecord]:
    # undated orders sort last; equal timestamps keep input order
    return sorted(
        orders,
        key=lambda o: (o.created_at is None, o.created_at or datetime.min),
    )


def top_services(orders: Sequence[OrderRecord], limit: int = TOP_SERVICES_LIMIT) -> List[ServiceCount]:
    """
    Most ordered services, highest count first.

    Orders are counted in creation order, oldest first, whatever order they
    arrive in. Equal counts keep the service whose first order was created
    earliest ahead. Orders without a service id are ignored.
    """
    counts = Counter(o.service_id for o in _oldest_first(orders) if o.service_id)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [ServiceCount(service_name=name, count=count) for name, count in ranked[:limit]]


def count_payment_methods(transactions: Sequence[TransactionRecord]) -> Dict[str, int]:
    """Method -> count, highest first; ties keep first-encountered order."""
    counts = Counter((t.method or UNKNOWN_METHOD) for t in transactions)
    return dict(sorted(counts.items(), key=lambda item: item[1], reverse=True))


def purchase_frequency(orders: Sequence[OrderRecord]) -> Optional[float]:
    """Average number of days between consecutive orders."""
    dates = sorted(o.created_at for o in orders if o.created_at is not None)
    if len(dates) < 2:
        return None
    span_days = (dates[-1] - dates[0]).total_seconds() / SECONDS_PER_DAY
    return round(span_days / (len(dates) - 1), 2)


def aggregate(
    user: UserRecord,
    orders: Sequence[OrderRecord],
    transactions: Sequence[TransactionRecord],
    identities: Optional[Sequence[OrderIdentity]] = None,
    top_services_limit: int = TOP_SERVICES_LIMIT,
) -> UserMetrics:
    """
    Build the metrics for one user.

    Args:
        user: Base user record
        orders: The user's orders
        transactions: Correlated transactions, newest first and deduplicated
            (as returned by the matcher)
        identities: Identities already extracted from ``orders``; extracted
            here when omitted

    Raises:
        ValueError: If ``user`` or ``orders`` is missing
    """
    if user is None:
        raise ValueError("aggregate() requires a user")
    if orders is None:
        raise ValueError("aggregate() requires an orders sequence")
    transactions = _unique_by_id(transactions or ())

    if identities is None:
        identities = extract_identities(orders)

    orders_count = len(orders)
    total_spent = sum((to_decimal(o.amount) for o in orders), Decimal("0"))
    avg_order_value = total_spent / orders_count if orders_count else Decimal("0")

    last_purchase = None
    if orders:
        newest = _newest_first(orders)[0]
        last_purchase = LastPurchase(
            id=newest.id,
            date=newest.created_at,
            status=normalize_order_status(newest.status),
            amount=float(to_decimal(newest.amount)),
        )

    total_payments = sum(
        (to_decimal(t.amount) for t in transactions if is_successful_transaction(t.status)),
        Decimal("0"),
    )

    last_transaction = None
    if transactions:
        head = transactions[0]
        last_transaction = LastTransaction(
            id=head.id,
            external_id=head.external_id,
            date=head.created_at,
            status=normalize_transaction_status(head.status),
            amount=float(to_decimal(head.amount)),
            method=head.method,
        )

    methods = count_payment_methods(transactions)
    preferred = next(iter(methods), None)

    warnings = [
        f"metadata_unparseable:{identity.order_id}"
        for identity in identities
        if identity.parse_failed
    ]

    return UserMetrics(
        orders_count=orders_count,
        total_spent=float(total_spent),
        avg_order_value=float(avg_order_value),
        last_purchase=last_purchase,
        top_services=top_services(orders, top_services_limit),
        purchase_frequency=purchase_frequency(orders),
        transactions_count=len(transactions),
        total_payments=float(total_payments),
        last_transaction=last_transaction,
        payment_methods=methods,
        preferred_payment_method=preferred,
        external_payment_ids=_ordered_unique(
            pid for identity in identities for pid in sorted(identity.payment_ids)
        ),
        user_emails=_ordered_unique(
            [user.email] + [e for identity in identities for e in sorted(identity.emails)]
        ),
        warnings=warnings,
    )
