"""
Window statistics returned by the store gateways for the dashboard summary.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional, Tuple

from admin_panel.reconciliation.records import to_decimal


@dataclass(frozen=True)
class StatusBreakdown:
    """Counts and amounts per canonical status over a time window."""
    total: int = 0
    previous_total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    amount_by_status: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def total_amount(self) -> Decimal:
        return sum(self.amount_by_status.values(), Decimal("0"))

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Tuple[Optional[str], int, Optional[Decimal]]],
        normalize: Callable[[Optional[str]], str],
        previous_total: int,
    ) -> "StatusBreakdown":
        """Fold (raw_status, count, amount) rows; synonyms collapse onto one status."""
        counts: Dict[str, int] = defaultdict(int)
        amounts: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for raw_status, count, amount in rows:
            status = normalize(raw_status)
            counts[status] += int(count or 0)
            amounts[status] += to_decimal(amount)
        return cls(
            total=sum(counts.values()),
            previous_total=previous_total,
            by_status=dict(counts),
            amount_by_status=dict(amounts),
        )


@dataclass(frozen=True)
class UserGrowth:
    total: int = 0
    new: int = 0
    previous_new: int = 0


@dataclass(frozen=True)
class Activity:
    """One entry of the recent activity feed."""
    kind: str
    id: str
    status: str
    amount: Decimal
    created_at: Optional[datetime]
    label: Optional[str] = None
