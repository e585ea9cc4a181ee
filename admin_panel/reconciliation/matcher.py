"""
Cross-Store Matcher

Correlates Payments Store transactions with a user's pooled candidate
identifiers. The correlation rule lives in ``match_transactions``, a pure
function: a transaction matches when its external id contains any candidate
as a substring. Provider ids are sometimes prefixed or suffixed, so equality
is too strict.

Substring matching is unanchored and will over-match short or numeric
candidates (``"12"`` matches ``"PAY-9123"``).
The existing dashboard relies on this matching rule.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Sequence, Set

import structlog

from admin_panel.database.errors import StoreUnavailableError
from admin_panel.reconciliation.records import TransactionRecord

logger = structlog.get_logger(__name__)


class TransactionSource(Protocol):
    """What the matcher needs from the Payments Store."""

    def ensure_configured(self) -> None:
        ...

    async def find_transactions_by_external_id_candidates(
        self, candidates: Set[str]
    ) -> List[TransactionRecord]:
        ...


def _usable_candidates(candidates: Iterable[str]) -> List[str]:
    return sorted({c for c in candidates if c})


def transaction_matches(transaction: TransactionRecord, candidates: Iterable[str]) -> bool:
    external_id = transaction.external_id
    if not external_id:
        return False
    return any(candidate in external_id for candidate in candidates)


def _newest_first_key(transaction: TransactionRecord):
    # undated transactions sort last
    created = transaction.created_at
    return (created is not None, created or datetime.min)


def match_transactions(
    candidates: Iterable[str],
    transactions: Iterable[TransactionRecord],
) -> List[TransactionRecord]:
    """
    Select the transactions correlated with a candidate set.

    Case-sensitive substring containment on ``external_id``. Transactions
    matched through several candidates appear once (first occurrence wins).
    The result is ordered newest first; equal timestamps keep input order.
    """
    usable = _usable_candidates(candidates)
    if not usable:
        return []

    seen: Set[str] = set()
    matched: List[TransactionRecord] = []
    for transaction in transactions:
        if transaction.id in seen:
            continue
        if transaction_matches(transaction, usable):
            seen.add(transaction.id)
            matched.append(transaction)

    return sorted(matched, key=_newest_first_key, reverse=True)


@dataclass(frozen=True)
class MatchResult:
    transactions: Sequence[TransactionRecord] = field(default_factory=tuple)
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None


class TransactionMatcher:
    """
    Queries the Payments Store once per user with the pooled candidates.

    A store failure degrades to "no correlated transactions" and is reported
    on the result instead of being raised.
    """

    def __init__(self, source: TransactionSource):
        self.source = source

    def ensure_configured(self) -> None:
        """Raise StoreConfigurationError now rather than on the first lookup."""
        self.source.ensure_configured()

    async def match(self, candidates: Iterable[str], user_id: Optional[str] = None) -> MatchResult:
        usable = set(_usable_candidates(candidates))
        if not usable:
            return MatchResult()

        try:
            rows = await self.source.find_transactions_by_external_id_candidates(usable)
        except StoreUnavailableError as e:
            logger.warning(
                "Transaction lookup failed, continuing without transactions",
                user_id=user_id,
                candidates=len(usable),
                error=e.message,
            )
            return MatchResult(error=f"transactions_unavailable: {e.message}")

        transactions = match_transactions(usable, rows)
        logger.debug(
            "Transactions matched",
            user_id=user_id,
            candidates=len(usable),
            fetched=len(rows),
            matched=len(transactions),
        )
        return MatchResult(transactions=tuple(transactions))
