"""
Identity Extractor

Order metadata is a loosely-typed document: sometimes a dict (JSON/JSONB
column), sometimes a JSON-encoded string, sometimes absent. It is parsed into
one of three explicit shapes before anything reads from it:

- EmptyMetadata: no metadata at all
- ParsedMetadata: a JSON object
- UnparseableMetadata: anything else (invalid JSON, a JSON array, a number)

Candidate identifiers are read only from ParsedMetadata. A failure on one
order is logged and contributes nothing; it never affects sibling orders.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Union

import structlog

from admin_panel.reconciliation.records import OrderRecord

logger = structlog.get_logger(__name__)

PAYMENT_ID_KEY = "external_payment_id"
TRANSACTION_ID_KEY = "external_transaction_id"
USER_INFO_KEY = "user_info"
EMAIL_KEY = "email"


@dataclass(frozen=True)
class EmptyMetadata:
    pass


@dataclass(frozen=True)
class ParsedMetadata:
    fields: Dict[str, Any]


@dataclass(frozen=True)
class UnparseableMetadata:
    reason: str


MetadataDocument = Union[EmptyMetadata, ParsedMetadata, UnparseableMetadata]


def parse_metadata(raw: Any) -> MetadataDocument:
    """
    Parse an order's raw metadata. Never raises.

    Args:
        raw: Value of the metadata column as returned by the driver

    Returns:
        One of EmptyMetadata, ParsedMetadata, UnparseableMetadata
    """
    if raw is None:
        return EmptyMetadata()

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            return UnparseableMetadata(f"invalid encoding: {e}")

    if isinstance(raw, str):
        if not raw.strip():
            return EmptyMetadata()
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            return UnparseableMetadata(f"invalid JSON: {e.msg}")
        if raw is None:
            return EmptyMetadata()

    if isinstance(raw, dict):
        return ParsedMetadata(fields=raw)

    return UnparseableMetadata(f"expected an object, got {type(raw).__name__}")


def _clean(value: Any) -> Optional[str]:
    """Identifiers may be stored as numbers; blanks are treated as absent."""
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class OrderIdentity:
    """Identifiers embedded in one order's metadata."""
    order_id: str
    payment_ids: FrozenSet[str] = field(default_factory=frozenset)
    transaction_ids: FrozenSet[str] = field(default_factory=frozenset)
    emails: FrozenSet[str] = field(default_factory=frozenset)
    parse_failed: bool = False

    @property
    def candidates(self) -> FrozenSet[str]:
        return self.payment_ids | self.transaction_ids | self.emails


def extract_identity(order: OrderRecord) -> OrderIdentity:
    """
    Extract external_payment_id, external_transaction_id and user_info.email
    from an order's metadata.
    """
    document = parse_metadata(order.metadata)

    if isinstance(document, EmptyMetadata):
        return OrderIdentity(order_id=order.id)

    if isinstance(document, UnparseableMetadata):
        logger.warning(
            "Unparseable order metadata",
            order_id=order.id,
            user_id=order.user_id,
            reason=document.reason,
        )
        return OrderIdentity(order_id=order.id, parse_failed=True)

    fields = document.fields
    payment_id = _clean(fields.get(PAYMENT_ID_KEY))
    transaction_id = _clean(fields.get(TRANSACTION_ID_KEY))

    email = None
    user_info = fields.get(USER_INFO_KEY)
    if isinstance(user_info, dict):
        email = _clean(user_info.get(EMAIL_KEY))

    return OrderIdentity(
        order_id=order.id,
        payment_ids=frozenset([payment_id] if payment_id else []),
        transaction_ids=frozenset([transaction_id] if transaction_id else []),
        emails=frozenset([email] if email else []),
    )


def extract_candidates(order: OrderRecord) -> FrozenSet[str]:
    """Flat set of candidate identifiers for one order (empty on any failure)."""
    return extract_identity(order).candidates


def extract_identities(orders: Iterable[OrderRecord]) -> List[OrderIdentity]:
    return [extract_identity(order) for order in orders]


def pool_candidates(identities: Iterable[OrderIdentity]) -> FrozenSet[str]:
    """Union of every order's candidates, for one Payments Store query per user."""
    pooled: set = set()
    for identity in identities:
        pooled |= identity.candidates
    return frozenset(pooled)
