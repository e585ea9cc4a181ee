"""
Store-independent records

Plain, immutable rows handed from the store gateways to the reconciliation
core, plus status normalization. The core never sees ORM objects, so it can
be exercised with in-memory fakes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional


class OrderStatus(str, Enum):
    """Canonical order status"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"
    PARTIAL = "partial"


class TransactionStatus(str, Enum):
    """Canonical transaction status"""
    APPROVED = "approved"
    COMPLETED = "completed"
    PENDING = "pending"
    REJECTED = "rejected"


ORDER_STATUS_SYNONYMS: Dict[str, OrderStatus] = {
    "pending": OrderStatus.PENDING,
    "pendente": OrderStatus.PENDING,
    "waiting": OrderStatus.PENDING,
    "aguardando": OrderStatus.PENDING,
    "processing": OrderStatus.PROCESSING,
    "processando": OrderStatus.PROCESSING,
    "in_progress": OrderStatus.PROCESSING,
    "em_andamento": OrderStatus.PROCESSING,
    "completed": OrderStatus.COMPLETED,
    "complete": OrderStatus.COMPLETED,
    "success": OrderStatus.COMPLETED,
    "concluido": OrderStatus.COMPLETED,
    "concluído": OrderStatus.COMPLETED,
    "completo": OrderStatus.COMPLETED,
    "failed": OrderStatus.FAILED,
    "error": OrderStatus.FAILED,
    "falha": OrderStatus.FAILED,
    "erro": OrderStatus.FAILED,
    "canceled": OrderStatus.CANCELED,
    "cancelled": OrderStatus.CANCELED,
    "cancelado": OrderStatus.CANCELED,
    "partial": OrderStatus.PARTIAL,
    "parcial": OrderStatus.PARTIAL,
}

TRANSACTION_STATUS_SYNONYMS: Dict[str, TransactionStatus] = {
    "approved": TransactionStatus.APPROVED,
    "aprovado": TransactionStatus.APPROVED,
    "aprovada": TransactionStatus.APPROVED,
    "paid": TransactionStatus.APPROVED,
    "pago": TransactionStatus.APPROVED,
    "completed": TransactionStatus.COMPLETED,
    "complete": TransactionStatus.COMPLETED,
    "concluido": TransactionStatus.COMPLETED,
    "concluído": TransactionStatus.COMPLETED,
    "pending": TransactionStatus.PENDING,
    "pendente": TransactionStatus.PENDING,
    "in_process": TransactionStatus.PENDING,
    "rejected": TransactionStatus.REJECTED,
    "recusado": TransactionStatus.REJECTED,
    "recusada": TransactionStatus.REJECTED,
    "rejeitado": TransactionStatus.REJECTED,
    "declined": TransactionStatus.REJECTED,
}

SUCCESSFUL_TRANSACTION_STATUSES = frozenset(
    {TransactionStatus.APPROVED.value, TransactionStatus.COMPLETED.value}
)


def _normalize(raw: Optional[str], synonyms: Dict[str, Enum]) -> str:
    if raw is None:
        return "unknown"
    key = str(raw).strip().lower().replace(" ", "_").replace("-", "_")
    if not key:
        return "unknown"
    canonical = synonyms.get(key)
    return canonical.value if canonical is not None else key


def normalize_order_status(raw: Optional[str]) -> str:
    """
    Map a store-specific order status onto the canonical vocabulary.

    Unknown values are returned lower-cased rather than rejected.
    """
    return _normalize(raw, ORDER_STATUS_SYNONYMS)


def normalize_transaction_status(raw: Optional[str]) -> str:
    """Map a store-specific transaction status onto the canonical vocabulary."""
    return _normalize(raw, TRANSACTION_STATUS_SYNONYMS)


def is_successful_transaction(status: str) -> bool:
    return normalize_transaction_status(status) in SUCCESSFUL_TRANSACTION_STATUSES


def to_decimal(value: Any) -> Decimal:
    """Convert a stored amount to Decimal; missing or garbage amounts count as zero."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        # via str() so a float 0.1 becomes Decimal("0.1")
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


@dataclass(frozen=True)
class UserFilters:
    """Listing filters: free text on name/email and role equality."""
    search: Optional[str] = None
    role: Optional[str] = None

    @property
    def search_term(self) -> Optional[str]:
        if self.search is None:
            return None
        term = self.search.strip()
        return term or None

    @property
    def role_filter(self) -> Optional[str]:
        if self.role is None:
            return None
        role = self.role.strip()
        if not role or role.lower() == "all":
            return None
        return role


@dataclass(frozen=True)
class UserRecord:
    id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class OrderRecord:
    id: str
    user_id: str
    status: str
    amount: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    service_id: Optional[str] = None
    # dict, encoded string or None, exactly as stored
    metadata: Any = field(default=None, compare=False)


@dataclass(frozen=True)
class TransactionRecord:
    id: str
    external_id: Optional[str]
    status: str
    amount: Optional[Decimal] = None
    method: Optional[str] = None
    created_at: Optional[datetime] = None
