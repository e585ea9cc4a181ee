"""
Database Models - Orders Store and Payments Store

The two stores are owned by different services and share no foreign keys.
Each store has its own declarative base so that its metadata can be created
against its own engine:

Orders Store (OrdersBase):
- User: base user identity shown in the admin listing
- Order: purchase records with a loosely-typed metadata document

Payments Store (PaymentsBase):
- Transaction: payment records identified by a provider external id

A Transaction is correlated to an Order only through identifiers embedded in
the order's metadata (see admin_panel.reconciliation.metadata).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
import uuid

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
MetadataDocument = JSON().with_variant(JSONB(), "postgresql")


class OrdersBase(DeclarativeBase):
    """Base class for Orders Store models"""
    pass


class PaymentsBase(DeclarativeBase):
    """Base class for Payments Store models"""
    pass


# =============================================================================
# ORDERS STORE
# =============================================================================

class User(OrdersBase):
    """
    User Table

    Owned by the Orders Store. One user has zero or more orders.
    """
    __tablename__ = "User"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    role: Mapped[str] = mapped_column(String(50), default="user", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    orders: Mapped[List["Order"]] = relationship(back_populates="user")

    __table_args__ = (
        Index("ix_user_created_at", "created_at"),
        Index("ix_user_role", "role"),
    )


class Order(OrdersBase):
    """
    Order Table

    Purchase records. ``metadata`` is an opaque document that may hold
    ``external_payment_id``, ``external_transaction_id`` and
    ``user_info.email``; it is sometimes stored as an encoded string.
    """
    __tablename__ = "Order"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("User.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    service_id: Mapped[Optional[str]] = mapped_column(String(100))
    # "metadata" is reserved on declarative classes
    order_metadata: Mapped[Optional[Any]] = mapped_column("metadata", MetadataDocument)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    user: Mapped["User"] = relationship(back_populates="orders")

    __table_args__ = (
        Index("ix_order_user_created", "user_id", "created_at"),
        Index("ix_order_status", "status"),
    )


# =============================================================================
# PAYMENTS STORE
# =============================================================================

class Transaction(PaymentsBase):
    """
    Transaction Table

    Payment records. ``external_id`` is the provider identifier, sometimes
    prefixed or suffixed by the provider; it has no declared relation to
    any order or user.
    """
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    external_id: Mapped[Optional[str]] = mapped_column(String(255))
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    status: Mapped[str] = mapped_column(String(50), default="pending", nullable=False)
    method: Mapped[Optional[str]] = mapped_column(String(50))
    provider: Mapped[Optional[str]] = mapped_column(String(50))
    description: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("ix_transactions_external_id", "external_id"),
        Index("ix_transactions_created_at", "created_at"),
    )
