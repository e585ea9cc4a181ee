"""
Development seed for the Orders and Payments stores.

Creates the tables on both stores and loads Faker-generated users, orders and
transactions. Transactions are correlated with orders only the way production
data is: the order's metadata carries ``external_payment_id`` /
``external_transaction_id`` / ``user_info.email`` and the transaction's
``external_id`` wraps one of those ids with a provider prefix or suffix.

Usage:
    python -m admin_panel.ingestion.seed_db --users 200
"""

import argparse
import asyncio
import json
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from faker import Faker
from sqlalchemy import insert

from admin_panel.config import get_settings
from admin_panel.config.logging import configure_logging
from admin_panel.database.connection import StoreDatabase, build_databases
from admin_panel.database.models import Order, OrdersBase, PaymentsBase, Transaction, User

logger = structlog.get_logger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

ROLES = [("user", 0.85), ("admin", 0.05), ("support", 0.10)]

SERVICES = [
    "instagram_followers",
    "instagram_likes",
    "tiktok_views",
    "youtube_views",
    "twitter_followers",
]

ORDER_STATUSES = [
    ("completed", 0.60),
    ("processing", 0.10),
    ("pending", 0.15),
    ("failed", 0.05),
    ("canceled", 0.05),
    ("partial", 0.05),
]

TRANSACTION_STATUSES = [("approved", 0.75), ("pending", 0.15), ("rejected", 0.10)]

PAYMENT_METHODS = [("pix", 0.6), ("credit_card", 0.3), ("boleto", 0.1)]

# how the provider decorates the id it was given
EXTERNAL_ID_FORMATS = ["{}", "PAY-{}", "{}-01", "MP-{}-SFX"]

# share of orders whose metadata is stored as an encoded string / is garbage
ENCODED_METADATA_RATE = 0.2
MALFORMED_METADATA_RATE = 0.02

CHUNK_SIZE = 1000


def _weighted(choices) -> str:
    values, weights = zip(*choices)
    return random.choices(values, weights=weights)[0]


@dataclass
class SeedDataset:
    users: List[Dict[str, Any]] = field(default_factory=list)
    orders: List[Dict[str, Any]] = field(default_factory=list)
    transactions: List[Dict[str, Any]] = field(default_factory=list)


# =============================================================================
# GENERATOR
# =============================================================================

class SeedGenerator:
    """Generate correlated users, orders and transactions"""

    def __init__(self, seed: Optional[int] = 42, now: Optional[datetime] = None):
        self.fake = Faker()
        if seed is not None:
            random.seed(seed)
            Faker.seed(seed)
        self.now = now or datetime.utcnow()

    def generate(self, n_users: int = 100, max_orders: int = 8) -> SeedDataset:
        dataset = SeedDataset()

        for _ in range(n_users):
            user = self._user()
            dataset.users.append(user)

            for _ in range(random.randint(0, max_orders)):
                order, transaction = self._order(user)
                dataset.orders.append(order)
                if transaction is not None:
                    dataset.transactions.append(transaction)

        # unrelated payments that must never correlate with anyone
        for _ in range(max(1, n_users // 10)):
            dataset.transactions.append(self._orphan_transaction())

        return dataset

    def _user(self) -> Dict[str, Any]:
        created_at = self.fake.date_time_between(start_date="-365d", end_date=self.now)
        return {
            "id": str(uuid.uuid4()),
            "email": self.fake.unique.email(),
            "name": self.fake.name(),
            "phone": self.fake.phone_number() if random.random() > 0.2 else None,
            "role": _weighted(ROLES),
            "created_at": created_at,
            "updated_at": created_at,
        }

    def _order(self, user: Dict[str, Any]) -> tuple:
        order_id = str(uuid.uuid4())
        created_at = self.fake.date_time_between(start_date=user["created_at"], end_date=self.now)
        amount = Decimal(str(round(random.uniform(5, 500), 2)))
        payment_id = f"{random.randint(10_000_000, 99_999_999)}"

        metadata: Dict[str, Any] = {
            "external_payment_id": payment_id,
            "user_info": {"email": user["email"] if random.random() > 0.1 else self.fake.email()},
        }
        if random.random() > 0.5:
            metadata["external_transaction_id"] = f"TX{uuid.uuid4().hex[:12].upper()}"

        stored_metadata: Any = metadata
        roll = random.random()
        if roll < MALFORMED_METADATA_RATE:
            stored_metadata = "{not json"
        elif roll < MALFORMED_METADATA_RATE + ENCODED_METADATA_RATE:
            stored_metadata = json.dumps(metadata)

        order = {
            "id": order_id,
            "user_id": user["id"],
            "status": _weighted(ORDER_STATUSES),
            "amount": amount if random.random() > 0.03 else None,
            "service_id": random.choice(SERVICES),
            "order_metadata": stored_metadata,
            "created_at": created_at,
            "updated_at": created_at,
        }

        transaction = None
        if random.random() > 0.15:
            transaction = {
                "id": str(uuid.uuid4()),
                "external_id": random.choice(EXTERNAL_ID_FORMATS).format(payment_id),
                "amount": amount,
                "status": _weighted(TRANSACTION_STATUSES),
                "method": _weighted(PAYMENT_METHODS) if random.random() > 0.05 else None,
                "provider": random.choice(["mercadopago", "pagseguro"]),
                "created_at": created_at + timedelta(minutes=random.randint(0, 30)),
            }
        return order, transaction

    def _orphan_transaction(self) -> Dict[str, Any]:
        created_at = self.fake.date_time_between(start_date="-90d", end_date=self.now)
        return {
            "id": str(uuid.uuid4()),
            "external_id": f"ORPHAN-{uuid.uuid4().hex[:10].upper()}",
            "amount": Decimal(str(round(random.uniform(5, 500), 2))),
            "status": _weighted(TRANSACTION_STATUSES),
            "method": _weighted(PAYMENT_METHODS),
            "provider": "mercadopago",
            "created_at": created_at,
        }


# =============================================================================
# LOADING
# =============================================================================

async def create_tables(orders_db: StoreDatabase, payments_db: StoreDatabase) -> None:
    async with orders_db.engine.begin() as conn:
        await conn.run_sync(OrdersBase.metadata.create_all)
    async with payments_db.engine.begin() as conn:
        await conn.run_sync(PaymentsBase.metadata.create_all)
    logger.info("Tables created")


async def execute_batch_insert(db: StoreDatabase, model: Any, records: List[Dict[str, Any]]) -> None:
    """Insert records in chunks through a Core insert"""
    if not records:
        return

    async with db.session() as session:
        for i in range(0, len(records), CHUNK_SIZE):
            await session.execute(insert(model), records[i:i + CHUNK_SIZE])
        await session.commit()
    logger.info("Inserted records", table=model.__tablename__, count=len(records))


async def load_dataset(
    orders_db: StoreDatabase,
    payments_db: StoreDatabase,
    dataset: SeedDataset,
) -> None:
    await execute_batch_insert(orders_db, User, dataset.users)
    await execute_batch_insert(orders_db, Order, dataset.orders)
    await execute_batch_insert(payments_db, Transaction, dataset.transactions)


async def main(n_users: int, max_orders: int, seed: Optional[int]) -> None:
    configure_logging()
    logger.info("Starting database seeding...", users=n_users)

    orders_db, payments_db = build_databases(get_settings())
    try:
        await create_tables(orders_db, payments_db)
        dataset = SeedGenerator(seed=seed).generate(n_users, max_orders)
        await load_dataset(orders_db, payments_db, dataset)
        logger.info(
            "Seeding complete",
            users=len(dataset.users),
            orders=len(dataset.orders),
            transactions=len(dataset.transactions),
        )
    finally:
        await orders_db.close()
        await payments_db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the orders and payments stores")
    parser.add_argument("--users", type=int, default=100, help="Number of users")
    parser.add_argument("--max-orders", type=int, default=8, help="Max orders per user")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    args = parser.parse_args()

    asyncio.run(main(args.users, args.max_orders, args.seed))
