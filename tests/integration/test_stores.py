"""
Integration Tests - Store gateways on SQLite
"""
import asyncio
import json
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from admin_panel.config.settings import StoreDatabaseSettings
from admin_panel.database.connection import StoreDatabase
from admin_panel.database.errors import StoreConfigurationError, StoreUnavailableError
from admin_panel.database.models import Order, Transaction, User
from admin_panel.reconciliation import TransactionMatcher, UserFilters, UserMetricsService
from admin_panel.reconciliation.service import ORDERS_UNAVAILABLE, TRANSACTIONS_UNAVAILABLE
from admin_panel.stores import OrdersStore, PaymentsStore

NOW = datetime(2025, 6, 1, 12, 0, 0)


async def add_all(db: StoreDatabase, rows) -> None:
    async with db.session() as session:
        session.add_all(rows)
        await session.commit()


@pytest.fixture
async def seeded_orders_db(orders_db):
    users = [
        User(id="u1", email="ana@example.com", name="Ana Souza", role="admin",
             created_at=NOW - timedelta(days=3)),
        User(id="u2", email="bruno@example.com", name="Bruno Lima", role="user",
             created_at=NOW - timedelta(days=2)),
        User(id="u3", email="carla_100%@example.com", name="Carla", role="user",
             created_at=NOW - timedelta(days=1)),
    ]
    orders = [
        Order(id="o1", user_id="u1", status="concluido", amount=Decimal("100.00"),
              service_id="likes", created_at=NOW - timedelta(days=3),
              order_metadata={"external_payment_id": "XYZ"}),
        Order(id="o2", user_id="u1", status="pending", amount=Decimal("200.00"),
              service_id="views", created_at=NOW - timedelta(days=1),
              order_metadata=json.dumps({"external_transaction_id": "TX-9"})),
        Order(id="o3", user_id="u1", status="completed", amount=None,
              service_id="likes", created_at=NOW - timedelta(days=40),
              order_metadata="{broken"),
        Order(id="o4", user_id="u2", status="Failed", amount=Decimal("50.00"),
              service_id="likes", created_at=NOW - timedelta(hours=1)),
    ]
    await add_all(orders_db, users)
    await add_all(orders_db, orders)
    return orders_db


@pytest.fixture
async def seeded_payments_db(payments_db):
    transactions = [
        Transaction(id="t1", external_id="PFX-XYZ-SFX", amount=Decimal("150.00"),
                    status="approved", method="pix", created_at=NOW - timedelta(days=2)),
        Transaction(id="t2", external_id="TX-9", amount=Decimal("200.00"),
                    status="rejected", method="credit_card", created_at=NOW - timedelta(days=1)),
        Transaction(id="t3", external_id="UNRELATED", amount=Decimal("999.00"),
                    status="approved", method="pix", created_at=NOW - timedelta(days=50)),
        Transaction(id="t4", external_id="A%B", amount=Decimal("1.00"),
                    status="approved", method="pix", created_at=NOW),
    ]
    await add_all(payments_db, transactions)
    return payments_db


class TestOrdersStore:
    """Tests for OrdersStore"""

    async def test_list_users_newest_first(self, seeded_orders_db):
        users, total = await OrdersStore(seeded_orders_db).list_users(UserFilters(), 1, 10)

        assert total == 3
        assert [u.id for u in users] == ["u3", "u2", "u1"]

    async def test_list_users_pagination(self, seeded_orders_db):
        store = OrdersStore(seeded_orders_db)

        first, total = await store.list_users(UserFilters(), 1, 2)
        second, _ = await store.list_users(UserFilters(), 2, 2)

        assert total == 3
        assert [u.id for u in first] == ["u3", "u2"]
        assert [u.id for u in second] == ["u1"]

    async def test_search_matches_name_or_email_case_insensitively(self, seeded_orders_db):
        store = OrdersStore(seeded_orders_db)

        by_name, _ = await store.list_users(UserFilters(search="souza"), 1, 10)
        by_email, _ = await store.list_users(UserFilters(search="BRUNO@"), 1, 10)

        assert [u.id for u in by_name] == ["u1"]
        assert [u.id for u in by_email] == ["u2"]

    async def test_search_wildcards_are_literal(self, seeded_orders_db):
        store = OrdersStore(seeded_orders_db)

        percent, total = await store.list_users(UserFilters(search="100%"), 1, 10)
        underscore, _ = await store.list_users(UserFilters(search="_"), 1, 10)

        assert total == 1
        assert [u.id for u in percent] == ["u3"]
        assert [u.id for u in underscore] == ["u3"]

    async def test_role_filter(self, seeded_orders_db):
        store = OrdersStore(seeded_orders_db)

        admins, total = await store.list_users(UserFilters(role="admin"), 1, 10)
        everyone, _ = await store.list_users(UserFilters(role="all"), 1, 10)

        assert total == 1
        assert [u.id for u in admins] == ["u1"]
        assert len(everyone) == 3

    async def test_list_orders_for_user(self, seeded_orders_db):
        orders = await OrdersStore(seeded_orders_db).list_orders_for_user("u1")

        assert [o.id for o in orders] == ["o2", "o1", "o3"]
        assert orders[1].status == "completed"
        assert orders[1].metadata == {"external_payment_id": "XYZ"}
        assert isinstance(orders[0].metadata, str)
        assert orders[2].amount is None

    async def test_get_user(self, seeded_orders_db):
        store = OrdersStore(seeded_orders_db)

        assert (await store.get_user("u2")).email == "bruno@example.com"
        assert await store.get_user("missing") is None

    async def test_order_statistics(self, seeded_orders_db):
        stats = await OrdersStore(seeded_orders_db).order_statistics(
            NOW - timedelta(days=30), NOW - timedelta(days=60)
        )

        assert stats.total == 3
        assert stats.previous_total == 1
        assert stats.by_status == {"completed": 1, "pending": 1, "failed": 1}
        assert stats.total_amount == Decimal("350.00")

    async def test_user_statistics(self, seeded_orders_db):
        growth = await OrdersStore(seeded_orders_db).user_statistics(
            NOW - timedelta(days=2, hours=12), NOW - timedelta(days=5)
        )

        assert (growth.total, growth.new, growth.previous_new) == (3, 2, 1)

    async def test_recent_orders_carry_user_name(self, seeded_orders_db):
        recent = await OrdersStore(seeded_orders_db).recent_orders(2)

        assert [a.id for a in recent] == ["o4", "o2"]
        assert recent[0].label == "Bruno Lima"
        assert recent[0].status == "failed"


class TestPaymentsStore:
    """Tests for PaymentsStore"""

    async def test_substring_lookup(self, seeded_payments_db):
        rows = await PaymentsStore(seeded_payments_db).find_transactions_by_external_id_candidates(
            {"XYZ", "TX-9"}
        )
        assert [t.id for t in rows] == ["t2", "t1"]

    async def test_empty_candidates_return_nothing(self, seeded_payments_db):
        store = PaymentsStore(seeded_payments_db)
        assert await store.find_transactions_by_external_id_candidates(set()) == []
        assert await store.find_transactions_by_external_id_candidates({""}) == []

    async def test_candidate_wildcards_are_literal(self, seeded_payments_db):
        store = PaymentsStore(seeded_payments_db)

        literal = await store.find_transactions_by_external_id_candidates({"A%B"})
        wildcard = await store.find_transactions_by_external_id_candidates({"%"})

        assert [t.id for t in literal] == ["t4"]
        assert [t.id for t in wildcard] == ["t4"]

    async def test_transaction_statistics(self, seeded_payments_db):
        stats = await PaymentsStore(seeded_payments_db).transaction_statistics(
            NOW - timedelta(days=30), NOW - timedelta(days=60)
        )

        assert stats.total == 3
        assert stats.previous_total == 1
        assert stats.by_status == {"approved": 2, "rejected": 1}

    async def test_recent_transactions(self, seeded_payments_db):
        recent = await PaymentsStore(seeded_payments_db).recent_transactions(2)
        assert [a.id for a in recent] == ["t4", "t2"]


class TestEndToEnd:
    """The full pipeline over both SQLite stores"""

    async def test_users_page(self, seeded_orders_db, seeded_payments_db, metrics_settings):
        service = UserMetricsService(
            OrdersStore(seeded_orders_db),
            TransactionMatcher(PaymentsStore(seeded_payments_db)),
            metrics_settings,
        )

        page = await service.get_users_page(UserFilters(search="ana"), page=1, limit=10)

        assert page.totalItems == 1
        metrics = page.users[0].metrics
        assert metrics.orders_count == 3
        assert metrics.total_spent == 300
        assert metrics.transactions_count == 2
        assert metrics.total_payments == 150
        assert metrics.payment_methods == {"credit_card": 1, "pix": 1}
        assert metrics.last_transaction.id == "t2"
        assert metrics.warnings == ["metadata_unparseable:o3"]
        assert page.degraded


class TestStoreDatabase:
    async def test_missing_connection_string(self):
        db = StoreDatabase("orders", StoreDatabaseSettings())

        with pytest.raises(StoreConfigurationError):
            await OrdersStore(db).list_users(UserFilters(), 1, 10)

        assert (await db.check_health())["status"] == "unconfigured"

    async def test_health_of_live_store(self, orders_db):
        health = await orders_db.check_health()
        assert health["status"] == "healthy"

    async def test_unconfigured_store_fails_fast(self):
        db = StoreDatabase("payments", StoreDatabaseSettings())

        with pytest.raises(StoreConfigurationError):
            PaymentsStore(db).ensure_configured()

    async def test_round_trip_timeout(self, orders_db):
        db = with_timeout(orders_db, 0.05)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await db.run(stall, operation="list_orders_for_user")

        assert exc_info.value.store == "orders"
        assert exc_info.value.operation == "list_orders_for_user"
        assert "timed out" in exc_info.value.message


def with_timeout(db: StoreDatabase, seconds: float) -> StoreDatabase:
    """Same engine, much shorter per round-trip timeout."""
    return StoreDatabase(db.name, StoreDatabaseSettings(query_timeout=seconds), engine=db.engine)


async def stall(session):
    await asyncio.sleep(1)


class StalledOrdersStore(OrdersStore):
    async def list_orders_for_user(self, user_id):
        return await self.db.run(stall, operation="list_orders_for_user")


class StalledPaymentsStore(PaymentsStore):
    async def find_transactions_by_external_id_candidates(self, candidates):
        return await self.db.run(stall, operation="find_transactions_by_external_id_candidates")


class TestTimeoutDegradation:
    """A timed-out round trip degrades only the affected user's metrics"""

    async def test_orders_timeout(self, seeded_orders_db, seeded_payments_db, metrics_settings):
        service = UserMetricsService(
            StalledOrdersStore(with_timeout(seeded_orders_db, 0.05)),
            TransactionMatcher(PaymentsStore(seeded_payments_db)),
            metrics_settings,
        )

        page = await service.get_users_page(UserFilters(search="ana"))

        metrics = page.users[0].metrics
        assert metrics.warnings == [ORDERS_UNAVAILABLE]
        assert metrics.orders_count == 0
        assert page.degraded

    async def test_payments_timeout(self, seeded_orders_db, seeded_payments_db, metrics_settings):
        service = UserMetricsService(
            OrdersStore(seeded_orders_db),
            TransactionMatcher(StalledPaymentsStore(with_timeout(seeded_payments_db, 0.05))),
            metrics_settings,
        )

        page = await service.get_users_page(UserFilters(search="ana"))

        metrics = page.users[0].metrics
        assert TRANSACTIONS_UNAVAILABLE in metrics.warnings
        assert metrics.orders_count == 3
        assert metrics.transactions_count == 0
        assert page.degraded
