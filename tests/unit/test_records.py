"""
Unit Tests - Records, status normalization and settings
"""
from decimal import Decimal

import pytest

from admin_panel.config.settings import MetricsSettings, OrdersDatabaseSettings, to_async_url
from admin_panel.database.models import Order
from admin_panel.ingestion.seed_db import SeedGenerator
from admin_panel.reconciliation.metadata import extract_identities, pool_candidates
from admin_panel.reconciliation.records import (
    UserFilters,
    is_successful_transaction,
    normalize_order_status,
    normalize_transaction_status,
    to_decimal,
)
from admin_panel.stores.orders import like_pattern, to_order_record


class TestStatusNormalization:
    @pytest.mark.parametrize("raw,expected", [
        ("completed", "completed"),
        ("Concluído", "completed"),
        ("CANCELLED", "canceled"),
        ("in progress", "processing"),
        ("em-andamento", "processing"),
        ("Parcial", "partial"),
        ("refunded", "refunded"),
        (None, "unknown"),
        ("  ", "unknown"),
    ])
    def test_order_status(self, raw, expected):
        assert normalize_order_status(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("aprovado", "approved"),
        ("PAID", "approved"),
        ("declined", "rejected"),
        ("in_process", "pending"),
    ])
    def test_transaction_status(self, raw, expected):
        assert normalize_transaction_status(raw) == expected

    def test_successful_statuses(self):
        assert is_successful_transaction("approved")
        assert is_successful_transaction("Completed")
        assert not is_successful_transaction("pending")
        assert not is_successful_transaction(None)


class TestToDecimal:
    @pytest.mark.parametrize("value,expected", [
        (None, Decimal("0")),
        ("12.50", Decimal("12.50")),
        (0.1, Decimal("0.1")),
        (7, Decimal("7")),
        ("garbage", Decimal("0")),
    ])
    def test_conversion(self, value, expected):
        assert to_decimal(value) == expected


class TestUserFilters:
    def test_blank_search_is_ignored(self):
        assert UserFilters(search="   ").search_term is None
        assert UserFilters(search="  ana ").search_term == "ana"

    @pytest.mark.parametrize("role", [None, "", "all", "ALL"])
    def test_role_all_disables_filter(self, role):
        assert UserFilters(role=role).role_filter is None

    def test_like_pattern_escapes_wildcards(self):
        assert like_pattern("50%_off") == "%50\\%\\_off%"


class TestSettings:
    def test_postgres_url_uses_asyncpg(self):
        assert to_async_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
        assert to_async_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"

    def test_unconfigured_store(self, monkeypatch):
        monkeypatch.delenv("ORDERS_DB_URL", raising=False)
        monkeypatch.delenv("ORDERS_DATABASE_URL", raising=False)
        assert OrdersDatabaseSettings().async_url is None

    def test_legacy_env_name(self, monkeypatch):
        monkeypatch.delenv("ORDERS_DB_URL", raising=False)
        monkeypatch.setenv("ORDERS_DATABASE_URL", "postgresql://u:p@h/orders")

        settings = OrdersDatabaseSettings()

        assert settings.async_url == "postgresql+asyncpg://u:p@h/orders"

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            MetricsSettings(user_concurrency=0)


class TestSeedGenerator:
    def test_generated_orders_correlate_with_transactions(self):
        dataset = SeedGenerator(seed=7).generate(n_users=20, max_orders=5)

        assert len(dataset.users) == 20
        user_ids = {u["id"] for u in dataset.users}
        assert all(o["user_id"] in user_ids for o in dataset.orders)

        payment_ids = {
            o["order_metadata"]["external_payment_id"]
            for o in dataset.orders
            if isinstance(o["order_metadata"], dict)
        }
        assert any(
            any(pid in t["external_id"] for pid in payment_ids)
            for t in dataset.transactions
        )

    def test_orphan_transactions_are_generated(self):
        dataset = SeedGenerator(seed=7).generate(n_users=10, max_orders=3)
        orphans = [t for t in dataset.transactions if t["external_id"].startswith("ORPHAN-")]

        assert orphans
        assert all(t["amount"] > 0 for t in orphans)

    def test_metadata_feeds_candidate_extraction(self):
        dataset = SeedGenerator(seed=11).generate(n_users=5, max_orders=4)
        records = [to_order_record(Order(**row)) for row in dataset.orders]

        candidates = pool_candidates(extract_identities(records))

        assert candidates
