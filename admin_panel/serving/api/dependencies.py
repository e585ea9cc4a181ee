"""
FastAPI dependencies

Route handlers receive stores and services through these providers so tests
can swap them with ``app.dependency_overrides``.
"""

from fastapi import Depends

from admin_panel.config import get_settings
from admin_panel.config.settings import MetricsSettings
from admin_panel.database import get_orders_database, get_payments_database
from admin_panel.reconciliation import TransactionMatcher, UserMetricsService
from admin_panel.serving.cache import CacheManager
from admin_panel.serving.dashboard import CACHE_NAMESPACE, DashboardService
from admin_panel.stores import OrdersStore, PaymentsStore


def get_metrics_settings() -> MetricsSettings:
    return get_settings().metrics


def get_orders_store() -> OrdersStore:
    return OrdersStore(get_orders_database())


def get_payments_store() -> PaymentsStore:
    return PaymentsStore(get_payments_database())


def get_user_metrics_service(
    orders: OrdersStore = Depends(get_orders_store),
    payments: PaymentsStore = Depends(get_payments_store),
    settings: MetricsSettings = Depends(get_metrics_settings),
) -> UserMetricsService:
    return UserMetricsService(orders, TransactionMatcher(payments), settings)


def get_dashboard_service(
    orders: OrdersStore = Depends(get_orders_store),
    payments: PaymentsStore = Depends(get_payments_store),
    settings: MetricsSettings = Depends(get_metrics_settings),
) -> DashboardService:
    cache = CacheManager(CACHE_NAMESPACE, default_ttl=settings.dashboard_cache_ttl)
    return DashboardService(orders, payments, cache=cache, settings=settings)
