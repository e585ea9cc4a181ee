"""
Store Gateways

Read-only access to the Orders Store and the Payments Store.
"""
from .orders import OrdersStore
from .payments import PaymentsStore
from .statistics import Activity, StatusBreakdown, UserGrowth

__all__ = [
    "OrdersStore",
    "PaymentsStore",
    "Activity",
    "StatusBreakdown",
    "UserGrowth",
]
