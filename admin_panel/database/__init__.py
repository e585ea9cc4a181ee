"""
Database Module
"""
from .connection import (
    StoreDatabase,
    init_databases,
    close_databases,
    get_orders_database,
    get_payments_database,
)
from .models import OrdersBase, PaymentsBase

__all__ = [
    "StoreDatabase",
    "init_databases",
    "close_databases",
    "get_orders_database",
    "get_payments_database",
    "OrdersBase",
    "PaymentsBase",
]
