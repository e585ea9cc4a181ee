"""
Admin Panel User Metrics

Cross-store reconciliation of orders and payment transactions for the
administrative dashboard.
"""

__version__ = "1.0.0"
