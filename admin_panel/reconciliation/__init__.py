"""
Reconciliation Module

Correlates Orders Store and Payments Store records into per-user metrics.
"""
from .records import OrderRecord, TransactionRecord, UserRecord, UserFilters
from .metadata import extract_candidates, extract_identity, parse_metadata
from .matcher import MatchResult, TransactionMatcher, match_transactions
from .aggregator import UserMetrics, aggregate
from .service import (
    InvalidPageRequestError,
    UserDetail,
    UserMetricsService,
    UsersPage,
    build_page_request,
)

__all__ = [
    "OrderRecord",
    "TransactionRecord",
    "UserRecord",
    "UserFilters",
    "extract_candidates",
    "extract_identity",
    "parse_metadata",
    "MatchResult",
    "TransactionMatcher",
    "match_transactions",
    "UserMetrics",
    "aggregate",
    "InvalidPageRequestError",
    "UserDetail",
    "UserMetricsService",
    "UsersPage",
    "build_page_request",
]
