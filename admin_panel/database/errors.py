"""
Store error taxonomy.

Raised at the store boundary so callers can tell a misconfigured store from
one that is temporarily unreachable.
"""

from typing import Optional


class StoreError(Exception):
    """Base class for errors raised by a data store gateway."""

    def __init__(self, store: str, message: str):
        super().__init__(f"[{store}] {message}")
        self.store = store
        self.message = message


class StoreConfigurationError(StoreError):
    """The store has no usable connection string."""


class StoreUnavailableError(StoreError):
    """A round trip failed: connection refused, driver error or timeout."""

    def __init__(self, store: str, message: str, operation: Optional[str] = None):
        super().__init__(store, message)
        self.operation = operation
