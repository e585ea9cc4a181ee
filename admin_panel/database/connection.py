"""
Database Connection Management

One explicitly constructed ``StoreDatabase`` per data store. Each owns a
long-lived async engine whose pool is shared by every request; sessions are
handed out per query and returned immediately. Every round trip runs under
the store's query timeout and driver failures are translated into the store
error taxonomy.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar

import structlog
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from admin_panel.config import Settings, get_settings
from admin_panel.config.settings import StoreDatabaseSettings
from admin_panel.database.errors import StoreConfigurationError, StoreUnavailableError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ORDERS_STORE = "orders"
PAYMENTS_STORE = "payments"

# Failures that mean "the store could not answer", as opposed to bugs
TRANSIENT_ERRORS = (asyncio.TimeoutError, DBAPIError, PoolTimeoutError, OSError)


class StoreDatabase:
    """
    Connection pool and session factory for one data store.

    Example:
        orders_db = StoreDatabase("orders", settings.orders_db)
        users = await orders_db.run(load_users, operation="list_users")
    """

    def __init__(
        self,
        name: str,
        settings: StoreDatabaseSettings,
        engine: Optional[AsyncEngine] = None,
    ):
        self.name = name
        self.settings = settings
        self._engine = engine
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        if engine is not None:
            self._session_factory = self._make_session_factory(engine)

    @staticmethod
    def _make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
        return async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @property
    def query_timeout(self) -> float:
        return self.settings.query_timeout

    def _ensure_engine(self) -> AsyncEngine:
        if self._engine is not None:
            return self._engine

        self.ensure_configured()
        url = self.settings.async_url

        engine_config = {
            "echo": self.settings.echo,
            "pool_pre_ping": True,
            "pool_size": self.settings.pool_size,
            "max_overflow": self.settings.max_overflow,
            "pool_timeout": self.settings.pool_timeout,
        }
        if url.startswith("postgresql+asyncpg"):
            engine_config["connect_args"] = {
                "timeout": self.settings.connect_timeout,
                "command_timeout": self.settings.query_timeout,
            }

        self._engine = create_async_engine(url, **engine_config)
        self._session_factory = self._make_session_factory(self._engine)
        logger.info("Store engine created", store=self.name, pool_size=self.settings.pool_size)
        return self._engine

    def ensure_configured(self) -> None:
        """
        Raises:
            StoreConfigurationError: If the store has no connection string
        """
        if self._engine is None and not self.settings.is_configured:
            raise StoreConfigurationError(
                self.name, "No connection string configured for this store"
            )

    @property
    def engine(self) -> AsyncEngine:
        """
        The store's engine, created on first use.

        Raises:
            StoreConfigurationError: If the store has no connection string
        """
        return self._ensure_engine()

    async def init(self) -> AsyncEngine:
        """
        Create the engine and verify connectivity.

        Raises:
            StoreConfigurationError: If the store has no connection string
            StoreUnavailableError: If the store cannot be reached
        """
        engine = self._ensure_engine()
        await self.run(lambda session: session.execute(text("SELECT 1")), operation="ping")
        logger.info("Store connection established", store=self.name)
        return engine

    async def close(self) -> None:
        """Dispose of the pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Store connection pool closed", store=self.name)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a session from the pool.

        The reconciliation path is read-only, so the session is rolled back
        rather than committed when the block exits.
        """
        self._ensure_engine()
        session = self._session_factory()
        try:
            yield session
        except Exception as e:
            logger.debug("Store session error, rolling back", store=self.name, error_type=type(e).__name__)
            await session.rollback()
            raise
        finally:
            await session.close()

    async def run(
        self,
        work: Callable[[AsyncSession], Awaitable[T]],
        operation: str,
    ) -> T:
        """
        Run one round trip against the store under the query timeout.

        Args:
            work: Coroutine function receiving a session
            operation: Name used in logs and errors

        Raises:
            StoreConfigurationError: If the store has no connection string
            StoreUnavailableError: On connection, driver or timeout failure
        """
        try:
            async with self.session() as session:
                return await asyncio.wait_for(work(session), timeout=self.query_timeout)
        except asyncio.TimeoutError as e:
            logger.warning(
                "Store round trip timed out",
                store=self.name,
                operation=operation,
                timeout=self.query_timeout,
            )
            raise StoreUnavailableError(
                self.name, f"{operation} timed out after {self.query_timeout}s", operation
            ) from e
        except TRANSIENT_ERRORS as e:
            logger.warning(
                "Store round trip failed",
                store=self.name,
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreUnavailableError(self.name, f"{operation} failed: {e}", operation) from e

    async def check_health(self) -> dict:
        """
        Check store health status.

        Returns:
            dict: Health status with latency information
        """
        if not self.settings.is_configured and self._engine is None:
            return {"status": "unconfigured", "error": "missing connection string"}

        start = time.perf_counter()
        try:
            await self.run(lambda session: session.execute(text("SELECT 1")), operation="health")
        except StoreUnavailableError as e:
            return {"status": "unhealthy", "error": e.message}

        latency_ms = (time.perf_counter() - start) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
            "pool_size": self.settings.pool_size,
        }


# Process-wide stores, created by the application lifespan
_orders_db: Optional[StoreDatabase] = None
_payments_db: Optional[StoreDatabase] = None


def build_databases(settings: Optional[Settings] = None) -> tuple:
    """Construct (but do not connect) both store databases."""
    settings = settings or get_settings()
    return (
        StoreDatabase(ORDERS_STORE, settings.orders_db),
        StoreDatabase(PAYMENTS_STORE, settings.payments_db),
    )


async def init_databases(settings: Optional[Settings] = None) -> None:
    """
    Initialize both store pools.

    A store that is missing its connection string or is unreachable at
    startup is logged and left for first use, where the error reaches the
    caller.
    """
    global _orders_db, _payments_db

    if _orders_db is not None:
        logger.warning("Databases already initialized")
        return

    _orders_db, _payments_db = build_databases(settings)

    for db in (_orders_db, _payments_db):
        try:
            await db.init()
        except StoreConfigurationError as e:
            logger.error("Store is not configured", store=db.name, error=e.message)
        except StoreUnavailableError as e:
            logger.warning("Store unreachable at startup", store=db.name, error=e.message)


async def close_databases() -> None:
    """Close both store pools."""
    global _orders_db, _payments_db

    for db in (_orders_db, _payments_db):
        if db is not None:
            await db.close()
    _orders_db = None
    _payments_db = None


def get_orders_database() -> StoreDatabase:
    """
    Get the Orders Store database.

    Raises:
        RuntimeError: If init_databases() has not run
    """
    if _orders_db is None:
        raise RuntimeError("Databases not initialized. Call init_databases() first.")
    return _orders_db


def get_payments_database() -> StoreDatabase:
    """
    Get the Payments Store database.

    Raises:
        RuntimeError: If init_databases() has not run
    """
    if _payments_db is None:
        raise RuntimeError("Databases not initialized. Call init_databases() first.")
    return _payments_db
