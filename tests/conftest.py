"""
Test Suite Configuration
"""
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from admin_panel.config import Settings
from admin_panel.config.settings import MetricsSettings, StoreDatabaseSettings
from admin_panel.database.connection import ORDERS_STORE, PAYMENTS_STORE, StoreDatabase
from admin_panel.database.models import OrdersBase, PaymentsBase


@pytest.fixture
def metrics_settings() -> MetricsSettings:
    return MetricsSettings(
        default_page_size=10,
        min_page_size=1,
        max_page_size=100,
        user_concurrency=4,
        top_services_limit=3,
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(app_env="testing", debug=True)


# =============================================================================
# SQLITE-BACKED STORES
# =============================================================================

def _sqlite_store(name: str) -> StoreDatabase:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    return StoreDatabase(name, StoreDatabaseSettings(query_timeout=5.0), engine=engine)


@pytest.fixture
async def orders_db():
    """Orders Store on an in-memory SQLite database"""
    db = _sqlite_store(ORDERS_STORE)
    async with db.engine.begin() as conn:
        await conn.run_sync(OrdersBase.metadata.create_all)
    yield db
    await db.close()


@pytest.fixture
async def payments_db():
    """Payments Store on an in-memory SQLite database"""
    db = _sqlite_store(PAYMENTS_STORE)
    async with db.engine.begin() as conn:
        await conn.run_sync(PaymentsBase.metadata.create_all)
    yield db
    await db.close()
