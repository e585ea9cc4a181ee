"""
Health Check Endpoints

Liveness, readiness and a detailed report over both stores and Redis.
Readiness needs both stores; Redis only backs the dashboard cache, so its
absence degrades the report without failing readiness.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, Response
from pydantic import BaseModel

from admin_panel.config import get_settings
from admin_panel.database import get_orders_database, get_payments_database
from admin_panel.database.connection import StoreDatabase
from admin_panel.serving.cache import check_redis_health

router = APIRouter()

HEALTHY = "healthy"
STORE_CHECKS = {
    "orders_db": get_orders_database,
    "payments_db": get_payments_database,
}


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def _check_store(getter) -> Dict[str, Any]:
    try:
        db: StoreDatabase = getter()
    except RuntimeError as e:
        return {"status": "uninitialized", "error": str(e)}
    return await db.check_health()


async def store_checks() -> Dict[str, Dict[str, Any]]:
    """Probe both stores concurrently."""
    results = await asyncio.gather(*(_check_store(getter) for getter in STORE_CHECKS.values()))
    return dict(zip(STORE_CHECKS, results))


def overall_status(store_statuses: List[str], redis_status: str) -> str:
    healthy_stores = sum(1 for status in store_statuses if status == HEALTHY)
    if healthy_stores == 0:
        return "unhealthy"
    if healthy_stores < len(store_statuses) or redis_status != HEALTHY:
        return "degraded"
    return HEALTHY


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    settings = get_settings()
    checks: Dict[str, Any] = await store_checks()
    checks["redis"] = await check_redis_health()

    return HealthResponse(
        status=overall_status(
            [checks[name]["status"] for name in STORE_CHECKS],
            checks["redis"]["status"],
        ),
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.utcnow(),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Liveness probe: 200 while the process is serving."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response) -> Dict[str, str]:
    """Readiness probe: 503 until both stores answer."""
    for name, check in (await store_checks()).items():
        if check["status"] != HEALTHY:
            response.status_code = 503
            return {"status": "not_ready", "reason": f"{name}_{check['status']}"}
    return {"status": "ready"}
