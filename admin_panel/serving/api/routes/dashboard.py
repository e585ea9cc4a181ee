"""
Dashboard API Endpoints
"""

from fastapi import APIRouter, Depends, Query
import structlog

from admin_panel.serving.api.dependencies import get_dashboard_service
from admin_panel.serving.dashboard import DashboardService, DashboardSummary

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("", response_model=DashboardSummary)
async def get_dashboard(
    refresh: bool = Query(False, description="Compute live, bypassing the summary cache"),
    service: DashboardService = Depends(get_dashboard_service),
) -> DashboardSummary:
    """
    System summary over the configured window.

    Sections whose store is unreachable are zeroed and listed in
    ``unavailable``.
    """
    summary = await service.get_summary(refresh=refresh)
    if summary.unavailable:
        logger.warning("Dashboard served with unavailable sections", unavailable=summary.unavailable)
    return summary
