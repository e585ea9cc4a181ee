"""
Users API Endpoints

Paginated user listing with per-user metrics reconciled across the Orders
and Payments stores.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
import structlog

from admin_panel.reconciliation import UserDetail, UserFilters, UserMetricsService, UsersPage
from admin_panel.serving.api.dependencies import get_user_metrics_service

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("", response_model=UsersPage)
async def list_users(
    search: Optional[str] = Query(None, description="Case-insensitive match on name or email"),
    role: Optional[str] = Query(None, description="Exact role; 'all' disables the filter"),
    page: int = Query(1, description="1-indexed page number"),
    limit: Optional[int] = Query(None, description="Page size, clamped to the configured bounds"),
    service: UserMetricsService = Depends(get_user_metrics_service),
) -> UsersPage:
    """
    List users with their order and payment metrics.

    ``page`` below 1 is rejected with 400; ``limit`` is clamped, never
    rejected. Per-user failures are reported inside each user's metrics and
    flagged by ``degraded`` on the page.
    """
    logger.info("list_users called", search=search, role=role, page=page, limit=limit)

    result = await service.get_users_page(UserFilters(search=search, role=role), page, limit)

    logger.info(
        "list_users returning",
        users=len(result.users),
        total=result.totalItems,
        degraded=result.degraded,
    )
    return result


@router.get("/{user_id}", response_model=UserDetail)
async def get_user(
    user_id: str,
    service: UserMetricsService = Depends(get_user_metrics_service),
) -> UserDetail:
    """One user with metrics and the transactions correlated with their orders."""
    detail = await service.get_user_detail(user_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="User not found")
    return detail
