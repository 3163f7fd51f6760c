"""
Statistics API router.
"""

import logging

from fastapi import APIRouter, Depends, Query

from routers.auth import require_user
from routers.users import get_statistics_service_dep
from services.statistics_service import StatisticsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/statistics", tags=["statistics"])


@router.get("/global")
async def global_statistics(service: StatisticsService = Depends(get_statistics_service_dep)):
    """Site-wide totals, top players, recent games and distributions."""
    return {"success": True, "statistics": await service.global_statistics()}


@router.get("/report/{period}")
async def periodic_report(
    period: str,
    service: StatisticsService = Depends(get_statistics_service_dep),
):
    """Totals for the last day, week or month."""
    return {"success": True, "report": await service.periodic_report(period)}


@router.get("/compare/{user_id_1}/{user_id_2}")
async def compare_users(
    user_id_1: str,
    user_id_2: str,
    _viewer=Depends(require_user),
    service: StatisticsService = Depends(get_statistics_service_dep),
):
    """Two players side by side."""
    return {"success": True, "comparison": await service.compare_users(user_id_1, user_id_2)}


@router.get("/activity/{user_id}")
async def recent_activity(
    user_id: str,
    days: int = Query(7, ge=1, le=90),
    _viewer=Depends(require_user),
    service: StatisticsService = Depends(get_statistics_service_dep),
):
    """Per-day games and points over the last few days."""
    await service.profile(user_id)
    return {"success": True, "activity": await service.recent_activity(user_id, days)}
