"""
User profile API router.

Every endpoint requires authentication; writes, achievements and deletion
are limited to the account itself or an admin.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from models.user import User
from routers.auth import ensure_self_or_admin, get_auth_service_dep, require_user, user_to_response
from services.achievement_service import all_achievements, calculate_progress, definitions_for
from services.auth_service import AuthService
from services.statistics_service import StatisticsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword")


# =============================================================================
# Dependencies
# =============================================================================

_statistics_service: Optional[StatisticsService] = None


def set_statistics_service(service: Optional[StatisticsService]) -> None:
    global _statistics_service
    _statistics_service = service


def get_statistics_service_dep() -> StatisticsService:
    if _statistics_service is None:
        raise HTTPException(status_code=503, detail="Statistics service not initialized")
    return _statistics_service


def _public_user(user: User, viewer: User) -> dict:
    d = user_to_response(user)
    if viewer.id != user.id and not viewer.is_admin():
        del d["email"]
        del d["lastLogin"]
    return d


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    viewer: User = Depends(require_user),
    service: StatisticsService = Depends(get_statistics_service_dep),
):
    """Profile and stats summary."""
    user, aggregate = await service.profile(user_id)
    return {"success": True, "user": _public_user(user, viewer), "stats": aggregate.to_dict()}


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    request_body: UpdateProfileRequest,
    viewer: User = Depends(require_user),
    auth_service: AuthService = Depends(get_auth_service_dep),
):
    """Change name and/or email."""
    ensure_self_or_admin(viewer, user_id)
    user = await auth_service.update_profile(user_id, name=request_body.name, email=request_body.email)
    return {"success": True, "user": user_to_response(user)}


@router.put("/{user_id}/password")
async def change_password(
    user_id: str,
    request_body: ChangePasswordRequest,
    viewer: User = Depends(require_user),
    auth_service: AuthService = Depends(get_auth_service_dep),
):
    """Change password. All sessions of the account are revoked."""
    ensure_self_or_admin(viewer, user_id)
    await auth_service.change_password(user_id, request_body.current_password, request_body.new_password)
    return {"success": True}


@router.get("/{user_id}/stats")
async def get_stats(
    user_id: str,
    _viewer: User = Depends(require_user),
    service: StatisticsService = Depends(get_statistics_service_dep),
):
    """Aggregate summary."""
    _, aggregate = await service.profile(user_id)
    return {"success": True, "stats": aggregate.to_dict()}


@router.get("/{user_id}/statistics")
async def get_statistics(
    user_id: str,
    _viewer: User = Depends(require_user),
    service: StatisticsService = Depends(get_statistics_service_dep),
):
    """Detailed statistics from the ledger."""
    return {"success": True, "statistics": await service.user_statistics(user_id)}


@router.get("/{user_id}/achievements")
async def get_achievements(
    user_id: str,
    viewer: User = Depends(require_user),
    service: StatisticsService = Depends(get_statistics_service_dep),
):
    """Earned achievements, progress, and the catalog with earned flags."""
    ensure_self_or_admin(viewer, user_id)
    _, aggregate = await service.profile(user_id)
    earned = set(aggregate.achievements)
    return {
        "success": True,
        "achievements": [a.to_dict() for a in definitions_for(aggregate.achievements)],
        "progress": calculate_progress(aggregate.achievements),
        "allAchievements": [dict(a.to_dict(), earned=a.id in earned) for a in all_achievements()],
    }


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    viewer: User = Depends(require_user),
    auth_service: AuthService = Depends(get_auth_service_dep),
):
    """Delete the account with all of its scores."""
    ensure_self_or_admin(viewer, user_id)
    if not await auth_service.delete_account(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True}
