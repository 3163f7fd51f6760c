"""
Leaderboard API router.

All endpoints are public and read-only.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from routers.scores import get_leaderboard_service_dep
from services.leaderboard_service import LeaderboardService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("")
async def leaderboard(
    game_type: Optional[str] = Query(None, alias="gameType"),
    difficulty: Optional[str] = Query(None),
    period: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    service: LeaderboardService = Depends(get_leaderboard_service_dep),
):
    """Top scores, optionally for one mode and a day/week/month window."""
    entries = await service.top_scores(
        game_type=game_type,
        difficulty=difficulty,
        period=period,
        limit=limit,
    )
    return {
        "success": True,
        "leaderboard": [e.to_dict() for e in entries],
        "filters": {"gameType": game_type, "difficulty": difficulty, "period": period},
    }


@router.get("/top-players")
async def top_players(
    limit: Optional[int] = Query(None),
    service: LeaderboardService = Depends(get_leaderboard_service_dep),
):
    """Players ranked by total score."""
    entries = await service.top_players(limit)
    return {"success": True, "players": [e.to_dict("totalScore") for e in entries]}


@router.get("/by-game/{game_type}")
async def by_game(
    game_type: str,
    difficulty: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    service: LeaderboardService = Depends(get_leaderboard_service_dep),
):
    """Each player's best score in a game (and difficulty)."""
    entries = await service.best_per_user_by_game(game_type, difficulty=difficulty, limit=limit)
    return {
        "success": True,
        "gameType": game_type,
        "difficulty": difficulty,
        "leaderboard": [e.to_dict("bestScore", games_name="totalGames") for e in entries],
    }


@router.get("/rank/{user_id}")
async def rank(
    user_id: str,
    game_type: Optional[str] = Query(None, alias="gameType"),
    difficulty: Optional[str] = Query(None),
    service: LeaderboardService = Depends(get_leaderboard_service_dep),
):
    """A player's overall rank and, with gameType, their rank in that mode."""
    user_rank = await service.rank_of(user_id, game_type=game_type, difficulty=difficulty)
    body = {"success": True}
    body.update(user_rank.to_dict())
    return body
