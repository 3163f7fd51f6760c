"""
Score API router.

POST /api/scores is the only write path into the ledger and aggregates.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response
from pydantic import BaseModel, ConfigDict, Field, StrictInt

from models.score import GameResult
from models.user import Authenticated
from routers.auth import require_identity, require_user
from services.leaderboard_service import LeaderboardService
from services.submission_service import SubmissionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scores", tags=["scores"])


class ScoreSubmission(BaseModel):
    """Final result of one game. Ranges and enums are checked by GameResult."""
    model_config = ConfigDict(populate_by_name=True)

    game_type: str = Field(alias="gameType")
    difficulty: str
    score: StrictInt
    time_spent: StrictInt = Field(alias="timeSpent")
    moves: StrictInt

    def to_result(self) -> GameResult:
        return GameResult(
            game_type=self.game_type,
            difficulty=self.difficulty,
            score=self.score,
            time_spent=self.time_spent,
            moves=self.moves,
        )


# =============================================================================
# Dependencies
# =============================================================================

_submission_service: Optional[SubmissionService] = None
_leaderboard_service: Optional[LeaderboardService] = None


def set_submission_service(service: Optional[SubmissionService]) -> None:
    global _submission_service
    _submission_service = service


def set_leaderboard_service(service: Optional[LeaderboardService]) -> None:
    global _leaderboard_service
    _leaderboard_service = service


def get_submission_service_dep() -> SubmissionService:
    if _submission_service is None:
        raise HTTPException(status_code=503, detail="Submission service not initialized")
    return _submission_service


def get_leaderboard_service_dep() -> LeaderboardService:
    if _leaderboard_service is None:
        raise HTTPException(status_code=503, detail="Leaderboard service not initialized")
    return _leaderboard_service


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", status_code=201)
async def submit_score(
    body: ScoreSubmission,
    response: Response,
    identity: Authenticated = Depends(require_identity),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    service: SubmissionService = Depends(get_submission_service_dep),
):
    """Record a finished game. A replayed Idempotency-Key answers 200."""
    outcome = await service.submit(identity, body.to_result(), idempotency_key)
    if not outcome.created:
        response.status_code = 200
    return outcome.to_dict()


@router.get("/global")
async def global_scores(
    game_type: Optional[str] = Query(None, alias="gameType"),
    difficulty: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    service: LeaderboardService = Depends(get_leaderboard_service_dep),
):
    """Best individual scores across all players. No auth required."""
    entries = await service.top_scores(game_type=game_type, difficulty=difficulty, limit=limit)
    return {"success": True, "scores": [e.to_dict() for e in entries]}


@router.get("/user/{user_id}")
async def user_scores(
    user_id: str,
    game_type: Optional[str] = Query(None, alias="gameType"),
    difficulty: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    _user=Depends(require_user),
    service: LeaderboardService = Depends(get_leaderboard_service_dep),
):
    """A player's scores, newest first."""
    records = await service.user_scores(user_id, game_type=game_type, difficulty=difficulty, limit=limit)
    return {"success": True, "scores": [r.to_dict() for r in records]}
