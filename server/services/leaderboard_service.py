"""
Leaderboard and ranking queries.

Read-only. Per-mode rankings are computed from the score ledger, never from
the aggregates, so they stay correct even when an aggregate is stale.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from config import config
from constants import DIFFICULTIES, GAME_TYPES, PERIOD_DAYS
from errors import NotFoundError, ValidationError
from models.score import ScoreRecord
from stores.base import ScoreStoreBase, UserStoreBase

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"


@dataclass
class ScoreEntry:
    """A ledger record placed on a leaderboard."""
    rank: int
    record: ScoreRecord
    user_name: str

    def to_dict(self) -> dict:
        d = {"rank": self.rank}
        d.update(self.record.to_dict())
        d["userName"] = self.user_name
        return d


@dataclass
class LeaderboardEntry:
    """Single entry on a player leaderboard."""
    rank: int
    user_id: str
    name: str
    value: int
    games_played: int
    achievements: Optional[int] = None

    def to_dict(self, value_name: str, games_name: str = "gamesPlayed") -> dict:
        d = {
            "rank": self.rank,
            "userId": self.user_id,
            "name": self.name,
            value_name: self.value,
            games_name: self.games_played,
        }
        if self.achievements is not None:
            d["achievements"] = self.achievements
        return d


@dataclass
class GameRank:
    rank: int
    score: int
    game_type: str
    difficulty: str

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "score": self.score,
            "gameType": self.game_type,
            "difficulty": self.difficulty,
        }


@dataclass
class UserRank:
    user_id: str
    user_name: str
    overall_rank: int
    total_score: int
    game_rank: Optional[GameRank] = None

    def to_dict(self) -> dict:
        d = {
            "userId": self.user_id,
            "userName": self.user_name,
            "overallRank": self.overall_rank,
            "totalScore": self.total_score,
        }
        if self.game_rank:
            d["gameRank"] = self.game_rank.to_dict()
        return d


def check_filters(
    game_type: Optional[str] = None,
    difficulty: Optional[str] = None,
    period: Optional[str] = None,
) -> None:
    """
    Validate optional listing filters.

    Raises:
        ValidationError: listing every unknown value.
    """
    details = []
    if game_type is not None and game_type not in GAME_TYPES:
        details.append({"field": "gameType", "message": f"must be one of {', '.join(GAME_TYPES)}"})
    if difficulty is not None and difficulty not in DIFFICULTIES:
        details.append({"field": "difficulty", "message": f"must be one of {', '.join(DIFFICULTIES)}"})
    if period is not None and period not in PERIOD_DAYS:
        details.append({"field": "period", "message": f"must be one of {', '.join(PERIOD_DAYS)}"})
    if details:
        raise ValidationError(details)


def period_start(period: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """Start of a day/week/month window ending now. None means all time."""
    if period is None:
        return None
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=PERIOD_DAYS[period])


class LeaderboardService:
    """
    Leaderboard queries.

    Provides methods for:
    - Top individual scores, optionally per mode and time window
    - Top players by cumulative score
    - Best score per player in a mode (group-by-max over the ledger)
    - Rank of one player overall and in a mode
    """

    def __init__(
        self,
        user_store: UserStoreBase,
        score_store: ScoreStoreBase,
        default_limit: int = 10,
        max_limit: int = 100,
    ):
        self.user_store = user_store
        self.score_store = score_store
        self.default_limit = default_limit
        self.max_limit = max_limit

    @classmethod
    def create(cls, user_store: UserStoreBase, score_store: ScoreStoreBase) -> "LeaderboardService":
        return cls(
            user_store,
            score_store,
            default_limit=config.leaderboard.default_limit,
            max_limit=config.leaderboard.max_limit,
        )

    def clamp_limit(self, limit: Optional[int], default: Optional[int] = None) -> int:
        """Requested limit bounded to [1, max_limit]."""
        if limit is None:
            limit = default or self.default_limit
        return max(1, min(limit, self.max_limit))

    async def top_scores(
        self,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        period: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ScoreEntry]:
        """Best individual records, score desc then newest first."""
        check_filters(game_type, difficulty, period)
        rows = await self.score_store.top_scores(
            game_type=game_type,
            difficulty=difficulty,
            since=period_start(period),
            limit=self.clamp_limit(limit),
        )
        return [
            ScoreEntry(rank=i, record=record, user_name=name or ANONYMOUS_NAME)
            for i, (record, name) in enumerate(rows, 1)
        ]

    async def user_scores(
        self,
        user_id: str,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ScoreRecord]:
        """A user's records, newest first."""
        check_filters(game_type, difficulty)
        if not await self.user_store.get_user_by_id(user_id):
            raise NotFoundError("User not found")
        return await self.score_store.list_scores(
            user_id=user_id,
            game_type=game_type,
            difficulty=difficulty,
            limit=self.clamp_limit(limit, default=20),
        )

    async def top_players(self, limit: Optional[int] = None) -> list[LeaderboardEntry]:
        """Players by total score, ties by user id."""
        rows = await self.user_store.top_by_total_score(self.clamp_limit(limit))
        return [
            LeaderboardEntry(
                rank=i,
                user_id=row.user_id,
                name=row.name,
                value=row.total_score,
                games_played=row.games_played,
                achievements=row.achievements,
            )
            for i, row in enumerate(rows, 1)
        ]

    async def best_per_user_by_game(
        self,
        game_type: str,
        difficulty: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[LeaderboardEntry]:
        """Each player's best in a mode, best desc, ties by user id."""
        check_filters(game_type, difficulty)
        rows = await self.score_store.best_per_user(
            game_type,
            difficulty=difficulty,
            limit=self.clamp_limit(limit, default=50),
        )
        return [
            LeaderboardEntry(
                rank=i,
                user_id=row.user_id,
                name=row.name,
                value=row.best_score,
                games_played=row.total_games,
            )
            for i, row in enumerate(rows, 1)
        ]

    async def rank_of(
        self,
        user_id: str,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
    ) -> UserRank:
        """
        Overall rank by total score and, with a game type, rank of the
        user's best record among all records of that mode.

        Without a difficulty the mode is the difficulty of the user's best
        record in that game. A user with no record in the mode gets no
        game rank.

        Raises:
            NotFoundError: unknown user.
        """
        check_filters(game_type, difficulty)
        aggregate = await self.user_store.get_aggregate(user_id)
        if aggregate is None:
            raise NotFoundError("User not found")

        user = await self.user_store.get_user_by_id(user_id)
        above = await self.user_store.count_users_with_total_above(aggregate.total_score)
        rank = UserRank(
            user_id=user_id,
            user_name=user.name if user else ANONYMOUS_NAME,
            overall_rank=above + 1,
            total_score=aggregate.total_score,
        )

        if game_type:
            best = await self.score_store.best_for_user(user_id, game_type, difficulty)
            if best:
                mode_difficulty = difficulty or best.difficulty
                higher = await self.score_store.count_scores_above(game_type, mode_difficulty, best.score)
                rank.game_rank = GameRank(
                    rank=higher + 1,
                    score=best.score,
                    game_type=game_type,
                    difficulty=mode_difficulty,
                )

        return rank
