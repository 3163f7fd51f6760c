"""
Score ledger and per-user aggregate models.

ScoreRecord is the immutable ledger entry written once per submission.
UserAggregate is the mutable per-user summary folded from those entries.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional

from constants import DIFFICULTIES, GAME_TYPES, MAX_RESULT_VALUE, best_score_key
from errors import ValidationError


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_dt(val: Any) -> Optional[datetime]:
    if val is None:
        return None
    if isinstance(val, datetime):
        return val if val.tzinfo else val.replace(tzinfo=timezone.utc)
    return datetime.fromisoformat(val)


@dataclass(frozen=True)
class GameResult:
    """The final result tuple a client submits after a game."""
    game_type: str
    difficulty: str
    score: int
    time_spent: int
    moves: int

    @property
    def mode_key(self) -> str:
        return best_score_key(self.game_type, self.difficulty)

    def validate(self) -> "GameResult":
        """
        Check every field, collecting all problems before failing.

        Raises:
            ValidationError: listing each offending field.
        """
        details = []
        if self.game_type not in GAME_TYPES:
            details.append({"field": "gameType", "message": f"must be one of {', '.join(GAME_TYPES)}"})
        if self.difficulty not in DIFFICULTIES:
            details.append({"field": "difficulty", "message": f"must be one of {', '.join(DIFFICULTIES)}"})
        for name, value in (("score", self.score), ("timeSpent", self.time_spent), ("moves", self.moves)):
            if isinstance(value, bool) or not isinstance(value, int):
                details.append({"field": name, "message": "must be an integer"})
            elif value < 0:
                details.append({"field": name, "message": "must be greater than or equal to 0"})
            elif value > MAX_RESULT_VALUE:
                details.append({"field": name, "message": f"must be less than or equal to {MAX_RESULT_VALUE}"})
        if details:
            raise ValidationError(details)
        return self


@dataclass(frozen=True)
class ScoreRecord:
    """
    One submitted game result. Never mutated; removed only with its owner.

    Attributes:
        id: Opaque unique identifier.
        user_id: Owner reference.
        game_type: One of constants.GameType.
        difficulty: One of constants.Difficulty.
        score: Non-negative points.
        time_spent: Seconds.
        moves: Move/mistake count reported by the client.
        created_at: Submission timestamp.
        idempotency_key: Client-supplied retry token, unique per user.
    """
    id: str
    user_id: str
    game_type: str
    difficulty: str
    score: int
    time_spent: int
    moves: int
    created_at: datetime
    idempotency_key: Optional[str] = None

    def to_result(self) -> GameResult:
        return GameResult(self.game_type, self.difficulty, self.score, self.time_spent, self.moves)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "gameType": self.game_type,
            "difficulty": self.difficulty,
            "score": self.score,
            "timeSpent": self.time_spent,
            "moves": self.moves,
            "timestamp": _iso(self.created_at),
            "date": self.created_at.date().isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class RecentGame:
    """Entry of the bounded recent-history list kept on the aggregate."""
    game_type: str
    difficulty: str
    score: int
    time_spent: int
    moves: int
    created_at: datetime

    @classmethod
    def from_record(cls, record: ScoreRecord) -> "RecentGame":
        return cls(
            game_type=record.game_type,
            difficulty=record.difficulty,
            score=record.score,
            time_spent=record.time_spent,
            moves=record.moves,
            created_at=record.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "gameType": self.game_type,
            "difficulty": self.difficulty,
            "score": self.score,
            "timeSpent": self.time_spent,
            "moves": self.moves,
            "timestamp": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RecentGame":
        return cls(
            game_type=d["gameType"],
            difficulty=d["difficulty"],
            score=d["score"],
            time_spent=d.get("timeSpent", 0),
            moves=d.get("moves", 0),
            created_at=parse_dt(d.get("timestamp")) or datetime.now(timezone.utc),
        )


@dataclass(frozen=True)
class UserAggregate:
    """
    Cumulative statistics for one user.

    Counters only grow; best_scores only grow per key; achievements are
    append-only; recent_games is most-recent-first and bounded.
    """
    user_id: str
    games_played: int = 0
    total_score: int = 0
    best_scores: dict[str, int] = field(default_factory=dict)
    achievements: tuple[str, ...] = ()
    recent_games: tuple[RecentGame, ...] = ()

    def has_achievement(self, achievement_id: str) -> bool:
        return achievement_id in self.achievements

    def best_score(self, game_type: str, difficulty: str) -> Optional[int]:
        """Best score for a mode, None if never played."""
        return self.best_scores.get(best_score_key(game_type, difficulty))

    def to_dict(self) -> dict:
        return {
            "gamesPlayed": self.games_played,
            "totalScore": self.total_score,
            "bestScores": dict(self.best_scores),
            "achievements": list(self.achievements),
            "recentGames": [g.to_dict() for g in self.recent_games],
        }


@dataclass(frozen=True)
class AggregateDelta:
    """
    The change one submission makes to an aggregate.

    Expressed as increments and set-if-greater so stores can apply it
    without trusting a previously read absolute value.
    """
    total_score_inc: int
    best_score_key: str
    best_score_candidate: int
    recent_game: RecentGame
    new_achievements: tuple[str, ...] = ()
    games_played_inc: int = 1

    @classmethod
    def from_record(cls, record: ScoreRecord, new_achievements: tuple[str, ...] = ()) -> "AggregateDelta":
        return cls(
            total_score_inc=record.score,
            best_score_key=best_score_key(record.game_type, record.difficulty),
            best_score_candidate=record.score,
            recent_game=RecentGame.from_record(record),
            new_achievements=tuple(new_achievements),
        )

    def apply(self, aggregate: UserAggregate, recent_limit: int) -> UserAggregate:
        """Fold this delta into an aggregate, returning the new value."""
        best_scores = dict(aggregate.best_scores)
        current = best_scores.get(self.best_score_key)
        if current is None or self.best_score_candidate > current:
            best_scores[self.best_score_key] = self.best_score_candidate

        achievements = list(aggregate.achievements)
        for achievement_id in self.new_achievements:
            if achievement_id not in achievements:
                achievements.append(achievement_id)

        return replace(
            aggregate,
            games_played=aggregate.games_played + self.games_played_inc,
            total_score=aggregate.total_score + self.total_score_inc,
            best_scores=best_scores,
            achievements=tuple(achievements),
            recent_games=((self.recent_game,) + aggregate.recent_games)[:recent_limit],
        )
