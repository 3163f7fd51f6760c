"""
Achievement catalog and evaluation.

The catalog is static. evaluate() is a pure function of the aggregate as it
stood before a game and that game's result; it never touches a store.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from constants import (
    DIFFICULTIES,
    GAME_TYPES,
    GAMES_PLAYED_MILESTONES,
    SCORE_MILESTONES,
    SPEED_THRESHOLD_SECONDS,
    TOTAL_SCORE_MILESTONES,
    split_best_score_key,
)
from models.score import GameResult, UserAggregate


@dataclass(frozen=True)
class Achievement:
    """Achievement definition."""
    id: str
    name: str
    description: str
    icon: str
    category: str
    points: int
    threshold: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "category": self.category,
            "points": self.points,
            "threshold": self.threshold,
        }


# Catalog in rule-evaluation order
ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("first_game", "First Steps", "Play your first game", "🎮", "games", 10, 1),
    Achievement("games_5", "Beginner", "Play 5 games", "🌟", "games", 25, 5),
    Achievement("games_10", "Experienced", "Play 10 games", "⭐", "games", 50, 10),
    Achievement("games_50", "Veteran", "Play 50 games", "🏆", "games", 100, 50),
    Achievement("games_100", "Master", "Play 100 games", "👑", "games", 250, 100),
    Achievement("score_500", "Good Start", "Score 500 points in one game", "💯", "score", 20, 500),
    Achievement("score_1000", "High Score", "Score 1000 points in one game", "🎯", "score", 50, 1000),
    Achievement("score_1500", "Expert", "Score 1500 points in one game", "🚀", "score", 100, 1500),
    Achievement("total_score_5000", "Collector", "Collect 5000 points in total", "💰", "total", 75, 5000),
    Achievement("total_score_10000", "Big Collector", "Collect 10000 points in total", "💎", "total", 150, 10000),
    Achievement("difficulty_easy", "Easy Start", "Play on easy", "🟢", "difficulty", 5),
    Achievement("difficulty_medium", "Middle Ground", "Play on medium", "🟡", "difficulty", 15),
    Achievement("difficulty_hard", "Up for a Challenge", "Play on hard", "🔴", "difficulty", 30),
    Achievement(
        "speed_demon", "Lightning", f"Finish a game in under {SPEED_THRESHOLD_SECONDS} seconds",
        "⚡", "skill", 40, SPEED_THRESHOLD_SECONDS,
    ),
    Achievement("perfect_memory", "Perfect Memory", "Finish a game without a mistake", "🧠", "skill", 75),
    Achievement("all_games", "All-Rounder", "Play every game type", "🎨", "variety", 50, len(GAME_TYPES)),
)

_BY_ID: dict[str, Achievement] = {a.id: a for a in ACHIEVEMENTS}


def get_achievement(achievement_id: str) -> Optional[Achievement]:
    return _BY_ID.get(achievement_id)


def all_achievements() -> list[Achievement]:
    return list(ACHIEVEMENTS)


def definitions_for(achievement_ids: Iterable[str]) -> list[Achievement]:
    """Catalog entries for granted ids, skipping ids no longer in the catalog."""
    return [_BY_ID[a] for a in achievement_ids if a in _BY_ID]


def evaluate(before: UserAggregate, result: GameResult) -> tuple[str, ...]:
    """
    Achievements newly earned by one game.

    Counters are read from the aggregate as it stood before this game, with
    the game itself added where a rule is about the running total. Ids
    already held are never returned.

    Args:
        before: The owner's aggregate before this game is folded in.
        result: The validated game result.

    Returns:
        Newly earned ids, in catalog order.
    """
    candidates = []

    if before.games_played == 0:
        candidates.append("first_game")

    games_after = before.games_played + 1
    for milestone in GAMES_PLAYED_MILESTONES:
        if games_after == milestone:
            candidates.append(f"games_{milestone}")

    for milestone in SCORE_MILESTONES:
        if result.score >= milestone:
            candidates.append(f"score_{milestone}")

    total_after = before.total_score + result.score
    for milestone in TOTAL_SCORE_MILESTONES:
        if total_after >= milestone:
            candidates.append(f"total_score_{milestone}")

    if result.difficulty in DIFFICULTIES:
        candidates.append(f"difficulty_{result.difficulty}")

    if result.time_spent < SPEED_THRESHOLD_SECONDS:
        candidates.append("speed_demon")

    if result.moves == 0:
        candidates.append("perfect_memory")

    played = {split_best_score_key(key)[0] for key in before.best_scores}
    played.add(result.game_type)
    if played.issuperset(GAME_TYPES):
        candidates.append("all_games")

    return tuple(a for a in candidates if not before.has_achievement(a))


def calculate_progress(achievement_ids: Iterable[str]) -> dict:
    """Earned counts and points against the whole catalog, percentages rounded."""
    earned = definitions_for(set(achievement_ids))
    total = len(ACHIEVEMENTS)
    total_points = sum(a.points for a in ACHIEVEMENTS)
    earned_points = sum(a.points for a in earned)
    return {
        "total": total,
        "earned": len(earned),
        "percentage": round(len(earned) / total * 100) if total else 0,
        "totalPoints": total_points,
        "earnedPoints": earned_points,
        "pointsPercentage": round(earned_points / total_points * 100) if total_points else 0,
    }
