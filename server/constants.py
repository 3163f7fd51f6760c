"""
Game catalog constants for the Memory Trainer suite.

This module is the single source of truth for the game types and difficulty
levels a score can be submitted for, and for the thresholds the achievement
rules check against.
"""

from enum import Enum


class GameType(str, Enum):
    """Games in the suite."""
    MEMORY_CARD = "memory_card"
    NUMBER_SEQUENCE = "number_sequence"
    COLOR_SEQUENCE = "color_sequence"
    N_BACK = "n_back"
    MENTAL_MATH = "mental_math"


class Difficulty(str, Enum):
    """Difficulty levels shared by every game."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Period(str, Enum):
    """Leaderboard/report time windows."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


GAME_TYPES: tuple[str, ...] = tuple(g.value for g in GameType)
DIFFICULTIES: tuple[str, ...] = tuple(d.value for d in Difficulty)

# Upper bound for score, timeSpent and moves (ledger columns are 32-bit)
MAX_RESULT_VALUE: int = 2**31 - 1

# Window lengths in days. A month is 30 days.
PERIOD_DAYS: dict[str, int] = {
    Period.DAY.value: 1,
    Period.WEEK.value: 7,
    Period.MONTH.value: 30,
}


# =============================================================================
# Achievement thresholds
# =============================================================================

# Cumulative games played, granted on the submission that reaches the count
GAMES_PLAYED_MILESTONES: tuple[int, ...] = (5, 10, 50, 100)

# Single-game score
SCORE_MILESTONES: tuple[int, ...] = (500, 1000, 1500)

# Cumulative total score
TOTAL_SCORE_MILESTONES: tuple[int, ...] = (5000, 10000)

# Seconds; strictly less than
SPEED_THRESHOLD_SECONDS: int = 30


def best_score_key(game_type: str, difficulty: str) -> str:
    """Key used in the per-mode best score map."""
    return f"{game_type}_{difficulty}"


def split_best_score_key(key: str) -> tuple[str, str]:
    """Inverse of best_score_key (game types may contain underscores)."""
    game_type, _, difficulty = key.rpartition("_")
    return game_type, difficulty
