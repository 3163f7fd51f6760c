"""Services package for Memory Trainer business logic."""

from .auth_service import AuthService, AuthResult
from .achievement_service import Achievement, evaluate, calculate_progress
from .submission_service import SubmissionService, SubmissionOutcome
from .leaderboard_service import LeaderboardService
from .statistics_service import StatisticsService

__all__ = [
    "AuthService",
    "AuthResult",
    "Achievement",
    "evaluate",
    "calculate_progress",
    "SubmissionService",
    "SubmissionOutcome",
    "LeaderboardService",
    "StatisticsService",
]
