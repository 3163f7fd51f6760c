"""Models package for the Memory Trainer score server."""

from .user import UserRole, User, UserSession, Authenticated, Anonymous, Identity
from .score import GameResult, ScoreRecord, RecentGame, UserAggregate, AggregateDelta

__all__ = [
    "UserRole",
    "User",
    "UserSession",
    "Authenticated",
    "Anonymous",
    "Identity",
    "GameResult",
    "ScoreRecord",
    "RecentGame",
    "UserAggregate",
    "AggregateDelta",
]
