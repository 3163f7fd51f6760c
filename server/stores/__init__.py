"""Stores package for Memory Trainer persistence."""

from .base import UserStoreBase, ScoreStoreBase, FoldResult, PlayerTotals, PlayerModeBest, ModeDistribution
from .user_store import UserStore, get_user_store, close_user_store
from .score_store import ScoreStore
from .memory_store import MemoryStore

__all__ = [
    # Interfaces
    "UserStoreBase",
    "ScoreStoreBase",
    "FoldResult",
    "PlayerTotals",
    "PlayerModeBest",
    "ModeDistribution",
    # PostgreSQL
    "UserStore",
    "ScoreStore",
    "get_user_store",
    "close_user_store",
    # In-process
    "MemoryStore",
]
