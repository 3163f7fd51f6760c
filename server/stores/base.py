"""
Persistence interfaces for accounts, aggregates and the score ledger.

Two backends implement these: PostgreSQL (user_store.UserStore,
score_store.ScoreStore) and the in-process memory_store.MemoryStore.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from models.score import GameResult, ScoreRecord, UserAggregate
from models.user import User, UserRole, UserSession

# (aggregate before this game, the game) -> newly granted achievement ids
AchievementEvaluator = Callable[[UserAggregate, GameResult], tuple[str, ...]]


@dataclass(frozen=True)
class FoldResult:
    """Outcome of folding one ledger record into its owner's aggregate."""
    before: UserAggregate
    after: UserAggregate
    new_achievements: tuple[str, ...]
    applied: bool = True


@dataclass(frozen=True)
class PlayerTotals:
    """Row of the total-score ranking."""
    user_id: str
    name: str
    total_score: int
    games_played: int
    achievements: int


@dataclass(frozen=True)
class PlayerModeBest:
    """Row of the per-mode group-by-max ranking."""
    user_id: str
    name: str
    best_score: int
    total_games: int


@dataclass(frozen=True)
class ModeDistribution:
    """Ledger distribution for one game type or difficulty."""
    key: str
    count: int
    avg_score: float
    max_score: int


class UserStoreBase(ABC):
    """Accounts, sessions and per-user aggregates."""

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: str,
        role: UserRole = UserRole.USER,
    ) -> Optional[User]:
        """Create an account and its empty aggregate. None if the email is taken."""

    @abstractmethod
    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    async def update_user(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        role: Optional[UserRole] = None,
        last_login: Optional[datetime] = None,
    ) -> Optional[User]:
        """Update non-None fields. None if not found or email already taken."""

    @abstractmethod
    async def delete_user(self, user_id: str) -> bool:
        """Hard delete account, sessions and aggregate."""

    @abstractmethod
    async def list_user_ids(self) -> list[str]:
        ...

    @abstractmethod
    async def count_users(self) -> int:
        ...

    @abstractmethod
    async def get_display_names(self, user_ids: list[str]) -> dict[str, str]:
        ...

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_session(self, user_id: str, token_hash: str, expires_at: datetime) -> UserSession:
        ...

    @abstractmethod
    async def get_session_by_token_hash(self, token_hash: str) -> Optional[UserSession]:
        ...

    @abstractmethod
    async def revoke_session_by_token_hash(self, token_hash: str) -> bool:
        ...

    @abstractmethod
    async def revoke_all_sessions(self, user_id: str) -> int:
        ...

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_aggregate(self, user_id: str) -> Optional[UserAggregate]:
        ...

    @abstractmethod
    async def apply_submission(
        self,
        record: ScoreRecord,
        evaluate: AchievementEvaluator,
        recent_limit: int,
    ) -> FoldResult:
        """
        Fold a ledger record into its owner's aggregate, serialized per user.

        The aggregate is read and updated under a per-user lock. A record that
        was already folded (e.g. by reconcile_aggregate) is skipped and
        reported with applied=False.

        Raises:
            NotFoundError: if the aggregate no longer exists.
        """

    @abstractmethod
    async def reconcile_aggregate(self, user_id: str) -> UserAggregate:
        """
        Recompute counters and best scores from the ledger under the per-user lock.

        Raises:
            NotFoundError: if the aggregate does not exist.
        """

    @abstractmethod
    async def top_by_total_score(self, limit: int) -> list[PlayerTotals]:
        """Ordered by total score desc, then user id asc."""

    @abstractmethod
    async def count_users_with_total_above(self, total_score: int) -> int:
        ...


class ScoreStoreBase(ABC):
    """Append-only ledger of game results."""

    @abstractmethod
    async def insert_score(
        self,
        user_id: str,
        result: GameResult,
        idempotency_key: Optional[str] = None,
    ) -> tuple[ScoreRecord, bool]:
        """
        Append a record.

        Returns:
            (record, created). With a key already used by this user the
            existing record is returned and created is False.
        """

    @abstractmethod
    async def list_scores(
        self,
        user_id: Optional[str] = None,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[ScoreRecord]:
        """Newest first."""

    @abstractmethod
    async def top_scores(
        self,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 10,
        user_id: Optional[str] = None,
    ) -> list[tuple[ScoreRecord, str]]:
        """(record, submitter name) by score desc, newest first on ties."""

    @abstractmethod
    async def best_per_user(
        self,
        game_type: str,
        difficulty: Optional[str] = None,
        limit: int = 50,
    ) -> list[PlayerModeBest]:
        """Group-by-max over the ledger; best desc, then user id asc."""

    @abstractmethod
    async def best_for_user(
        self,
        user_id: str,
        game_type: str,
        difficulty: Optional[str] = None,
    ) -> Optional[ScoreRecord]:
        """Highest-scoring record of a user in a mode, newest on ties."""

    @abstractmethod
    async def count_scores_above(self, game_type: str, difficulty: str, score: int) -> int:
        ...

    @abstractmethod
    async def count_scores(self) -> int:
        ...

    @abstractmethod
    async def distribution(self, column: str) -> list[ModeDistribution]:
        """Ledger grouped by 'game_type' or 'difficulty'."""

    @abstractmethod
    async def delete_user_scores(self, user_id: str) -> int:
        ...
