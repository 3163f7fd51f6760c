"""
Score submission pipeline.

A submission is written to the ledger first, then folded into its owner's
aggregate together with any achievements it earns. The ledger write is
never rolled back: if folding fails the record stays and the aggregate is
stale until the next reconcile (or a retry with the same Idempotency-Key).
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from config import config
from errors import AuthError, NotFoundError, ServiceError, StoreError, ValidationError
from models.score import GameResult, ScoreRecord, UserAggregate
from models.user import Authenticated, Identity
from services.achievement_service import Achievement, definitions_for, evaluate
from stores.base import ScoreStoreBase, UserStoreBase

logger = logging.getLogger(__name__)

IDEMPOTENCY_KEY_MAX_LENGTH = 100


@dataclass
class SubmissionOutcome:
    """What a submission produced."""
    record: ScoreRecord
    aggregate: UserAggregate
    new_achievements: list[Achievement] = field(default_factory=list)
    created: bool = True

    def to_dict(self) -> dict:
        d = {
            "success": True,
            "scoreEntry": self.record.to_dict(),
            "stats": self.aggregate.to_dict(),
        }
        if self.new_achievements:
            d["newAchievements"] = [a.to_dict() for a in self.new_achievements]
        return d


class SubmissionService:
    """
    Orchestrates ledger write, achievement evaluation and aggregate fold.

    Concurrent submissions by one user are serialized inside the store's
    apply_submission; submissions by different users never contend.
    """

    def __init__(
        self,
        user_store: UserStoreBase,
        score_store: ScoreStoreBase,
        recent_games_limit: int = 20,
    ):
        self.user_store = user_store
        self.score_store = score_store
        self.recent_games_limit = recent_games_limit

    @classmethod
    def create(cls, user_store: UserStoreBase, score_store: ScoreStoreBase) -> "SubmissionService":
        return cls(user_store, score_store, config.leaderboard.recent_games_limit)

    async def submit(
        self,
        identity: Identity,
        result: GameResult,
        idempotency_key: Optional[str] = None,
    ) -> SubmissionOutcome:
        """
        Record a finished game for an authenticated user.

        Args:
            identity: Caller identity. Anonymous callers are rejected.
            result: Game result, validated here before anything is written.
            idempotency_key: Optional client retry token.

        Returns:
            SubmissionOutcome. created is False when the key was already used
            by this user, in which case the original record is returned.

        Raises:
            AuthError: anonymous caller.
            ValidationError: bad result fields or key.
            NotFoundError: the account no longer exists.
            StoreError: the record was written but the aggregate was not updated.
        """
        if not isinstance(identity, Authenticated):
            raise AuthError()
        user_id = identity.user_id

        if idempotency_key is not None and not 1 <= len(idempotency_key) <= IDEMPOTENCY_KEY_MAX_LENGTH:
            raise ValidationError.for_field(
                "Idempotency-Key", f"must be 1-{IDEMPOTENCY_KEY_MAX_LENGTH} characters"
            )
        result.validate()

        if not await self.user_store.get_user_by_id(user_id):
            raise NotFoundError("User not found")

        record, created = await self.score_store.insert_score(user_id, result, idempotency_key)
        if created:
            logger.info(
                f"Score submitted: {record.game_type}/{record.difficulty} {record.score}",
                extra={"score_id": record.id, "game_type": record.game_type, "difficulty": record.difficulty},
            )

        try:
            fold = await self.user_store.apply_submission(record, evaluate, self.recent_games_limit)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(
                f"Aggregate update failed for user {user_id}, record kept for reconcile: {e}",
                extra={"score_id": record.id},
                exc_info=True,
            )
            raise StoreError() from e

        if fold.new_achievements:
            logger.info(
                f"Achievements granted: {', '.join(fold.new_achievements)}",
                extra={"score_id": record.id, "achievements": list(fold.new_achievements)},
            )

        return SubmissionOutcome(
            record=record,
            aggregate=fold.after,
            new_achievements=definitions_for(fold.new_achievements),
            created=created,
        )

    async def reconcile(self, user_id: str) -> UserAggregate:
        """
        Rebuild a user's counters and best scores from the ledger.

        Achievements and recent games are left as they are.
        """
        try:
            return await self.user_store.reconcile_aggregate(user_id)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Reconcile failed for user {user_id}: {e}", exc_info=True)
            raise StoreError() from e

    async def reconcile_all(self) -> int:
        """Reconcile every account. Returns the number processed."""
        count = 0
        for user_id in await self.user_store.list_user_ids():
            try:
                await self.reconcile(user_id)
            except NotFoundError:
                # Deleted while we were iterating
                continue
            count += 1
        return count
