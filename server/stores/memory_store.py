"""
In-process store used when no PostgreSQL URL is configured, and by tests.

Implements both store interfaces over plain dicts. Aggregate updates for a
user are serialized by that user's asyncio.Lock, mirroring the row lock
taken by the PostgreSQL backend.
"""

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from errors import NotFoundError
from models.score import AggregateDelta, GameResult, ScoreRecord, UserAggregate
from models.user import User, UserRole, UserSession
from stores.base import (
    AchievementEvaluator,
    FoldResult,
    ModeDistribution,
    PlayerModeBest,
    PlayerTotals,
    ScoreStoreBase,
    UserStoreBase,
)

logger = logging.getLogger(__name__)


class MemoryStore(UserStoreBase, ScoreStoreBase):
    """Dict-backed implementation of the user and score stores."""

    def __init__(self):
        self._users: dict[str, User] = {}
        self._sessions: dict[str, UserSession] = {}
        self._aggregates: dict[str, UserAggregate] = {}
        # Ledger in insertion order; list position breaks timestamp ties
        self._scores: list[ScoreRecord] = []
        self._folded: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def close(self) -> None:
        pass

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: str,
        role: UserRole = UserRole.USER,
    ) -> Optional[User]:
        if await self.get_user_by_email(email):
            return None
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=email.lower(),
            password_hash=password_hash,
            role=role,
        )
        self._users[user.id] = user
        self._aggregates[user.id] = UserAggregate(user_id=user.id)
        return user

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        email = email.lower()
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    async def update_user(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        role: Optional[UserRole] = None,
        last_login: Optional[datetime] = None,
    ) -> Optional[User]:
        user = self._users.get(user_id)
        if not user:
            return None
        if email is not None:
            existing = await self.get_user_by_email(email)
            if existing and existing.id != user_id:
                return None

        changes = {}
        if name is not None:
            changes["name"] = name
        if email is not None:
            changes["email"] = email.lower()
        if password_hash is not None:
            changes["password_hash"] = password_hash
        if role is not None:
            changes["role"] = role
        if last_login is not None:
            changes["last_login"] = last_login

        user = replace(user, **changes)
        self._users[user_id] = user
        return user

    async def delete_user(self, user_id: str) -> bool:
        if self._users.pop(user_id, None) is None:
            return False
        self._aggregates.pop(user_id, None)
        self._sessions = {h: s for h, s in self._sessions.items() if s.user_id != user_id}
        await self.delete_user_scores(user_id)
        self._locks.pop(user_id, None)
        return True

    async def list_user_ids(self) -> list[str]:
        return list(self._users)

    async def count_users(self) -> int:
        return len(self._users)

    async def get_display_names(self, user_ids: list[str]) -> dict[str, str]:
        return {uid: self._users[uid].name for uid in user_ids if uid in self._users}

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    async def create_session(self, user_id: str, token_hash: str, expires_at: datetime) -> UserSession:
        session = UserSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
        )
        self._sessions[token_hash] = session
        return session

    async def get_session_by_token_hash(self, token_hash: str) -> Optional[UserSession]:
        return self._sessions.get(token_hash)

    async def revoke_session_by_token_hash(self, token_hash: str) -> bool:
        session = self._sessions.get(token_hash)
        if not session or session.revoked_at is not None:
            return False
        session.revoked_at = datetime.now(timezone.utc)
        return True

    async def revoke_all_sessions(self, user_id: str) -> int:
        now = datetime.now(timezone.utc)
        count = 0
        for session in self._sessions.values():
            if session.user_id == user_id and session.revoked_at is None:
                session.revoked_at = now
                count += 1
        return count

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    async def get_aggregate(self, user_id: str) -> Optional[UserAggregate]:
        return self._aggregates.get(user_id)

    async def apply_submission(
        self,
        record: ScoreRecord,
        evaluate: AchievementEvaluator,
        recent_limit: int,
    ) -> FoldResult:
        async with self._locks[record.user_id]:
            before = self._aggregates.get(record.user_id)
            if before is None:
                raise NotFoundError("User not found")
            if record.id in self._folded:
                return FoldResult(before, before, (), applied=False)

            new_achievements = tuple(evaluate(before, record.to_result()))
            after = AggregateDelta.from_record(record, new_achievements).apply(before, recent_limit)
            self._folded.add(record.id)
            self._aggregates[record.user_id] = after
            return FoldResult(before, after, new_achievements)

    async def reconcile_aggregate(self, user_id: str) -> UserAggregate:
        async with self._locks[user_id]:
            aggregate = self._aggregates.get(user_id)
            if aggregate is None:
                raise NotFoundError("User not found")

            records = [r for r in self._scores if r.user_id == user_id]
            best_scores: dict[str, int] = {}
            for r in records:
                key = r.to_result().mode_key
                best_scores[key] = max(best_scores.get(key, r.score), r.score)
                self._folded.add(r.id)

            aggregate = replace(
                aggregate,
                games_played=len(records),
                total_score=sum(r.score for r in records),
                best_scores=best_scores,
            )
            self._aggregates[user_id] = aggregate
        logger.info(f"Reconciled aggregate for user {user_id}")
        return aggregate

    async def top_by_total_score(self, limit: int) -> list[PlayerTotals]:
        ranked = sorted(self._aggregates.values(), key=lambda a: (-a.total_score, a.user_id))
        return [
            PlayerTotals(
                user_id=a.user_id,
                name=self._users[a.user_id].name,
                total_score=a.total_score,
                games_played=a.games_played,
                achievements=len(a.achievements),
            )
            for a in ranked[:limit]
        ]

    async def count_users_with_total_above(self, total_score: int) -> int:
        return sum(1 for a in self._aggregates.values() if a.total_score > total_score)

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def insert_score(
        self,
        user_id: str,
        result: GameResult,
        idempotency_key: Optional[str] = None,
    ) -> tuple[ScoreRecord, bool]:
        if idempotency_key is not None:
            for existing in self._scores:
                if existing.user_id == user_id and existing.idempotency_key == idempotency_key:
                    logger.info(f"Replayed submission for idempotency key {idempotency_key}")
                    return existing, False

        record = ScoreRecord(
            id=str(uuid.uuid4()),
            user_id=user_id,
            game_type=result.game_type,
            difficulty=result.difficulty,
            score=result.score,
            time_spent=result.time_spent,
            moves=result.moves,
            created_at=datetime.now(timezone.utc),
            idempotency_key=idempotency_key,
        )
        self._scores.append(record)
        return record, True

    def _select(
        self,
        user_id: Optional[str] = None,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> list[tuple[int, ScoreRecord]]:
        return [
            (seq, r)
            for seq, r in enumerate(self._scores)
            if (user_id is None or r.user_id == user_id)
            and (game_type is None or r.game_type == game_type)
            and (difficulty is None or r.difficulty == difficulty)
            and (since is None or r.created_at >= since)
        ]

    async def list_scores(
        self,
        user_id: Optional[str] = None,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[ScoreRecord]:
        rows = self._select(user_id, game_type, difficulty, since)
        rows.sort(key=lambda item: (item[1].created_at, item[0]), reverse=True)
        records = [r for _, r in rows]
        return records if limit is None else records[:limit]

    async def top_scores(
        self,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 10,
        user_id: Optional[str] = None,
    ) -> list[tuple[ScoreRecord, str]]:
        rows = self._select(user_id, game_type, difficulty, since)
        rows.sort(key=lambda item: (item[1].score, item[1].created_at, item[0]), reverse=True)
        return [
            (r, self._users[r.user_id].name)
            for _, r in rows[:limit]
            if r.user_id in self._users
        ]

    async def best_per_user(
        self,
        game_type: str,
        difficulty: Optional[str] = None,
        limit: int = 50,
    ) -> list[PlayerModeBest]:
        best: dict[str, int] = {}
        games: dict[str, int] = defaultdict(int)
        for _, r in self._select(game_type=game_type, difficulty=difficulty):
            best[r.user_id] = max(best.get(r.user_id, r.score), r.score)
            games[r.user_id] += 1

        ranked = sorted(best.items(), key=lambda item: (-item[1], item[0]))
        return [
            PlayerModeBest(
                user_id=uid,
                name=self._users[uid].name,
                best_score=score,
                total_games=games[uid],
            )
            for uid, score in ranked[:limit]
            if uid in self._users
        ]

    async def best_for_user(
        self,
        user_id: str,
        game_type: str,
        difficulty: Optional[str] = None,
    ) -> Optional[ScoreRecord]:
        rows = self._select(user_id, game_type, difficulty)
        if not rows:
            return None
        return max(rows, key=lambda item: (item[1].score, item[1].created_at, item[0]))[1]

    async def count_scores_above(self, game_type: str, difficulty: str, score: int) -> int:
        return sum(1 for _, r in self._select(game_type=game_type, difficulty=difficulty) if r.score > score)

    async def count_scores(self) -> int:
        return len(self._scores)

    async def distribution(self, column: str) -> list[ModeDistribution]:
        if column not in ("game_type", "difficulty"):
            raise ValueError(f"Cannot group scores by {column}")
        groups: dict[str, list[int]] = defaultdict(list)
        for r in self._scores:
            groups[getattr(r, column)].append(r.score)
        rows = [
            ModeDistribution(
                key=key,
                count=len(scores),
                avg_score=sum(scores) / len(scores),
                max_score=max(scores),
            )
            for key, scores in groups.items()
        ]
        rows.sort(key=lambda d: (-d.count, d.key))
        return rows

    async def delete_user_scores(self, user_id: str) -> int:
        kept = [r for r in self._scores if r.user_id != user_id]
        removed = len(self._scores) - len(kept)
        self._folded -= {r.id for r in self._scores if r.user_id == user_id}
        self._scores = kept
        return removed
