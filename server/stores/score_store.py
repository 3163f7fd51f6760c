"""
PostgreSQL-backed score ledger.

Every accepted submission becomes one row in `scores`. Rows are never
updated except for the `folded` marker that records whether the row has
been counted into its owner's aggregate (see UserStore.apply_submission).
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import asyncpg

from models.score import GameResult, ScoreRecord
from stores.base import ModeDistribution, PlayerModeBest, ScoreStoreBase
from stores.user_store import valid_id

logger = logging.getLogger(__name__)


# Requires the users table from user_store.SCHEMA_SQL
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS scores (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    game_type VARCHAR(32) NOT NULL,
    difficulty VARCHAR(16) NOT NULL,
    score INT NOT NULL CHECK (score >= 0),
    time_spent INT NOT NULL CHECK (time_spent >= 0),
    moves INT NOT NULL CHECK (moves >= 0),
    created_at TIMESTAMPTZ DEFAULT NOW(),
    idempotency_key VARCHAR(128),
    folded BOOLEAN NOT NULL DEFAULT FALSE,
    UNIQUE (user_id, idempotency_key)
);

CREATE INDEX IF NOT EXISTS idx_scores_user_time ON scores(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_scores_mode_score ON scores(game_type, difficulty, score DESC);
CREATE INDEX IF NOT EXISTS idx_scores_time ON scores(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_scores_unfolded ON scores(user_id) WHERE folded = FALSE;
"""

SCORE_COLUMNS = "id, user_id, game_type, difficulty, score, time_spent, moves, created_at, idempotency_key"

DISTRIBUTION_COLUMNS = ("game_type", "difficulty")


class ScoreStore(ScoreStoreBase):
    """
    Append-only ledger on PostgreSQL.

    Shares its pool with UserStore; the two tables are joined for names.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def initialize_schema(self) -> None:
        """Create the scores table if it doesn't exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Score store schema initialized")

    def _filters(
        self,
        user_id: Optional[str] = None,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        since: Optional[datetime] = None,
        prefix: str = "",
    ) -> tuple[str, list]:
        """Build a WHERE clause from optional filters."""
        conditions = []
        params = []
        for column, value in (
            ("user_id", user_id),
            ("game_type", game_type),
            ("difficulty", difficulty),
        ):
            if value is not None:
                params.append(value)
                conditions.append(f"{prefix}{column} = ${len(params)}")
        if since is not None:
            params.append(since)
            conditions.append(f"{prefix}created_at >= ${len(params)}")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return where, params

    async def insert_score(
        self,
        user_id: str,
        result: GameResult,
        idempotency_key: Optional[str] = None,
    ) -> tuple[ScoreRecord, bool]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO scores (user_id, game_type, difficulty, score, time_spent, moves, idempotency_key)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (user_id, idempotency_key) DO NOTHING
                RETURNING {SCORE_COLUMNS}
                """,
                user_id,
                result.game_type,
                result.difficulty,
                result.score,
                result.time_spent,
                result.moves,
                idempotency_key,
            )
            if row:
                return self._row_to_record(row), True

            # Key already used by this user: hand back the original record
            row = await conn.fetchrow(
                f"SELECT {SCORE_COLUMNS} FROM scores WHERE user_id = $1 AND idempotency_key = $2",
                user_id,
                idempotency_key,
            )
            logger.info(f"Replayed submission for idempotency key {idempotency_key}")
            return self._row_to_record(row), False

    async def list_scores(
        self,
        user_id: Optional[str] = None,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[ScoreRecord]:
        if user_id is not None and not valid_id(user_id):
            return []
        where, params = self._filters(user_id, game_type, difficulty, since)
        query = f"SELECT {SCORE_COLUMNS} FROM scores {where} ORDER BY created_at DESC, id DESC"
        if limit is not None:
            params.append(limit)
            query += f" LIMIT ${len(params)}"
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return [self._row_to_record(row) for row in rows]

    async def top_scores(
        self,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 10,
        user_id: Optional[str] = None,
    ) -> list[tuple[ScoreRecord, str]]:
        if user_id is not None and not valid_id(user_id):
            return []
        where, params = self._filters(user_id, game_type, difficulty, since, prefix="s.")
        params.append(limit)
        query = f"""
            SELECT s.id, s.user_id, s.game_type, s.difficulty, s.score, s.time_spent,
                   s.moves, s.created_at, s.idempotency_key, u.name
            FROM scores s
            JOIN users u ON u.id = s.user_id
            {where}
            ORDER BY s.score DESC, s.created_at DESC, s.id DESC
            LIMIT ${len(params)}
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return [(self._row_to_record(row), row["name"]) for row in rows]

    async def best_per_user(
        self,
        game_type: str,
        difficulty: Optional[str] = None,
        limit: int = 50,
    ) -> list[PlayerModeBest]:
        where, params = self._filters(game_type=game_type, difficulty=difficulty, prefix="s.")
        params.append(limit)
        query = f"""
            SELECT s.user_id, u.name, MAX(s.score) AS best_score, COUNT(*) AS total_games
            FROM scores s
            JOIN users u ON u.id = s.user_id
            {where}
            GROUP BY s.user_id, u.name
            ORDER BY best_score DESC, s.user_id ASC
            LIMIT ${len(params)}
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return [
                PlayerModeBest(
                    user_id=str(row["user_id"]),
                    name=row["name"],
                    best_score=row["best_score"],
                    total_games=row["total_games"],
                )
                for row in rows
            ]

    async def best_for_user(
        self,
        user_id: str,
        game_type: str,
        difficulty: Optional[str] = None,
    ) -> Optional[ScoreRecord]:
        if not valid_id(user_id):
            return None
        where, params = self._filters(user_id, game_type, difficulty)
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {SCORE_COLUMNS} FROM scores {where}
                ORDER BY score DESC, created_at DESC
                LIMIT 1
                """,
                *params,
            )
            return self._row_to_record(row) if row else None

    async def count_scores_above(self, game_type: str, difficulty: str, score: int) -> int:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                """
                SELECT COUNT(*) FROM scores
                WHERE game_type = $1 AND difficulty = $2 AND score > $3
                """,
                game_type,
                difficulty,
                score,
            )

    async def count_scores(self) -> int:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT COUNT(*) FROM scores")

    async def distribution(self, column: str) -> list[ModeDistribution]:
        if column not in DISTRIBUTION_COLUMNS:
            raise ValueError(f"Cannot group scores by {column}")
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {column} AS key, COUNT(*) AS count,
                       AVG(score)::float AS avg_score, MAX(score) AS max_score
                FROM scores
                GROUP BY {column}
                ORDER BY count DESC, key ASC
                """
            )
            return [
                ModeDistribution(
                    key=row["key"],
                    count=row["count"],
                    avg_score=row["avg_score"],
                    max_score=row["max_score"],
                )
                for row in rows
            ]

    async def delete_user_scores(self, user_id: str) -> int:
        if not valid_id(user_id):
            return 0
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM scores WHERE user_id = $1", user_id)
            # Parse "DELETE N" result
            return int(result.split()[1]) if result else 0

    def _row_to_record(self, row: asyncpg.Record) -> ScoreRecord:
        created_at = row["created_at"]
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return ScoreRecord(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            game_type=row["game_type"],
            difficulty=row["difficulty"],
            score=row["score"],
            time_spent=row["time_spent"],
            moves=row["moves"],
            created_at=created_at,
            idempotency_key=row["idempotency_key"],
        )
