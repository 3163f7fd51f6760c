"""
PostgreSQL-backed user store for the Memory Trainer score server.

Manages user accounts, sessions, and the per-user stats aggregate.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import asyncpg

from errors import NotFoundError
from models.score import AggregateDelta, RecentGame, ScoreRecord, UserAggregate
from models.user import User, UserRole, UserSession
from stores.base import (
    AchievementEvaluator,
    FoldResult,
    PlayerTotals,
    UserStoreBase,
)

logger = logging.getLogger(__name__)


# SQL schema for user store
SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(50) NOT NULL,
    email VARCHAR(255) UNIQUE NOT NULL,
    password_hash VARCHAR(255) NOT NULL,
    role VARCHAR(20) DEFAULT 'user',
    created_at TIMESTAMPTZ DEFAULT NOW(),
    last_login TIMESTAMPTZ,
    is_active BOOLEAN DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS user_sessions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    token_hash VARCHAR(255) UNIQUE NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    expires_at TIMESTAMPTZ NOT NULL,
    revoked_at TIMESTAMPTZ
);

-- One aggregate per user, created with the account
CREATE TABLE IF NOT EXISTS user_stats (
    user_id UUID PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    games_played INT NOT NULL DEFAULT 0,
    total_score BIGINT NOT NULL DEFAULT 0,
    best_scores JSONB NOT NULL DEFAULT '{}',
    achievements TEXT[] NOT NULL DEFAULT '{}',
    recent_games JSONB NOT NULL DEFAULT '[]',
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_users_email ON users(LOWER(email));
CREATE INDEX IF NOT EXISTS idx_sessions_user ON user_sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_sessions_expires ON user_sessions(expires_at) WHERE revoked_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_stats_total ON user_stats(total_score DESC);
"""

USER_COLUMNS = "id, name, email, password_hash, role, created_at, last_login, is_active"
STATS_COLUMNS = "user_id, games_played, total_score, best_scores, achievements, recent_games"


def valid_id(value: str) -> bool:
    """Whether a string is a UUID (ids from URLs may be anything)."""
    try:
        UUID(str(value))
        return True
    except (ValueError, TypeError):
        return False


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return value.replace(tzinfo=timezone.utc) if value and value.tzinfo is None else value


def _json(value, default):
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


class UserStore(UserStoreBase):
    """
    PostgreSQL-backed store for users, sessions and aggregates.

    Uses asyncpg for async database access.
    """

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize user store with connection pool.

        Args:
            pool: asyncpg connection pool.
        """
        self.pool = pool

    @classmethod
    async def create(cls, postgres_url: str) -> "UserStore":
        """
        Create a UserStore with a new connection pool.

        Args:
            postgres_url: PostgreSQL connection URL.

        Returns:
            Configured UserStore instance.
        """
        pool = await asyncpg.create_pool(postgres_url, min_size=2, max_size=10)
        store = cls(pool)
        await store.initialize_schema()
        return store

    async def initialize_schema(self) -> None:
        """Create database tables if they don't exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("User store schema initialized")

    async def close(self) -> None:
        """Close the connection pool."""
        await self.pool.close()

    # -------------------------------------------------------------------------
    # User CRUD
    # -------------------------------------------------------------------------

    async def create_user(
        self,
        name: str,
        email: str,
        password_hash: str,
        role: UserRole = UserRole.USER,
    ) -> Optional[User]:
        """
        Create a new user account with an all-zero aggregate.

        Returns:
            Created User, or None if email already exists.
        """
        async with self.pool.acquire() as conn:
            try:
                async with conn.transaction():
                    row = await conn.fetchrow(
                        f"""
                        INSERT INTO users (name, email, password_hash, role)
                        VALUES ($1, LOWER($2), $3, $4)
                        RETURNING {USER_COLUMNS}
                        """,
                        name,
                        email,
                        password_hash,
                        role.value,
                    )
                    await conn.execute(
                        "INSERT INTO user_stats (user_id) VALUES ($1)",
                        row["id"],
                    )
                return self._row_to_user(row)
            except asyncpg.UniqueViolationError:
                return None

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        if not valid_id(user_id):
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )
            return self._row_to_user(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email (case-insensitive)."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE LOWER(email) = LOWER($1)",
                email,
            )
            return self._row_to_user(row) if row else None

    async def update_user(
        self,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        role: Optional[UserRole] = None,
        last_login: Optional[datetime] = None,
    ) -> Optional[User]:
        """
        Update user fields.

        Only non-None values are updated.

        Returns:
            Updated User, or None if user not found or unique constraint violated.
        """
        if not valid_id(user_id):
            return None

        updates = []
        params = []

        def add_param(value):
            params.append(value)
            return len(params)

        if name is not None:
            updates.append(f"name = ${add_param(name)}")
        if email is not None:
            updates.append(f"email = LOWER(${add_param(email)})")
        if password_hash is not None:
            updates.append(f"password_hash = ${add_param(password_hash)}")
        if role is not None:
            updates.append(f"role = ${add_param(role.value)}")
        if last_login is not None:
            updates.append(f"last_login = ${add_param(last_login)}")

        if not updates:
            return await self.get_user_by_id(user_id)

        query = f"""
            UPDATE users
            SET {', '.join(updates)}
            WHERE id = ${add_param(user_id)}
            RETURNING {USER_COLUMNS}
        """

        async with self.pool.acquire() as conn:
            try:
                row = await conn.fetchrow(query, *params)
                return self._row_to_user(row) if row else None
            except asyncpg.UniqueViolationError:
                return None

    async def delete_user(self, user_id: str) -> bool:
        """Delete a user; sessions, aggregate and scores cascade."""
        if not valid_id(user_id):
            return False
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM users WHERE id = $1", user_id)
            return result == "DELETE 1"

    async def list_user_ids(self) -> list[str]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("SELECT id FROM users ORDER BY created_at")
            return [str(row["id"]) for row in rows]

    async def count_users(self) -> int:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT COUNT(*) FROM users")

    async def get_display_names(self, user_ids: list[str]) -> dict[str, str]:
        ids = [uid for uid in user_ids if valid_id(uid)]
        if not ids:
            return {}
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT id, name FROM users WHERE id = ANY($1::uuid[])",
                ids,
            )
            return {str(row["id"]): row["name"] for row in rows}

    # -------------------------------------------------------------------------
    # Session CRUD
    # -------------------------------------------------------------------------

    async def create_session(self, user_id: str, token_hash: str, expires_at: datetime) -> UserSession:
        """Create a session for an already-hashed token."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO user_sessions (user_id, token_hash, expires_at)
                VALUES ($1, $2, $3)
                RETURNING id, user_id, token_hash, created_at, expires_at, revoked_at
                """,
                user_id,
                token_hash,
                expires_at,
            )
            return self._row_to_session(row)

    async def get_session_by_token_hash(self, token_hash: str) -> Optional[UserSession]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, user_id, token_hash, created_at, expires_at, revoked_at
                FROM user_sessions
                WHERE token_hash = $1
                """,
                token_hash,
            )
            return self._row_to_session(row) if row else None

    async def revoke_session_by_token_hash(self, token_hash: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE user_sessions SET revoked_at = NOW()
                WHERE token_hash = $1 AND revoked_at IS NULL
                """,
                token_hash,
            )
            return result == "UPDATE 1"

    async def revoke_all_sessions(self, user_id: str) -> int:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE user_sessions SET revoked_at = NOW()
                WHERE user_id = $1 AND revoked_at IS NULL
                """,
                user_id,
            )
            # Parse "UPDATE N" result
            return int(result.split()[1]) if result else 0

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    async def get_aggregate(self, user_id: str) -> Optional[UserAggregate]:
        if not valid_id(user_id):
            return None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {STATS_COLUMNS} FROM user_stats WHERE user_id = $1",
                user_id,
            )
            return self._row_to_aggregate(row) if row else None

    async def apply_submission(
        self,
        record: ScoreRecord,
        evaluate: AchievementEvaluator,
        recent_limit: int,
    ) -> FoldResult:
        """
        Fold a ledger record into the aggregate inside one transaction.

        SELECT ... FOR UPDATE serializes concurrent submissions for the same
        user; the update itself is expressed as increments and set-if-greater.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    f"SELECT {STATS_COLUMNS} FROM user_stats WHERE user_id = $1 FOR UPDATE",
                    record.user_id,
                )
                if not row:
                    raise NotFoundError("User not found")
                before = self._row_to_aggregate(row)

                claimed = await conn.execute(
                    "UPDATE scores SET folded = TRUE WHERE id = $1 AND folded = FALSE",
                    record.id,
                )
                if claimed != "UPDATE 1":
                    return FoldResult(before, before, (), applied=False)

                new_achievements = evaluate(before, record.to_result())
                delta = AggregateDelta.from_record(record, new_achievements)

                row = await conn.fetchrow(
                    f"""
                    UPDATE user_stats SET
                        games_played = games_played + $2,
                        total_score = total_score + $3,
                        best_scores = jsonb_set(
                            best_scores,
                            ARRAY[$4::text],
                            to_jsonb(GREATEST(COALESCE((best_scores->>$4::text)::int, $5::int), $5::int))
                        ),
                        achievements = achievements || ARRAY(
                            SELECT a FROM unnest($6::text[]) WITH ORDINALITY AS t(a, n)
                            WHERE NOT a = ANY(user_stats.achievements)
                            ORDER BY n
                        ),
                        recent_games = (
                            SELECT COALESCE(jsonb_agg(e ORDER BY n), '[]'::jsonb)
                            FROM jsonb_array_elements(
                                jsonb_build_array($7::jsonb) || user_stats.recent_games
                            ) WITH ORDINALITY AS r(e, n)
                            WHERE n <= $8
                        ),
                        updated_at = NOW()
                    WHERE user_id = $1
                    RETURNING {STATS_COLUMNS}
                    """,
                    record.user_id,
                    delta.games_played_inc,
                    delta.total_score_inc,
                    delta.best_score_key,
                    delta.best_score_candidate,
                    list(delta.new_achievements),
                    json.dumps(delta.recent_game.to_dict()),
                    recent_limit,
                )
                return FoldResult(before, self._row_to_aggregate(row), tuple(new_achievements))

    async def reconcile_aggregate(self, user_id: str) -> UserAggregate:
        """Recompute counters and best scores from every folded ledger record."""
        if not valid_id(user_id):
            raise NotFoundError("User not found")
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT user_id FROM user_stats WHERE user_id = $1 FOR UPDATE",
                    user_id,
                )
                if not row:
                    raise NotFoundError("User not found")

                # Claim stragglers first so the sums below cover exactly the folded set
                await conn.execute(
                    "UPDATE scores SET folded = TRUE WHERE user_id = $1 AND folded = FALSE",
                    user_id,
                )
                totals = await conn.fetchrow(
                    """
                    SELECT COUNT(*) AS games, COALESCE(SUM(score), 0) AS total
                    FROM scores WHERE user_id = $1 AND folded
                    """,
                    user_id,
                )
                bests = await conn.fetch(
                    """
                    SELECT game_type, difficulty, MAX(score) AS best
                    FROM scores WHERE user_id = $1 AND folded
                    GROUP BY game_type, difficulty
                    """,
                    user_id,
                )
                best_scores = {f"{b['game_type']}_{b['difficulty']}": b["best"] for b in bests}

                row = await conn.fetchrow(
                    f"""
                    UPDATE user_stats SET
                        games_played = $2,
                        total_score = $3,
                        best_scores = $4::jsonb,
                        updated_at = NOW()
                    WHERE user_id = $1
                    RETURNING {STATS_COLUMNS}
                    """,
                    user_id,
                    totals["games"],
                    totals["total"],
                    json.dumps(best_scores),
                )
        logger.info(f"Reconciled aggregate for user {user_id}")
        return self._row_to_aggregate(row)

    async def top_by_total_score(self, limit: int) -> list[PlayerTotals]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT s.user_id, u.name, s.total_score, s.games_played,
                       cardinality(s.achievements) AS achievements
                FROM user_stats s
                JOIN users u ON u.id = s.user_id
                ORDER BY s.total_score DESC, s.user_id ASC
                LIMIT $1
                """,
                limit,
            )
            return [
                PlayerTotals(
                    user_id=str(row["user_id"]),
                    name=row["name"],
                    total_score=row["total_score"],
                    games_played=row["games_played"],
                    achievements=row["achievements"],
                )
                for row in rows
            ]

    async def count_users_with_total_above(self, total_score: int) -> int:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM user_stats WHERE total_score > $1",
                total_score,
            )

    # -------------------------------------------------------------------------
    # Row mapping
    # -------------------------------------------------------------------------

    def _row_to_user(self, row: asyncpg.Record) -> User:
        return User(
            id=str(row["id"]),
            name=row["name"],
            email=row["email"],
            password_hash=row["password_hash"],
            role=UserRole(row["role"] or "user"),
            created_at=_utc(row["created_at"]) or datetime.now(timezone.utc),
            last_login=_utc(row["last_login"]),
            is_active=row["is_active"],
        )

    def _row_to_session(self, row: asyncpg.Record) -> UserSession:
        return UserSession(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            token_hash=row["token_hash"],
            created_at=_utc(row["created_at"]) or datetime.now(timezone.utc),
            expires_at=_utc(row["expires_at"]),
            revoked_at=_utc(row["revoked_at"]),
        )

    def _row_to_aggregate(self, row: asyncpg.Record) -> UserAggregate:
        return UserAggregate(
            user_id=str(row["user_id"]),
            games_played=row["games_played"],
            total_score=row["total_score"],
            best_scores=_json(row["best_scores"], {}),
            achievements=tuple(row["achievements"] or ()),
            recent_games=tuple(RecentGame.from_dict(g) for g in _json(row["recent_games"], [])),
        )


# Global user store instance
_user_store: Optional[UserStore] = None


async def get_user_store(postgres_url: str) -> UserStore:
    """
    Get or create the global user store instance.

    Args:
        postgres_url: PostgreSQL connection URL.

    Returns:
        UserStore instance.
    """
    global _user_store
    if _user_store is None:
        _user_store = await UserStore.create(postgres_url)
    return _user_store


async def close_user_store() -> None:
    """Close the global user store connection pool."""
    global _user_store
    if _user_store is not None:
        await _user_store.close()
        _user_store = None
