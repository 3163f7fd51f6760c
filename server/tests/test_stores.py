"""
Tests for the PostgreSQL stores against a mocked asyncpg pool.

These check the parts of the SQL path that carry invariants: the claim on
the folded flag, idempotent inserts, and row mapping.
"""

import json
import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from errors import NotFoundError
from models.score import GameResult, ScoreRecord
from services.achievement_service import evaluate
from stores.score_store import ScoreStore
from stores.user_store import UserStore, valid_id


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def conn():
    """Mock asyncpg connection with a working transaction() context."""
    connection = AsyncMock()
    connection.transaction = MagicMock()
    connection.transaction.return_value.__aenter__ = AsyncMock(return_value=None)
    connection.transaction.return_value.__aexit__ = AsyncMock(return_value=False)
    return connection


@pytest.fixture
def pool(conn):
    """Mock pool whose acquire() yields the mock connection."""
    mock_pool = MagicMock()
    mock_pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    mock_pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    return mock_pool


USER_ID = str(uuid.uuid4())
NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def record(score=600, record_id=None) -> ScoreRecord:
    return ScoreRecord(
        id=record_id or str(uuid.uuid4()),
        user_id=USER_ID,
        game_type="memory_card",
        difficulty="easy",
        score=score,
        time_spent=45,
        moves=8,
        created_at=NOW,
    )


def stats_row(**overrides) -> dict:
    row = {
        "user_id": uuid.UUID(USER_ID),
        "games_played": 0,
        "total_score": 0,
        "best_scores": "{}",
        "achievements": [],
        "recent_games": "[]",
    }
    row.update(overrides)
    return row


def score_row(**overrides) -> dict:
    row = {
        "id": uuid.uuid4(),
        "user_id": uuid.UUID(USER_ID),
        "game_type": "memory_card",
        "difficulty": "easy",
        "score": 600,
        "time_spent": 45,
        "moves": 8,
        "created_at": datetime(2026, 5, 1, 12, 0),
        "idempotency_key": None,
    }
    row.update(overrides)
    return row


class TestValidId:
    def test_uuid_accepted(self):
        assert valid_id(str(uuid.uuid4()))

    def test_garbage_rejected(self):
        assert not valid_id("not-a-uuid")
        assert not valid_id(None)


# =============================================================================
# UserStore
# =============================================================================


class TestApplySubmission:
    """Tests for UserStore.apply_submission."""

    @pytest.mark.asyncio
    async def test_folds_under_row_lock(self, pool, conn):
        rec = record(600)
        after = stats_row(
            games_played=1,
            total_score=600,
            best_scores=json.dumps({"memory_card_easy": 600}),
            achievements=["first_game", "score_500", "difficulty_easy"],
            recent_games=json.dumps([{"gameType": "memory_card", "difficulty": "easy", "score": 600,
                                      "timeSpent": 45, "moves": 8, "timestamp": NOW.isoformat()}]),
        )
        conn.fetchrow.side_effect = [stats_row(), after]
        conn.execute.return_value = "UPDATE 1"

        result = await UserStore(pool).apply_submission(rec, evaluate, 20)

        assert result.applied is True
        assert result.new_achievements == ("first_game", "score_500", "difficulty_easy")
        assert result.before.games_played == 0
        assert result.after.total_score == 600
        assert result.after.best_scores == {"memory_card_easy": 600}
        assert result.after.recent_games[0].score == 600

        lock_sql = conn.fetchrow.call_args_list[0].args[0]
        assert "FOR UPDATE" in lock_sql
        claim = conn.execute.call_args
        assert "folded = FALSE" in claim.args[0]
        assert claim.args[1] == rec.id

        update_args = conn.fetchrow.call_args_list[1].args
        assert update_args[1:6] == (USER_ID, 1, 600, "memory_card_easy", 600)
        assert update_args[6] == ["first_game", "score_500", "difficulty_easy"]
        assert json.loads(update_args[7])["score"] == 600
        assert update_args[8] == 20

    @pytest.mark.asyncio
    async def test_already_folded_is_skipped(self, pool, conn):
        before = stats_row(games_played=3, total_score=900)
        conn.fetchrow.side_effect = [before]
        conn.execute.return_value = "UPDATE 0"
        evaluator = MagicMock(return_value=())

        result = await UserStore(pool).apply_submission(record(), evaluator, 20)

        assert result.applied is False
        assert result.after.games_played == 3
        assert conn.fetchrow.call_count == 1
        evaluator.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_aggregate(self, pool, conn):
        conn.fetchrow.side_effect = [None]
        with pytest.raises(NotFoundError):
            await UserStore(pool).apply_submission(record(), evaluate, 20)
        conn.execute.assert_not_called()


class TestReconcile:
    """Tests for UserStore.reconcile_aggregate."""

    @pytest.mark.asyncio
    async def test_rebuilds_from_folded_rows(self, pool, conn):
        conn.fetchrow.side_effect = [
            {"user_id": uuid.UUID(USER_ID)},
            {"games": 2, "total": 900},
            stats_row(games_played=2, total_score=900, best_scores={"memory_card_easy": 600}),
        ]
        conn.fetch.return_value = [
            {"game_type": "memory_card", "difficulty": "easy", "best": 600},
        ]

        aggregate = await UserStore(pool).reconcile_aggregate(USER_ID)

        assert aggregate.games_played == 2
        assert aggregate.best_scores == {"memory_card_easy": 600}
        claim_sql = conn.execute.call_args.args[0]
        assert "SET folded = TRUE" in claim_sql
        update_args = conn.fetchrow.call_args_list[2].args
        assert update_args[1:4] == (USER_ID, 2, 900)
        assert json.loads(update_args[4]) == {"memory_card_easy": 600}

    @pytest.mark.asyncio
    async def test_invalid_id(self, pool):
        with pytest.raises(NotFoundError):
            await UserStore(pool).reconcile_aggregate("nope")
        pool.acquire.assert_not_called()


class TestUserRows:
    """Tests for account creation and lookups."""

    @pytest.mark.asyncio
    async def test_duplicate_email_returns_none(self, pool, conn):
        conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")
        assert await UserStore(pool).create_user("Ada", "ada@example.com", "hash") is None

    @pytest.mark.asyncio
    async def test_create_user_creates_aggregate(self, pool, conn):
        user_id = uuid.uuid4()
        conn.fetchrow.return_value = {
            "id": user_id,
            "name": "Ada",
            "email": "ada@example.com",
            "password_hash": "hash",
            "role": "user",
            "created_at": NOW,
            "last_login": None,
            "is_active": True,
        }

        user = await UserStore(pool).create_user("Ada", "Ada@Example.com", "hash")

        assert user.id == str(user_id)
        stats_insert = conn.execute.call_args
        assert "user_stats" in stats_insert.args[0]
        assert stats_insert.args[1] == user_id

    @pytest.mark.asyncio
    async def test_lookup_by_invalid_id_skips_database(self, pool):
        store = UserStore(pool)
        assert await store.get_user_by_id("../etc") is None
        assert await store.get_aggregate("xyz") is None
        pool.acquire.assert_not_called()

    @pytest.mark.asyncio
    async def test_revoke_all_parses_count(self, pool, conn):
        conn.execute.return_value = "UPDATE 3"
        assert await UserStore(pool).revoke_all_sessions(USER_ID) == 3


# =============================================================================
# ScoreStore
# =============================================================================


class TestInsertScore:
    """Tests for ScoreStore.insert_score."""

    @pytest.mark.asyncio
    async def test_new_row(self, pool, conn):
        conn.fetchrow.return_value = score_row(idempotency_key="k1")
        rec, created = await ScoreStore(pool).insert_score(
            USER_ID, GameResult("memory_card", "easy", 600, 45, 8), "k1"
        )
        assert created is True
        assert rec.user_id == USER_ID
        assert rec.created_at.tzinfo is not None
        assert "ON CONFLICT" in conn.fetchrow.call_args.args[0]

    @pytest.mark.asyncio
    async def test_conflict_returns_original(self, pool, conn):
        original = score_row(idempotency_key="k1", score=450)
        conn.fetchrow.side_effect = [None, original]

        rec, created = await ScoreStore(pool).insert_score(
            USER_ID, GameResult("memory_card", "easy", 600, 45, 8), "k1"
        )

        assert created is False
        assert rec.score == 450
        assert rec.id == str(original["id"])
        assert conn.fetchrow.call_args.args[1:] == (USER_ID, "k1")


class TestScoreQueries:
    """Tests for ScoreStore read paths."""

    @pytest.mark.asyncio
    async def test_list_filters_numbered_in_order(self, pool, conn):
        conn.fetch.return_value = []
        since = datetime(2026, 4, 1, tzinfo=timezone.utc)

        await ScoreStore(pool).list_scores(user_id=USER_ID, difficulty="hard", since=since, limit=5)

        query, *params = conn.fetch.call_args.args
        assert "user_id = $1" in query
        assert "difficulty = $2" in query
        assert "created_at >= $3" in query
        assert "LIMIT $4" in query
        assert params == [USER_ID, "hard", since, 5]

    @pytest.mark.asyncio
    async def test_list_for_invalid_user_is_empty(self, pool):
        assert await ScoreStore(pool).list_scores(user_id="bogus") == []
        pool.acquire.assert_not_called()

    @pytest.mark.asyncio
    async def test_best_per_user_maps_rows(self, pool, conn):
        other = uuid.uuid4()
        conn.fetch.return_value = [
            {"user_id": other, "name": "Bob", "best_score": 900, "total_games": 4},
        ]
        rows = await ScoreStore(pool).best_per_user("memory_card", difficulty="easy", limit=10)
        assert rows[0].user_id == str(other)
        assert rows[0].best_score == 900
        query, *params = conn.fetch.call_args.args
        assert "GROUP BY" in query
        assert params == ["memory_card", "easy", 10]

    @pytest.mark.asyncio
    async def test_distribution_rejects_other_columns(self, pool):
        with pytest.raises(ValueError):
            await ScoreStore(pool).distribution("score; DROP TABLE scores")

    @pytest.mark.asyncio
    async def test_delete_parses_count(self, pool, conn):
        conn.execute.return_value = "DELETE 7"
        assert await ScoreStore(pool).delete_user_scores(USER_ID) == 7
