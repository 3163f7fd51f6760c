"""
Tests for leaderboard and ranking queries.

Per-mode rankings are checked against a brute-force group-by-max over the
submitted results.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from errors import NotFoundError, ValidationError
from factories import result


async def submit_all(submissions, plays):
    """plays: list of (identity, GameResult)."""
    for identity, game in plays:
        await submissions.submit(identity, game)


class TestTopScores:
    """Tests for the best-individual-records listing."""

    @pytest.mark.asyncio
    async def test_ordered_by_score(self, submissions, leaderboard, make_user):
        a = await make_user("Alice")
        b = await make_user("Bob")
        await submit_all(submissions, [(a, result(300)), (b, result(900)), (a, result(600))])

        entries = await leaderboard.top_scores()
        assert [e.record.score for e in entries] == [900, 600, 300]
        assert [e.rank for e in entries] == [1, 2, 3]
        assert entries[0].user_name == "Bob"

    @pytest.mark.asyncio
    async def test_ties_newest_first(self, submissions, leaderboard, make_user):
        a = await make_user("Alice")
        b = await make_user("Bob")
        await submit_all(submissions, [(a, result(500)), (b, result(500))])

        entries = await leaderboard.top_scores()
        assert [e.user_name for e in entries] == ["Bob", "Alice"]

    @pytest.mark.asyncio
    async def test_filters(self, submissions, leaderboard, make_user):
        a = await make_user()
        await submit_all(submissions, [
            (a, result(100, game_type="n_back", difficulty="easy")),
            (a, result(200, game_type="n_back", difficulty="hard")),
            (a, result(300, game_type="mental_math", difficulty="hard")),
        ])

        assert [e.record.score for e in await leaderboard.top_scores(game_type="n_back")] == [200, 100]
        assert [e.record.score for e in await leaderboard.top_scores(difficulty="hard")] == [300, 200]

    @pytest.mark.asyncio
    async def test_period_window(self, submissions, leaderboard, store, make_user):
        a = await make_user()
        await submit_all(submissions, [(a, result(800)), (a, result(100))])
        old = datetime.now(timezone.utc) - timedelta(days=10)
        store._scores[0] = replace(store._scores[0], created_at=old)

        assert [e.record.score for e in await leaderboard.top_scores(period="week")] == [100]
        assert [e.record.score for e in await leaderboard.top_scores(period="month")] == [800, 100]
        assert [e.record.score for e in await leaderboard.top_scores()] == [800, 100]

    @pytest.mark.asyncio
    async def test_limit_clamped(self, submissions, leaderboard, make_user):
        a = await make_user()
        await submit_all(submissions, [(a, result(s)) for s in range(15)])

        assert len(await leaderboard.top_scores()) == 10
        assert len(await leaderboard.top_scores(limit=3)) == 3
        assert len(await leaderboard.top_scores(limit=0)) == 1
        assert len(await leaderboard.top_scores(limit=1000)) == 15

    @pytest.mark.asyncio
    async def test_unknown_filters_rejected(self, leaderboard):
        with pytest.raises(ValidationError) as exc:
            await leaderboard.top_scores(game_type="chess", period="year")
        assert {d["field"] for d in exc.value.details} == {"gameType", "period"}

    @pytest.mark.asyncio
    async def test_deleted_user_scores_gone(self, submissions, leaderboard, store, make_user):
        a = await make_user("Alice")
        b = await make_user("Bob")
        await submit_all(submissions, [(a, result(300)), (b, result(900))])
        await store.delete_user(b.user_id)

        entries = await leaderboard.top_scores()
        assert [e.user_name for e in entries] == ["Alice"]

    @pytest.mark.asyncio
    async def test_entry_dict(self, submissions, leaderboard, make_user):
        a = await make_user("Alice")
        await submissions.submit(a, result(300))
        d = (await leaderboard.top_scores())[0].to_dict()
        assert d["rank"] == 1
        assert d["userName"] == "Alice"
        assert d["gameType"] == "memory_card"
        assert d["score"] == 300


class TestUserScores:
    """Tests for a single player's record listing."""

    @pytest.mark.asyncio
    async def test_newest_first(self, submissions, leaderboard, make_user):
        a = await make_user()
        await submit_all(submissions, [(a, result(s)) for s in (10, 30, 20)])
        records = await leaderboard.user_scores(a.user_id)
        assert [r.score for r in records] == [20, 30, 10]

    @pytest.mark.asyncio
    async def test_unknown_user(self, leaderboard):
        with pytest.raises(NotFoundError):
            await leaderboard.user_scores("nobody")


class TestTopPlayers:
    """Tests for the total-score ranking."""

    @pytest.mark.asyncio
    async def test_by_total(self, submissions, leaderboard, make_user):
        a = await make_user("Alice")
        b = await make_user("Bob")
        await submit_all(submissions, [(a, result(300)), (a, result(300)), (b, result(500))])

        players = await leaderboard.top_players()
        assert [(p.name, p.value, p.games_played) for p in players[:2]] == [("Alice", 600, 2), ("Bob", 500, 1)]

    @pytest.mark.asyncio
    async def test_ties_by_user_id(self, submissions, leaderboard, make_user):
        users = [await make_user(n) for n in ("A", "B", "C")]
        await submit_all(submissions, [(u, result(100)) for u in users])

        players = await leaderboard.top_players()
        assert [p.user_id for p in players] == sorted(u.user_id for u in users)

    @pytest.mark.asyncio
    async def test_dict_shape(self, submissions, leaderboard, make_user):
        a = await make_user("Alice")
        await submissions.submit(a, result(600))
        d = (await leaderboard.top_players())[0].to_dict("totalScore")
        assert d == {
            "rank": 1,
            "userId": a.user_id,
            "name": "Alice",
            "totalScore": 600,
            "gamesPlayed": 1,
            "achievements": 3,
        }


class TestBestPerUser:
    """Tests for the per-mode group-by-max ranking."""

    @pytest.mark.asyncio
    async def test_matches_brute_force(self, submissions, leaderboard, make_user):
        users = [await make_user(n) for n in ("A", "B", "C", "D")]
        plays = []
        scores = {
            0: [300, 700, 100],
            1: [700, 650],
            2: [50],
            3: [],
        }
        for i, values in scores.items():
            for s in values:
                plays.append((users[i], result(s, game_type="color_sequence", difficulty="medium")))
            # Noise in other modes
            plays.append((users[i], result(5000, game_type="color_sequence", difficulty="hard")))
            plays.append((users[i], result(9999, game_type="n_back", difficulty="medium")))
        await submit_all(submissions, plays)

        expected = {}
        for identity, game in plays:
            if (game.game_type, game.difficulty) == ("color_sequence", "medium"):
                best, count = expected.get(identity.user_id, (0, 0))
                expected[identity.user_id] = (max(best, game.score), count + 1)
        expected_rows = sorted(
            ((uid, best, count) for uid, (best, count) in expected.items()),
            key=lambda row: (-row[1], row[0]),
        )

        entries = await leaderboard.best_per_user_by_game("color_sequence", difficulty="medium")
        assert [(e.user_id, e.value, e.games_played) for e in entries] == expected_rows
        assert [e.rank for e in entries] == list(range(1, len(expected_rows) + 1))

    @pytest.mark.asyncio
    async def test_all_difficulties(self, submissions, leaderboard, make_user):
        a = await make_user()
        await submit_all(submissions, [
            (a, result(100, difficulty="easy")),
            (a, result(400, difficulty="hard")),
        ])
        entries = await leaderboard.best_per_user_by_game("memory_card")
        assert [(e.value, e.games_played) for e in entries] == [(400, 2)]

    @pytest.mark.asyncio
    async def test_unknown_game(self, leaderboard):
        with pytest.raises(ValidationError):
            await leaderboard.best_per_user_by_game("chess")


class TestRank:
    """Tests for rank lookup."""

    @pytest.mark.asyncio
    async def test_rank_in_mode(self, submissions, leaderboard, make_user):
        u = await make_user("U")
        v = await make_user("V")
        await submit_all(submissions, [(u, result(600)), (u, result(400)), (v, result(900))])

        rank = await leaderboard.rank_of(u.user_id, game_type="memory_card", difficulty="easy")

        assert rank.game_rank.rank == 2
        assert rank.game_rank.score == 600
        assert rank.user_name == "U"
        assert rank.to_dict()["userName"] == "U"
        assert rank.overall_rank == 1
        assert rank.total_score == 1000

    @pytest.mark.asyncio
    async def test_difficulty_defaults_to_best_record(self, submissions, leaderboard, make_user):
        u = await make_user()
        await submit_all(submissions, [(u, result(200, difficulty="easy")), (u, result(700, difficulty="hard"))])

        rank = await leaderboard.rank_of(u.user_id, game_type="memory_card")
        assert rank.game_rank.difficulty == "hard"
        assert rank.game_rank.rank == 1

    @pytest.mark.asyncio
    async def test_no_records_in_mode(self, leaderboard, make_user):
        u = await make_user()
        rank = await leaderboard.rank_of(u.user_id, game_type="n_back")
        assert rank.game_rank is None
        assert rank.overall_rank == 1
        assert "gameRank" not in rank.to_dict()

    @pytest.mark.asyncio
    async def test_overall_rank_counts_strictly_higher(self, submissions, leaderboard, make_user):
        a = await make_user()
        b = await make_user()
        c = await make_user()
        await submit_all(submissions, [(a, result(500)), (b, result(500)), (c, result(900))])

        assert (await leaderboard.rank_of(a.user_id)).overall_rank == 2
        assert (await leaderboard.rank_of(b.user_id)).overall_rank == 2
        assert (await leaderboard.rank_of(c.user_id)).overall_rank == 1

    @pytest.mark.asyncio
    async def test_unknown_user(self, leaderboard):
        with pytest.raises(NotFoundError):
            await leaderboard.rank_of("ghost")
