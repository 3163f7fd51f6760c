"""Tests for player and global statistics."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from errors import NotFoundError
from factories import result


class TestUserStatistics:
    """Tests for the per-player breakdown."""

    @pytest.mark.asyncio
    async def test_breakdown(self, submissions, statistics, make_user):
        player = await make_user("Ada")
        await submissions.submit(player, result(600, game_type="n_back", difficulty="easy", time_spent=40))
        await submissions.submit(player, result(300, game_type="n_back", difficulty="hard", time_spent=60))
        await submissions.submit(player, result(101, game_type="mental_math", difficulty="hard", time_spent=20))

        stats = await statistics.user_statistics(player.user_id)

        assert stats["overview"] == {
            "gamesPlayed": 3,
            "totalScore": 1001,
            "avgScore": 334,
            "achievements": len((await statistics.profile(player.user_id))[1].achievements),
        }
        n_back = stats["gameTypeStats"]["n_back"]
        assert n_back == {
            "played": 2,
            "totalScore": 900,
            "bestScore": 600,
            "totalTime": 100,
            "avgScore": 450,
            "avgTime": 50,
        }
        hard = stats["difficultyStats"]["hard"]
        assert hard == {"played": 2, "totalScore": 401, "bestScore": 300, "avgScore": 200}
        assert [s["score"] for s in stats["topScores"]] == [600, 300, 101]
        assert len(stats["recentActivity"]) == 7

    @pytest.mark.asyncio
    async def test_unknown_user(self, statistics):
        with pytest.raises(NotFoundError):
            await statistics.user_statistics("ghost")

    @pytest.mark.asyncio
    async def test_new_player_has_zero_average(self, statistics, make_user):
        player = await make_user()
        overview = await statistics.overview(player.user_id)
        assert overview.avg_score == 0


class TestRecentActivity:
    """Tests for daily activity buckets."""

    @pytest.mark.asyncio
    async def test_buckets_oldest_first_with_gaps(self, submissions, statistics, store, make_user):
        player = await make_user()
        await submissions.submit(player, result(100))
        await submissions.submit(player, result(300))
        await submissions.submit(player, result(50))
        today = datetime.now(timezone.utc).date()
        three_days_ago = datetime.now(timezone.utc) - timedelta(days=3)
        store._scores[2] = replace(store._scores[2], created_at=three_days_ago)

        activity = await statistics.recent_activity(player.user_id, days=7, today=today)

        assert len(activity) == 7
        assert activity[-1] == {"date": today.isoformat(), "games": 2, "totalScore": 400, "avgScore": 200}
        assert activity[3]["date"] == (today - timedelta(days=3)).isoformat()
        assert activity[3]["games"] == 1
        assert sum(day["games"] for day in activity) == 3

    @pytest.mark.asyncio
    async def test_old_games_outside_window(self, submissions, statistics, store, make_user):
        player = await make_user()
        await submissions.submit(player, result(100))
        store._scores[0] = replace(store._scores[0], created_at=datetime.now(timezone.utc) - timedelta(days=30))

        activity = await statistics.recent_activity(player.user_id, days=7)
        assert sum(day["games"] for day in activity) == 0


class TestGlobalStatistics:
    """Tests for site-wide statistics."""

    @pytest.mark.asyncio
    async def test_totals_and_distributions(self, submissions, statistics, make_user):
        a = await make_user("Ada")
        b = await make_user("Bob")
        await make_user("Idle")
        await submissions.submit(a, result(600, difficulty="hard"))
        await submissions.submit(a, result(200, difficulty="easy"))
        await submissions.submit(b, result(400, game_type="n_back", difficulty="hard"))

        stats = await statistics.global_statistics()

        assert stats["totalUsers"] == 3
        assert stats["totalGames"] == 3
        assert stats["avgGamesPerUser"] == 1
        assert stats["topPlayers"][0]["name"] == "Ada"
        assert stats["topPlayers"][0]["totalScore"] == 800
        assert [g["userName"] for g in stats["recentGames"]] == ["Bob", "Ada", "Ada"]
        assert stats["gameTypeDistribution"][0] == {
            "gameType": "memory_card", "count": 2, "avgScore": 400, "maxScore": 600,
        }
        assert stats["difficultyDistribution"][0] == {
            "difficulty": "hard", "count": 2, "avgScore": 500, "maxScore": 600,
        }


class TestPeriodicReport:
    """Tests for day/week/month reports."""

    @pytest.mark.asyncio
    async def test_week(self, submissions, statistics, make_user):
        a = await make_user("Ada")
        b = await make_user("Bob")
        await submissions.submit(a, result(100))
        await submissions.submit(b, result(700, difficulty="medium"))

        report = await statistics.periodic_report("week")

        assert report["period"] == "week"
        assert report["stats"]["uniquePlayers"] == 2
        assert report["stats"]["totalGames"] == 2
        assert report["stats"]["avgScore"] == 400
        assert report["stats"]["topScore"] == {
            "score": 700, "player": "Bob", "gameType": "memory_card", "difficulty": "medium",
        }

    @pytest.mark.asyncio
    async def test_unknown_period_means_week(self, statistics):
        now = datetime(2026, 3, 10, tzinfo=timezone.utc)
        report = await statistics.periodic_report("fortnight", now=now)
        assert report["period"] == "week"
        assert report["startDate"] == (now - timedelta(days=7)).isoformat()
        assert report["stats"]["topScore"] is None


class TestCompare:
    """Tests for side-by-side comparison."""

    @pytest.mark.asyncio
    async def test_differences(self, submissions, statistics, make_user):
        a = await make_user("Ada")
        b = await make_user("Bob")
        await submissions.submit(a, result(600))
        await submissions.submit(a, result(200))
        await submissions.submit(b, result(100))

        comparison = await statistics.compare_users(a.user_id, b.user_id)

        assert comparison["user1"]["name"] == "Ada"
        assert comparison["comparison"]["gamesPlayedDiff"] == 1
        assert comparison["comparison"]["totalScoreDiff"] == 700
        assert comparison["comparison"]["avgScoreDiff"] == 300

    @pytest.mark.asyncio
    async def test_unknown_user(self, statistics, make_user):
        a = await make_user()
        with pytest.raises(NotFoundError):
            await statistics.compare_users(a.user_id, "ghost")
