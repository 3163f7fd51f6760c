"""
Player and global statistics computed from the score ledger.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from constants import PERIOD_DAYS, Period
from errors import NotFoundError
from models.score import ScoreRecord, UserAggregate
from models.user import User
from services.leaderboard_service import ANONYMOUS_NAME
from stores.base import ScoreStoreBase, UserStoreBase

logger = logging.getLogger(__name__)

RECENT_GLOBAL_GAMES = 20
TOP_LIST_SIZE = 10


def _avg(total: int, count: int) -> int:
    return round(total / count) if count else 0


@dataclass
class Overview:
    """Headline numbers for one player, read from the aggregate."""
    name: str
    games_played: int
    total_score: int
    avg_score: int
    achievements: int

    def to_dict(self) -> dict:
        return {
            "gamesPlayed": self.games_played,
            "totalScore": self.total_score,
            "avgScore": self.avg_score,
            "achievements": self.achievements,
        }


def _group(records: list[ScoreRecord], attr: str, with_time: bool) -> dict[str, dict]:
    groups: dict[str, dict] = {}
    for r in records:
        stats = groups.setdefault(getattr(r, attr), {"played": 0, "totalScore": 0, "bestScore": 0, "totalTime": 0})
        stats["played"] += 1
        stats["totalScore"] += r.score
        stats["bestScore"] = max(stats["bestScore"], r.score)
        stats["totalTime"] += r.time_spent

    for stats in groups.values():
        stats["avgScore"] = _avg(stats["totalScore"], stats["played"])
        if with_time:
            stats["avgTime"] = _avg(stats["totalTime"], stats["played"])
        else:
            del stats["totalTime"]
    return groups


class StatisticsService:
    """
    Read-only statistics.

    Provides methods for:
    - Per-player breakdowns by game type, difficulty and day
    - Site-wide totals and distributions
    - Day/week/month reports
    - Side-by-side comparison of two players
    """

    def __init__(self, user_store: UserStoreBase, score_store: ScoreStoreBase):
        self.user_store = user_store
        self.score_store = score_store

    async def profile(self, user_id: str) -> tuple[User, UserAggregate]:
        """
        Raises:
            NotFoundError: unknown user.
        """
        user = await self.user_store.get_user_by_id(user_id)
        aggregate = await self.user_store.get_aggregate(user_id)
        if not user or aggregate is None:
            raise NotFoundError("User not found")
        return user, aggregate

    async def overview(self, user_id: str) -> Overview:
        user, aggregate = await self.profile(user_id)
        return Overview(
            name=user.name,
            games_played=aggregate.games_played,
            total_score=aggregate.total_score,
            avg_score=_avg(aggregate.total_score, aggregate.games_played),
            achievements=len(aggregate.achievements),
        )

    async def user_statistics(self, user_id: str) -> dict:
        """
        Full statistics for one player.

        Raises:
            NotFoundError: unknown user.
        """
        overview = await self.overview(user_id)
        records = await self.score_store.list_scores(user_id=user_id)
        top = sorted(records, key=lambda r: r.score, reverse=True)[:TOP_LIST_SIZE]

        return {
            "overview": overview.to_dict(),
            "gameTypeStats": _group(records, "game_type", with_time=True),
            "difficultyStats": _group(records, "difficulty", with_time=False),
            "recentActivity": await self.recent_activity(user_id, 7),
            "topScores": [r.to_dict() for r in top],
        }

    async def recent_activity(self, user_id: str, days: int = 7, today: Optional[date] = None) -> list[dict]:
        """
        One bucket per UTC calendar day, oldest first, ending today.

        Days without games are included with zero counts.
        """
        days = max(1, days)
        today = today or datetime.now(timezone.utc).date()
        first_day = today - timedelta(days=days - 1)
        since = datetime.combine(first_day, time.min, tzinfo=timezone.utc)

        buckets = {
            first_day + timedelta(days=i): {"games": 0, "totalScore": 0}
            for i in range(days)
        }
        for r in await self.score_store.list_scores(user_id=user_id, since=since):
            bucket = buckets.get(r.created_at.astimezone(timezone.utc).date())
            if bucket is not None:
                bucket["games"] += 1
                bucket["totalScore"] += r.score

        return [
            {
                "date": day.isoformat(),
                "games": b["games"],
                "totalScore": b["totalScore"],
                "avgScore": _avg(b["totalScore"], b["games"]),
            }
            for day, b in buckets.items()
        ]

    async def global_statistics(self) -> dict:
        total_users = await self.user_store.count_users()
        total_games = await self.score_store.count_scores()
        top_players = await self.user_store.top_by_total_score(TOP_LIST_SIZE)
        recent = await self.score_store.list_scores(limit=RECENT_GLOBAL_GAMES)
        names = await self.user_store.get_display_names(list({r.user_id for r in recent}))

        return {
            "totalUsers": total_users,
            "totalGames": total_games,
            "avgGamesPerUser": _avg(total_games, total_users),
            "topPlayers": [
                {
                    "rank": i,
                    "name": p.name,
                    "totalScore": p.total_score,
                    "gamesPlayed": p.games_played,
                }
                for i, p in enumerate(top_players, 1)
            ],
            "recentGames": [
                {
                    "userName": names.get(r.user_id, ANONYMOUS_NAME),
                    "gameType": r.game_type,
                    "score": r.score,
                    "difficulty": r.difficulty,
                    "timestamp": r.created_at.isoformat(),
                }
                for r in recent
            ],
            "gameTypeDistribution": [
                {"gameType": d.key, "count": d.count, "avgScore": round(d.avg_score), "maxScore": d.max_score}
                for d in await self.score_store.distribution("game_type")
            ],
            "difficultyDistribution": [
                {"difficulty": d.key, "count": d.count, "avgScore": round(d.avg_score), "maxScore": d.max_score}
                for d in await self.score_store.distribution("difficulty")
            ],
        }

    async def periodic_report(self, period: str = "week", now: Optional[datetime] = None) -> dict:
        """Totals over the last day, week or month. Unknown periods mean a week."""
        if period not in PERIOD_DAYS:
            period = Period.WEEK.value
        end = now or datetime.now(timezone.utc)
        start = end - timedelta(days=PERIOD_DAYS[period])

        records = await self.score_store.list_scores(since=start)
        total_score = sum(r.score for r in records)
        top = await self.score_store.top_scores(since=start, limit=1)

        top_score = None
        if top:
            record, name = top[0]
            top_score = {
                "score": record.score,
                "player": name or ANONYMOUS_NAME,
                "gameType": record.game_type,
                "difficulty": record.difficulty,
            }

        return {
            "period": period,
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
            "stats": {
                "uniquePlayers": len({r.user_id for r in records}),
                "totalGames": len(records),
                "totalScore": total_score,
                "avgScore": _avg(total_score, len(records)),
                "topScore": top_score,
            },
        }

    async def compare_users(self, user_id_1: str, user_id_2: str) -> dict:
        """
        Overviews of two players and their differences (first minus second).

        Raises:
            NotFoundError: either user unknown.
        """
        first = await self.overview(user_id_1)
        second = await self.overview(user_id_2)
        return {
            "user1": {"name": first.name, "stats": first.to_dict()},
            "user2": {"name": second.name, "stats": second.to_dict()},
            "comparison": {
                "gamesPlayedDiff": first.games_played - second.games_played,
                "totalScoreDiff": first.total_score - second.total_score,
                "avgScoreDiff": first.avg_score - second.avg_score,
                "achievementsDiff": first.achievements - second.achievements,
            },
        }
