"""Shared fixtures: an in-process store and the services built over it."""

import itertools

import pytest

from models.user import Authenticated
from services.leaderboard_service import LeaderboardService
from services.statistics_service import StatisticsService
from services.submission_service import SubmissionService
from stores.memory_store import MemoryStore

_emails = itertools.count(1)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def submissions(store):
    return SubmissionService(store, store, recent_games_limit=20)


@pytest.fixture
def leaderboard(store):
    return LeaderboardService(store, store, default_limit=10, max_limit=100)


@pytest.fixture
def statistics(store):
    return StatisticsService(store, store)


@pytest.fixture
def make_user(store):
    """Async factory returning an Authenticated identity for a new account."""
    async def _make(name: str = "Player") -> Authenticated:
        user = await store.create_user(name, f"player{next(_emails)}@example.com", "not-a-real-hash")
        return Authenticated(user)
    return _make

