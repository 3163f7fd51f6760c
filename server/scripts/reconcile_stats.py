#!/usr/bin/env python3
"""
Rebuild user stats (games played, total score, best scores) from the score ledger.

Run after an aggregate update failed and a submission was left stale.
Achievements and recent games are not touched.

Usage:
    python scripts/reconcile_stats.py [user_id ...]

With no ids every account is reconciled.
"""

import asyncio
import logging
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import config
from errors import NotFoundError
from logging_config import setup_logging
from services.submission_service import SubmissionService
from stores.score_store import ScoreStore
from stores.user_store import UserStore

logger = logging.getLogger("reconcile_stats")


async def reconcile(user_ids: list[str]) -> int:
    if not config.POSTGRES_URL:
        print("Error: POSTGRES_URL not configured in environment or .env file")
        return 1

    store = await UserStore.create(config.POSTGRES_URL)
    try:
        scores = ScoreStore(store.pool)
        await scores.initialize_schema()
        service = SubmissionService.create(store, scores)

        if not user_ids:
            count = await service.reconcile_all()
            logger.info(f"Reconciled {count} users")
            return 0

        failed = 0
        for user_id in user_ids:
            try:
                aggregate = await service.reconcile(user_id)
            except NotFoundError:
                logger.error(f"User {user_id} not found")
                failed += 1
                continue
            logger.info(
                f"User {user_id}: {aggregate.games_played} games, total {aggregate.total_score}"
            )
        return 1 if failed else 0
    finally:
        await store.close()


def main():
    setup_logging(level=config.LOG_LEVEL, environment=config.ENVIRONMENT)
    sys.exit(asyncio.run(reconcile(sys.argv[1:])))


if __name__ == "__main__":
    main()
