"""
Health check endpoints for deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (can the store and Redis be reached?)
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_db_pool = None
_redis_client = None


def set_health_dependencies(db_pool=None, redis_client=None):
    """Set dependencies for health checks. None means not configured."""
    global _db_pool, _redis_client
    _db_pool = db_pool
    _redis_client = redis_client


@router.get("/health")
async def health_check():
    """
    Basic liveness check.

    Always 200 while the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check():
    """
    Readiness check.

    Returns 503 if PostgreSQL or Redis is configured but unreachable. The
    in-process store is always ready.
    """
    checks = {}
    overall_healthy = True

    if _db_pool is not None:
        try:
            async with _db_pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            checks["database"] = {"status": "ok"}
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            checks["database"] = {"status": "error"}
            overall_healthy = False
    else:
        checks["database"] = {"status": "memory"}

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            checks["redis"] = {"status": "ok"}
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            checks["redis"] = {"status": "error"}
            overall_healthy = False
    else:
        checks["redis"] = {"status": "not_configured"}

    return JSONResponse(
        status_code=200 if overall_healthy else 503,
        content={
            "status": "ok" if overall_healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
