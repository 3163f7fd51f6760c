"""FastAPI server for the Memory Trainer score service."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import config
from errors import ServiceError, StoreError
from logging_config import setup_logging
from middleware import RateLimitMiddleware, RequestIDMiddleware, SecurityHeadersMiddleware
from middleware.request_id import get_request_id
from services.ratelimit import RateLimiter
from stores.base import ScoreStoreBase, UserStoreBase

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


# =============================================================================
# Stores & Services (initialized in lifespan)
# =============================================================================

_redis_client: Optional[redis.Redis] = None
_rate_limiter: Optional[RateLimiter] = None


async def _init_redis():
    """Initialize Redis client and rate limiter."""
    global _redis_client, _rate_limiter
    try:
        _redis_client = redis.from_url(config.REDIS_URL, decode_responses=False)
        await _redis_client.ping()
        logger.info("Redis client connected")

        if config.RATE_LIMIT_ENABLED:
            _rate_limiter = RateLimiter(_redis_client)
            logger.info("Rate limiter initialized")
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e} - rate limiting disabled")
        _redis_client = None
        _rate_limiter = None


async def _init_stores() -> tuple[UserStoreBase, ScoreStoreBase]:
    """PostgreSQL stores when configured, otherwise the in-process store."""
    if config.POSTGRES_URL:
        from stores.user_store import get_user_store
        from stores.score_store import ScoreStore

        user_store = await get_user_store(config.POSTGRES_URL)
        score_store = ScoreStore(user_store.pool)
        await score_store.initialize_schema()
        logger.info("PostgreSQL stores initialized")
        return user_store, score_store

    from stores.memory_store import MemoryStore

    logger.warning("POSTGRES_URL not configured - using in-process store, data will not survive a restart")
    store = MemoryStore()
    return store, store


def configure_services(user_store: UserStoreBase, score_store: ScoreStoreBase) -> None:
    """Build the services over the given stores and hand them to the routers."""
    from services.auth_service import AuthService
    from services.leaderboard_service import LeaderboardService
    from services.statistics_service import StatisticsService
    from services.submission_service import SubmissionService
    from routers.auth import set_auth_service
    from routers.scores import set_leaderboard_service, set_submission_service
    from routers.users import set_statistics_service

    set_auth_service(AuthService.create(user_store, score_store))
    set_submission_service(SubmissionService.create(user_store, score_store))
    set_leaderboard_service(LeaderboardService.create(user_store, score_store))
    set_statistics_service(StatisticsService(user_store, score_store))
    logger.info("Services initialized")


async def _shutdown_services():
    """Gracefully shut down all services."""
    from stores.user_store import close_user_store

    if config.POSTGRES_URL:
        await close_user_store()
        logger.info("PostgreSQL pool closed")

    if _redis_client:
        await _redis_client.close()
        logger.info("Redis connection closed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    if config.REDIS_URL:
        await _init_redis()

    try:
        user_store, score_store = await _init_stores()
    except Exception as e:
        logger.error(f"Failed to initialize stores: {e}")
        raise
    configure_services(user_store, score_store)

    from routers.health import set_health_dependencies
    set_health_dependencies(
        db_pool=getattr(user_store, "pool", None),
        redis_client=_redis_client,
    )

    logger.info(f"Memory Trainer server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await _shutdown_services()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Memory Trainer",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Error Handlers
# =============================================================================


def _error_body(message: str, details: Optional[list] = None) -> dict:
    body = {"success": False, "error": message}
    if details:
        body["details"] = details
    return body


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if isinstance(exc, StoreError):
        logger.error(f"Store error on {request.method} {request.url.path}: {exc.__cause__ or exc}")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, getattr(exc, "details", None)),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = []
    for error in exc.errors():
        names = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "header")]
        details.append({"field": names[-1] if names else "body", "message": error.get("msg", "invalid")})
    return JSONResponse(status_code=400, content=_error_body("Validation error", details))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    # The request id middleware never sees this response
    request_id = get_request_id(request)
    return JSONResponse(
        status_code=500,
        content=_error_body(StoreError.public_message),
        headers={"X-Request-ID": request_id} if request_id else None,
    )


# =============================================================================
# Middleware Setup (order matters: last added = outermost)
# =============================================================================

app.add_middleware(
    RateLimitMiddleware,
    get_rate_limiter=lambda: _rate_limiter,
    enabled=config.RATE_LIMIT_ENABLED,
)
app.add_middleware(SecurityHeadersMiddleware, environment=config.ENVIRONMENT)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials="*" not in config.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Idempotency-Key", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
)
app.add_middleware(RequestIDMiddleware)


# =============================================================================
# Routers
# =============================================================================

from routers.auth import router as auth_router
from routers.scores import router as scores_router
from routers.leaderboard import router as leaderboard_router
from routers.users import router as users_router
from routers.statistics import router as statistics_router
from routers.health import router as health_router
app.include_router(auth_router)
app.include_router(scores_router)
app.include_router(leaderboard_router)
app.include_router(users_router)
app.include_router(statistics_router)
app.include_router(health_router)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Memory Trainer server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
