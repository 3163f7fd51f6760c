"""
Rate limiting middleware for FastAPI.

Picks a rule per request path, counts the request, and adds X-RateLimit-*
headers to every limited response.
"""

import logging
import re
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from services.ratelimit import RATE_LIMITS, RateLimiter, RateLimitRule

logger = logging.getLogger(__name__)

# Path segments that look like ids are collapsed so /api/users/<id> shares a bucket
_ID_SEGMENT = re.compile(r"/[0-9a-fA-F-]{32,36}(?=/|$)")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    HTTP middleware for rate limiting API requests.

    Requests outside /api (health checks) are never limited.
    """

    def __init__(
        self,
        app,
        get_rate_limiter: Callable[[], Optional[RateLimiter]],
        enabled: bool = True,
    ):
        """
        Initialize rate limit middleware.

        Args:
            app: FastAPI application.
            get_rate_limiter: Returns the limiter, or None while Redis is not
                connected (the middleware is built before the lifespan runs).
            enabled: Whether rate limiting is enabled.
        """
        super().__init__(app)
        self.get_rate_limiter = get_rate_limiter
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next) -> Response:
        limiter = self.get_rate_limiter() if self.enabled else None
        rule = self.rule_for(request.url.path, request.method)
        if limiter is None or rule is None:
            return await call_next(request)

        key = f"{self.endpoint_key(request.url.path)}:{limiter.get_client_key(request)}"
        decision = await limiter.check(key, rule)

        if decision.allowed:
            response = await call_next(request)
        else:
            response = JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "error": f"Too many requests. Please wait {decision.reset} seconds.",
                },
            )

        response.headers.update(decision.headers())
        return response

    @staticmethod
    def rule_for(path: str, method: str) -> Optional[RateLimitRule]:
        """Rule for a request, None for no limiting."""
        if path.startswith("/api/auth"):
            return RATE_LIMITS["api_auth"]
        if path.rstrip("/") == "/api/scores" and method == "POST":
            return RATE_LIMITS["api_submit_score"]
        if path.startswith("/api"):
            return RATE_LIMITS["api_general"]
        return None

    @staticmethod
    def endpoint_key(path: str) -> str:
        """Normalize path to endpoint key (e.g. /api/users/<id> -> /api/users/:id)."""
        return _ID_SEGMENT.sub("/:id", path.rstrip("/")) or "/"
