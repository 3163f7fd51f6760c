"""
Redis-based rate limiter service.

Fixed one-window counters in Redis, so limits hold across server instances.
Callers presenting a bearer token are counted per token, everyone else per
(hashed) client IP.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
from fastapi import Request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    name: str
    limit: int
    window_seconds: int


RATE_LIMITS: dict[str, RateLimitRule] = {
    "api_general": RateLimitRule("api_general", 100, 60),
    "api_auth": RateLimitRule("api_auth", 10, 60),
    "api_submit_score": RateLimitRule("api_submit_score", 30, 60),
}


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one counter check."""
    allowed: bool
    limit: int
    remaining: int
    reset: int

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.reset)
        return headers


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()[:16]


class RateLimiter:
    """Fixed window rate limiter using Redis."""

    def __init__(self, redis_client: redis.Redis, prefix: str = "ratelimit"):
        """
        Args:
            redis_client: Async Redis client for counter storage.
            prefix: Namespace for counter keys.
        """
        self.redis = redis_client
        self.prefix = prefix

    async def check(self, key: str, rule: RateLimitRule, now: Optional[float] = None) -> RateLimitDecision:
        """
        Count one request against a rule.

        The counter is INCRemented and given an expiry in one pipeline. When
        Redis is unreachable the request is allowed (fail open).
        """
        now = int(now if now is not None else time.time())
        window = rule.window_seconds
        window_key = f"{self.prefix}:{rule.name}:{key}:{now // window}"
        reset = window - (now % window)

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(window_key)
                pipe.expire(window_key, window + 1)
                count, _ = await pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Rate limiter Redis error: {e}")
            return RateLimitDecision(True, rule.limit, rule.limit, window)

        decision = RateLimitDecision(
            allowed=count <= rule.limit,
            limit=rule.limit,
            remaining=max(0, rule.limit - count),
            reset=reset,
        )
        if not decision.allowed:
            logger.warning(f"Rate limit exceeded for {rule.name} {key}: {count}/{rule.limit}")
        return decision

    def get_client_key(self, request: Request) -> str:
        """
        Bucket id for the caller.

        Tokens and IPs are hashed so neither ends up in Redis in clear.
        """
        authorization = request.headers.get("Authorization", "")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return f"token:{_digest(token.strip())}"
        return f"ip:{_digest(self._get_client_ip(request))}"

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request, handling proxies."""
        # First hop of X-Forwarded-For is the original client
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

        if request.client:
            return request.client.host
        return "unknown"
