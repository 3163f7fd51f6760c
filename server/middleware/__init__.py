"""
Middleware components for the Memory Trainer server.

Provides:
- RateLimitMiddleware: API rate limiting with Redis backend
- SecurityHeadersMiddleware: Security headers for a JSON API
- RequestIDMiddleware: Request tracing with X-Request-ID
"""

from .ratelimit import RateLimitMiddleware
from .security import SecurityHeadersMiddleware
from .request_id import RequestIDMiddleware

__all__ = [
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
    "RequestIDMiddleware",
]
