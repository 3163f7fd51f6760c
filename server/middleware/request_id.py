"""
Request ID middleware for request tracing.

Stamps every request with an X-Request-ID (propagated from the caller when
present) and logs one line per API request.
"""

import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from logging_config import request_id_var, user_id_var

logger = logging.getLogger(__name__)

MAX_REQUEST_ID_LENGTH = 64


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    HTTP middleware for request ID generation and propagation.

    The id is kept in request.state and in the logging context var for the
    lifetime of the request, and echoed on the response.
    """

    def __init__(
        self,
        app,
        header_name: str = "X-Request-ID",
        generator: Optional[Callable[[], str]] = None,
    ):
        super().__init__(app)
        self.header_name = header_name
        self.generator = generator or (lambda: str(uuid.uuid4()))

    async def dispatch(self, request: Request, call_next) -> Response:
        # Caller-supplied ids are trusted only if they are short
        request_id = request.headers.get(self.header_name, "")[:MAX_REQUEST_ID_LENGTH]
        if not request_id:
            request_id = self.generator()

        request.state.request_id = request_id
        request_token = request_id_var.set(request_id)
        user_token = user_id_var.set(None)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers[self.header_name] = request_id

            if request.url.path.startswith("/api"):
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger.info(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.0f}ms")

            return response
        finally:
            user_id_var.reset(user_token)
            request_id_var.reset(request_token)


def get_request_id(request: Request) -> Optional[str]:
    """Request ID from request state, None outside RequestIDMiddleware."""
    return getattr(request.state, "request_id", None)
