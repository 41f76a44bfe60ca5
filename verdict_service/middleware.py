"""
Request Middleware
==================

Assigns every request a trace id (honouring an incoming ``X-Request-Id``),
echoes it back on the response, logs one access line per request and adds
the baseline security headers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .trace import ensure_trace_id

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Request-Id"


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """
    Put the trace id on ``request.state.trace_id`` for handlers and errors.

    Headers added:
    - X-Request-Id
    - X-Content-Type-Options
    - X-Frame-Options
    - Referrer-Policy
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        trace_id = ensure_trace_id(request.headers.get(TRACE_HEADER))
        request.state.trace_id = trace_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "[%s] %s %s -> %d (%.1fms)",
            trace_id, request.method, request.url.path, response.status_code, elapsed_ms,
        )

        response.headers[TRACE_HEADER] = trace_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response
