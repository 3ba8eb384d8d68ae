"""Per-request access log with timing.

Requests slower than ``SLOW_REQUEST_MS`` are logged at warning level; on this
relay they almost always mean the upstream API is lagging.
"""
from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

SLOW_REQUEST_MS = 1000.0


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "%s %s failed after %.1fms", request.method, request.url.path, _elapsed_ms(start),
            )
            raise
        elapsed = _elapsed_ms(start)
        level = logging.WARNING if elapsed >= SLOW_REQUEST_MS else logging.INFO
        logger.log(
            level,
            "%s %s %s %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            elapsed,
        )
        return response
