"""Timing middleware: adds ``X-Process-Time-Ms`` and logs each request.

Health probes are polled constantly by orchestrators, so they are timed
but logged at debug level only.
"""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from shipyard.core.logging import get_logger

logger = get_logger(__name__)

QUIET_PATHS = frozenset({"/health", "/v1/health"})


class TimingMiddleware(BaseHTTPMiddleware):
    """Measure request processing time and emit one ``request_completed`` line."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        response.headers["X-Process-Time-Ms"] = str(elapsed_ms)

        log = logger.debug if request.url.path in QUIET_PATHS else logger.info
        log(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return response
