# funnel/middleware/logging.py
"""
One access-log event per request.

Form posts carry contact details, so only the path, method, status and
timing are logged. Bodies, query strings and cookies never are.
"""
from __future__ import annotations

import time
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from funnel.core.config import settings
from funnel.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)


def _quiet_paths() -> frozenset:
    prefix = settings.api_prefix
    return frozenset({f"{prefix}/health", f"{prefix}/health/live", "/metrics"})


def route_group(path: str) -> str:
    """Coarse bucket for a path: ``ingest``, ``api`` or ``funnel``."""
    if path.startswith(f"{settings.api_prefix}/ingest"):
        return "ingest"
    if path.startswith(settings.api_prefix):
        return "api"
    return "funnel"


class LoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app):
        super().__init__(app)
        self.quiet_paths = _quiet_paths()

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        path = request.url.path
        request_id: Optional[str] = getattr(request.state, "request_id", None)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request.exception",
                request_id=request_id,
                method=request.method,
                path=path,
                group=route_group(path),
                elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
                exception_type=type(e).__name__,
            )
            raise

        elapsed = time.perf_counter() - start
        response.headers["X-Response-Time"] = f"{elapsed:.3f}"

        if path not in self.quiet_paths:
            log = logger.warning if response.status_code >= 500 else logger.info
            log(
                "request.completed",
                request_id=request_id,
                method=request.method,
                path=path,
                group=route_group(path),
                status_code=response.status_code,
                elapsed_ms=round(elapsed * 1000, 2),
                new_session=settings.session_cookie_name not in request.cookies,
            )

        return response
