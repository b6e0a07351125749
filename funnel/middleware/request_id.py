# funnel/middleware/request_id.py
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from funnel.core.logging import set_request_id

REQUEST_ID_HEADER = "X-Request-ID"


def incoming_request_id(request: Request) -> Optional[str]:
    """Reuse an upstream id: X-Request-ID, X-Correlation-ID, then the W3C trace id."""
    for header in (REQUEST_ID_HEADER, "X-Correlation-ID"):
        value = request.headers.get(header)
        if value:
            return value[:128]

    # traceparent: 00-<32 hex trace id>-<16 hex span id>-<flags>
    parts = request.headers.get("traceparent", "").split("-")
    if len(parts) == 4 and parts[0] == "00" and len(parts[1]) == 32:
        return parts[1]
    return None


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id to the structlog context and echo it back."""

    async def dispatch(self, request: Request, call_next):
        request_id = incoming_request_id(request) or uuid.uuid4().hex
        set_request_id(request_id)
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        finally:
            set_request_id(None)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
