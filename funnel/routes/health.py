# funnel/routes/health.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, status
from pydantic import BaseModel

from funnel import __version__
from funnel.core.config import settings
from funnel.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["health"])


class HealthCheckResponse(BaseModel):
    status: str
    service: str
    environment: str
    version: str
    timestamp: str
    checks: Dict[str, Dict[str, str]]


async def check_session_backend() -> Dict[str, str]:
    """Check the configured session store."""
    if settings.session_backend != "redis":
        return {"status": "healthy", "backend": "memory"}

    from funnel.services.redis import health_check as redis_health_check

    result = await redis_health_check()
    if result.get("status") == "healthy":
        return {"status": "healthy", "backend": "redis", "version": str(result.get("version", "unknown"))}
    return {"status": "unhealthy", "backend": "redis", "error": str(result.get("error", "Unknown error"))}


def check_sheets_backend() -> Dict[str, str]:
    """Report the configured destination without touching it."""
    if settings.sheets_backend == "google":
        configured = bool(settings.spreadsheet_id and settings.google_sheets_cred)
        return {
            "status": "healthy" if configured else "unhealthy",
            "backend": "google",
            "configured": str(configured).lower(),
        }
    return {"status": "healthy", "backend": "memory"}


@router.get("/health", response_model=HealthCheckResponse, status_code=status.HTTP_200_OK)
async def health_check():
    """Health of the session store and spreadsheet destination."""
    checks = {
        "session_store": await check_session_backend(),
        "spreadsheet": check_sheets_backend(),
        "ingest_endpoint": {
            "status": "healthy",
            "configured": str(bool(settings.ingest_endpoint_url)).lower(),
        },
    }

    overall_status = "healthy"
    for name, result in checks.items():
        if result.get("status") != "healthy":
            overall_status = "unhealthy"
            logger.warning("health.check_failed", check=name, result=result)
            break

    return HealthCheckResponse(
        status=overall_status,
        service="funnel_leads",
        environment=settings.environment,
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        checks=checks,
    )


@router.get("/health/live")
async def liveness():
    return {"status": "alive"}
