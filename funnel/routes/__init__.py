"""
API route handlers organized by domain.
"""

from funnel.routes.funnel import router as funnel_router
from funnel.routes.health import router as health_router
from funnel.routes.ingest import router as ingest_router

__all__ = [
    "funnel_router",
    "health_router",
    "ingest_router",
]
