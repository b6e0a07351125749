# funnel/deps.py
"""FastAPI dependencies for the funnel's stores and transmitter."""
from __future__ import annotations

from typing import Optional

from funnel.core.config import settings
from funnel.core.logging import get_structlog_logger
from funnel.services.redis import get_redis_client
from funnel.services.session_state import MemorySessionStore, RedisSessionStore, SessionStore
from funnel.services.sheets import GoogleSheetsStore, MemorySpreadsheetStore, SpreadsheetStore
from funnel.services.transport import LeadTransmitter

logger = get_structlog_logger(__name__)

_session_store: Optional[SessionStore] = None
_spreadsheet_store: Optional[SpreadsheetStore] = None
_transmitter: Optional[LeadTransmitter] = None


async def get_session_store() -> SessionStore:
    global _session_store

    if _session_store is None:
        if settings.session_backend == "redis":
            _session_store = RedisSessionStore(
                await get_redis_client(),
                ttl_seconds=settings.session_ttl_seconds,
            )
        else:
            _session_store = MemorySessionStore()
        logger.info("session_store.initialized", backend=settings.session_backend)

    return _session_store


def get_spreadsheet_store() -> SpreadsheetStore:
    global _spreadsheet_store

    if _spreadsheet_store is None:
        if settings.sheets_backend == "google":
            _spreadsheet_store = GoogleSheetsStore(
                spreadsheet_id=settings.spreadsheet_id or "",
                cred_path=settings.google_sheets_cred or "",
            )
        else:
            _spreadsheet_store = MemorySpreadsheetStore()
        logger.info("spreadsheet_store.initialized", backend=settings.sheets_backend)

    return _spreadsheet_store


def get_lead_transmitter() -> Optional[LeadTransmitter]:
    """Return the transmitter, or None when no ingestion endpoint is configured."""
    global _transmitter

    if _transmitter is None and settings.ingest_endpoint_url:
        _transmitter = LeadTransmitter(
            settings.ingest_endpoint_url,
            timeout=settings.ingest_timeout_seconds,
            max_retries=settings.ingest_max_retries,
            retry_delay_seconds=settings.ingest_retry_delay_seconds,
        )

    return _transmitter


async def close_lead_transmitter() -> None:
    global _transmitter

    if _transmitter is not None:
        await _transmitter.aclose()
        _transmitter = None
