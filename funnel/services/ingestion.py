# funnel/services/ingestion.py
from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Mapping, Optional

from funnel.core.logging import get_structlog_logger
from funnel.schemas.lead import IngestAck
from funnel.services.destinations import resolve_destination
from funnel.services.sheets import SpreadsheetStore

logger = get_structlog_logger(__name__)

# Appends run in the threadpool; two first writes must not both create a sheet.
_create_lock = threading.Lock()


def ingest_submission(
    params: Mapping[str, str],
    store: SpreadsheetStore,
    now: Optional[datetime] = None,
) -> IngestAck:
    """
    Append one row for a submission to its routed worksheet.

    A missing worksheet is created with its header row first. Errors
    propagate; the route turns them into an error acknowledgment.
    """
    now = now or datetime.now(timezone.utc)
    destination = resolve_destination(params.get("sheetName"))

    with _create_lock:
        worksheet = store.get_worksheet(destination.name)
        if worksheet is None:
            worksheet = store.add_worksheet(destination.name)
            worksheet.append_row(destination.headers)
            logger.info("ingest.destination_created", sheet=destination.name)

    worksheet.append_row(destination.build_row(params, now))

    logger.info(
        "ingest.row_appended",
        sheet=destination.name,
        sheet_param=params.get("sheetName") or None,
    )
    return IngestAck(status="ok", sheet=destination.name)
