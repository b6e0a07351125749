# funnel/routes/ingest.py
from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from funnel.core.logging import get_structlog_logger
from funnel.deps import get_spreadsheet_store
from funnel.schemas.lead import IngestAck
from funnel.services.ingestion import ingest_submission
from funnel.services.sheets import SpreadsheetStore

logger = get_structlog_logger(__name__)

router = APIRouter()


async def _collect_params(request: Request) -> Dict[str, str]:
    """Query-string parameters overlaid with the form body."""
    params: Dict[str, str] = dict(request.query_params)
    form = await request.form()
    for key, value in form.items():
        if isinstance(value, UploadFile):
            continue
        params[key] = value
    return params


@router.post(
    "/ingest",
    response_model=IngestAck,
    response_model_exclude_none=True,
    summary="Append a submission to its destination sheet",
)
async def ingest(
    request: Request,
    store: SpreadsheetStore = Depends(get_spreadsheet_store),
):
    log = logger.bind(route="/ingest", action="append")

    try:
        params = await _collect_params(request)
        ack = await run_in_threadpool(ingest_submission, params, store)
    except Exception as e:
        log.error("ingest.failed", error_type=type(e).__name__, error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=IngestAck(status="error", message=str(e)).to_dict(),
        )

    return ack.to_dict()


@router.get(
    "/ingest",
    response_model=IngestAck,
    response_model_exclude_none=True,
    summary="Ingestion endpoint liveness",
)
async def ingest_live():
    return IngestAck(status="ok", message="Endpoint is live.").to_dict()
