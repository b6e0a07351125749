# funnel/services/transport.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import httpx

from funnel.core.logging import get_structlog_logger
from funnel.schemas.lead import IngestAck, LeadRecord

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class TransmitResult:
    success: bool
    attempts: int
    status_code: Optional[int] = None
    ack: Optional[IngestAck] = None
    error: Optional[str] = None


class LeadTransmitter:
    """
    Posts lead records, form-encoded, to the ingestion endpoint.

    The user's redirect never waits on this. The acknowledgment is parsed
    when the endpoint returns one and only transport failures are retried.
    """

    def __init__(
        self,
        endpoint_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        max_retries: int = 0,
        retry_delay_seconds: float = 1.0,
    ):
        self.endpoint_url = endpoint_url
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": "FunnelLeads/1.0"},
        )

    async def send(self, record: LeadRecord) -> TransmitResult:
        data = record.to_form_fields()
        attempt = 0

        while True:
            attempt += 1
            try:
                response = await self._client.post(self.endpoint_url, data=data)
            except httpx.HTTPError as e:
                logger.error(
                    "transport.failed",
                    url=self.endpoint_url,
                    attempt=attempt,
                    error=str(e),
                )
                if attempt > self.max_retries:
                    return TransmitResult(success=False, attempts=attempt, error=str(e))
                await asyncio.sleep(self.retry_delay_seconds * attempt)
                continue

            ack = _parse_ack(response)
            success = response.is_success and ack is not None and ack.status == "ok"
            logger.info(
                "transport.delivered" if success else "transport.rejected",
                url=self.endpoint_url,
                attempt=attempt,
                status_code=response.status_code,
                sheet=ack.sheet if ack else None,
                message=ack.message if ack else None,
            )
            return TransmitResult(
                success=success,
                attempts=attempt,
                status_code=response.status_code,
                ack=ack,
                error=None if success else (ack.message if ack else response.text[:500]),
            )

    async def aclose(self) -> None:
        await self._client.aclose()


def _parse_ack(response: httpx.Response) -> Optional[IngestAck]:
    try:
        return IngestAck.model_validate(response.json())
    except ValueError:
        return None
