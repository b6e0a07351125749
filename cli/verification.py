# cli/verification.py
"""
Verification functions for a deployed funnel.
All functions return a VerificationResult(success, message, data).
"""
from __future__ import annotations

import importlib
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

import httpx

from funnel.schemas.lead import IngestAck


@dataclass
class VerificationResult:
    """Structured result from verification functions."""
    success: bool
    message: str
    data: Dict = field(default_factory=dict)


KEY_MODULES = [
    # Core
    "funnel.core.config",
    "funnel.core.exceptions",
    "funnel.core.logging",
    # Services
    "funnel.services.validation",
    "funnel.services.anti_abuse",
    "funnel.services.session_state",
    "funnel.services.form_controller",
    "funnel.services.transport",
    "funnel.services.destinations",
    "funnel.services.sheets",
    "funnel.services.ingestion",
    # Routes
    "funnel.routes.funnel",
    "funnel.routes.ingest",
    "funnel.routes.health",
    # Main
    "funnel.main",
]


async def check_imports() -> VerificationResult:
    """Verify the critical modules import without errors."""
    errors = []

    for module_name in KEY_MODULES:
        try:
            importlib.import_module(module_name)
        except Exception as e:
            errors.append({
                "module": module_name,
                "error": str(e),
                "type": type(e).__name__,
            })

    if errors:
        error_list = ", ".join(e["module"] for e in errors)
        return VerificationResult(
            success=False,
            message=f"Failed to import {len(errors)} modules: {error_list}",
            data={"errors": errors, "modules_tested": len(KEY_MODULES)},
        )

    return VerificationResult(
        success=True,
        message=f"Successfully imported {len(KEY_MODULES)} modules",
        data={"modules_tested": len(KEY_MODULES)},
    )


async def check_endpoint(
    endpoint_url: str,
    timeout: float = 10.0,
    client: Optional[httpx.AsyncClient] = None,
) -> VerificationResult:
    """GET the ingestion endpoint and expect a live acknowledgment."""
    try:
        async with (client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)) as http:
            response = await http.get(endpoint_url)
    except httpx.RequestError as e:
        return VerificationResult(
            success=False,
            message=f"Endpoint not accessible at {endpoint_url}: {e}",
            data={"error": str(e), "url": endpoint_url},
        )

    try:
        ack = IngestAck.model_validate(response.json())
    except ValueError:
        return VerificationResult(
            success=False,
            message=f"Endpoint returned a non-JSON body (status {response.status_code})",
            data={"status_code": response.status_code, "body": response.text[:200]},
        )

    if response.status_code == 200 and ack.status == "ok":
        return VerificationResult(
            success=True,
            message=ack.message or "Endpoint is live",
            data={"status_code": response.status_code, "url": endpoint_url},
        )
    return VerificationResult(
        success=False,
        message=f"Endpoint check failed: {ack.message or response.status_code}",
        data={"status_code": response.status_code, "ack": ack.to_dict()},
    )


def build_test_lead(sheet_name: Optional[str] = None) -> Dict[str, str]:
    now = datetime.now(timezone.utc)
    fields = {
        "email": f"funnel-check+{int(now.timestamp())}@example.com",
        "phone": "",
        "brand": "Funnel Check",
        "submittedAt": now.isoformat(),
        "utm_source": "cli",
        "utm_medium": "verification",
        "utm_campaign": "",
        "utm_content": "",
        "utm_term": "",
        "referrer": "",
    }
    if sheet_name:
        fields["sheetName"] = sheet_name
    return fields


async def send_test_lead(
    endpoint_url: str,
    sheet_name: Optional[str] = None,
    timeout: float = 10.0,
    client: Optional[httpx.AsyncClient] = None,
) -> VerificationResult:
    """POST a synthetic lead and report the acknowledgment."""
    payload = build_test_lead(sheet_name)
    try:
        async with (client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)) as http:
            response = await http.post(endpoint_url, data=payload)
        ack = IngestAck.model_validate(response.json())
    except httpx.RequestError as e:
        return VerificationResult(
            success=False,
            message=f"Endpoint not accessible at {endpoint_url}: {e}",
            data={"error": str(e)},
        )
    except ValueError as e:
        return VerificationResult(
            success=False,
            message="Endpoint returned an unreadable acknowledgment",
            data={"error": str(e), "traceback": traceback.format_exc()},
        )

    if ack.status == "ok":
        return VerificationResult(
            success=True,
            message=f"Test lead appended to '{ack.sheet}'",
            data={"ack": ack.to_dict(), "email": payload["email"]},
        )
    return VerificationResult(
        success=False,
        message=f"Endpoint rejected test lead: {ack.message}",
        data={"ack": ack.to_dict()},
    )
