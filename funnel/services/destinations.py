# funnel/services/destinations.py
"""
Destination worksheets and the routing rule that picks one.

``sheetName`` selects the worksheet. Anything unrecognised, or no value,
lands on the primary sheet. The two discovery worksheets are kept for forms
deployed before the audit funnel existed; they store contact details and a
status only.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from funnel.services.validation import sanitize

CellValue = Callable[[Mapping[str, str], datetime], str]


def clean(value: Optional[object]) -> str:
    return sanitize(value, max_length=500)


def _param(name: str) -> CellValue:
    return lambda params, now: clean(params.get(name))


def _const(value: str) -> CellValue:
    return lambda params, now: value


def _server_time(params: Mapping[str, str], now: datetime) -> str:
    return now.isoformat()


def _client_time_or_server(params: Mapping[str, str], now: datetime) -> str:
    return clean(params.get("timestamp")) or now.isoformat()


@dataclass(frozen=True)
class Column:
    header: str
    value: CellValue


@dataclass(frozen=True)
class Destination:
    name: str
    columns: Tuple[Column, ...]

    @property
    def headers(self) -> List[str]:
        return [c.header for c in self.columns]

    def build_row(self, params: Mapping[str, str], now: datetime) -> List[str]:
        return [c.value(params, now) for c in self.columns]


_ATTRIBUTION_COLUMNS = (
    Column("Submitted At", _param("submittedAt")),
    Column("UTM Source", _param("utm_source")),
    Column("UTM Medium", _param("utm_medium")),
    Column("UTM Campaign", _param("utm_campaign")),
    Column("UTM Content", _param("utm_content")),
    Column("UTM Term", _param("utm_term")),
    Column("Referrer", _param("referrer")),
)

PRIMARY = Destination(
    name="Sheet1",
    columns=(
        Column("Timestamp", _server_time),
        Column("Email", _param("email")),
        Column("Phone", _param("phone")),
        Column("Brand", _param("brand")),
        Column("Ad Spend", _param("adSpend")),
        Column("Business Type", _param("businessType")),
    ) + _ATTRIBUTION_COLUMNS,
)

AUDIT = Destination(
    name="audit",
    columns=(
        Column("Timestamp", _server_time),
        Column("Email", _param("email")),
        Column("Phone", _param("phone")),
        Column("Brand", _param("brand")),
        Column("Site URL", _param("siteUrl")),
        Column("Platform", _param("platform")),
        Column("Ad Spend", _param("adSpend")),
        Column("Business Type", _param("businessType")),
    ) + _ATTRIBUTION_COLUMNS,
)

_DISCOVERY_COLUMNS = (
    Column("Timestamp", _client_time_or_server),
    Column("Email", _param("email")),
    Column("Phone", _param("phone")),
    # Filled in by hand as the lead progresses.
    Column("Discovery Completed", _const("")),
    Column("Presentation Booked", _const("")),
    Column("Presentation Completed", _const("")),
    Column("Status", _const("New")),
)

DISCOVERY_V2 = Destination(name="Discovery V2", columns=_DISCOVERY_COLUMNS)
AUDIT_DISCOVERY_V2 = Destination(name="Audit Discovery V2", columns=_DISCOVERY_COLUMNS)

ROUTES: Dict[str, Destination] = {
    "audit": AUDIT,
    "main_discovery_v2": DISCOVERY_V2,
    "audit_discovery_v2": AUDIT_DISCOVERY_V2,
}


def resolve_destination(sheet_name: Optional[str]) -> Destination:
    """Map a routing discriminant to its destination; unknown goes to the primary sheet."""
    return ROUTES.get((sheet_name or "").strip(), PRIMARY)
