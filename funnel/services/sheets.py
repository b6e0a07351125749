# funnel/services/sheets.py
from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Sequence

import gspread
from google.oauth2.service_account import Credentials

from funnel.core.exceptions import DestinationError
from funnel.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


class Worksheet(Protocol):
    title: str

    def append_row(self, values: Sequence[str]) -> None: ...

    def get_all_values(self) -> List[List[str]]: ...


class SpreadsheetStore(Protocol):
    def get_worksheet(self, title: str) -> Optional[Worksheet]: ...

    def add_worksheet(self, title: str) -> Worksheet: ...


class GoogleWorksheet:
    def __init__(self, ws: gspread.Worksheet):
        self._ws = ws
        self.title = ws.title

    def append_row(self, values: Sequence[str]) -> None:
        # RAW keeps submitted text from being evaluated as a formula.
        self._ws.append_row(list(values), value_input_option="RAW")

    def get_all_values(self) -> List[List[str]]:
        return self._ws.get_all_values()


class GoogleSheetsStore:
    """Worksheets of one Google spreadsheet, opened by key on first use."""

    def __init__(self, spreadsheet_id: str, cred_path: str):
        self.spreadsheet_id = spreadsheet_id
        self.cred_path = cred_path
        self._ss: Optional[gspread.Spreadsheet] = None

    def _spreadsheet(self) -> gspread.Spreadsheet:
        if self._ss is None:
            try:
                creds = Credentials.from_service_account_file(self.cred_path, scopes=SCOPES)
                self._ss = gspread.authorize(creds).open_by_key(self.spreadsheet_id)
            except (OSError, ValueError, gspread.exceptions.GSpreadException) as e:
                logger.error("sheets.open_failed", spreadsheet_id=self.spreadsheet_id, error=str(e))
                raise DestinationError(
                    message="Could not open spreadsheet",
                    details={"spreadsheet_id": self.spreadsheet_id, "error": str(e)},
                ) from e
        return self._ss

    def get_worksheet(self, title: str) -> Optional[GoogleWorksheet]:
        try:
            return GoogleWorksheet(self._spreadsheet().worksheet(title))
        except gspread.exceptions.WorksheetNotFound:
            return None

    def add_worksheet(self, title: str) -> GoogleWorksheet:
        ws = self._spreadsheet().add_worksheet(title=title, rows=1000, cols=26)
        logger.info("sheets.worksheet_created", title=title)
        return GoogleWorksheet(ws)


class MemoryWorksheet:
    def __init__(self, title: str):
        self.title = title
        self.rows: List[List[str]] = []

    def append_row(self, values: Sequence[str]) -> None:
        self.rows.append([str(v) for v in values])

    def get_all_values(self) -> List[List[str]]:
        return [list(r) for r in self.rows]


class MemorySpreadsheetStore:
    """In-process spreadsheet used in development and tests."""

    def __init__(self) -> None:
        self.worksheets: Dict[str, MemoryWorksheet] = {}

    def get_worksheet(self, title: str) -> Optional[MemoryWorksheet]:
        return self.worksheets.get(title)

    def add_worksheet(self, title: str) -> MemoryWorksheet:
        return self.worksheets.setdefault(title, MemoryWorksheet(title))
