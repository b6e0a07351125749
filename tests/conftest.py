import os
import re

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SESSION_BACKEND", "memory")
os.environ.setdefault("SHEETS_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient

from funnel.deps import get_lead_transmitter, get_session_store, get_spreadsheet_store
from funnel.main import app
from funnel.routes.funnel import get_clock
from funnel.services.session_state import MemorySessionStore
from funnel.services.sheets import MemorySpreadsheetStore

TOKEN_PATTERN = re.compile(r'name="formToken" value="([^"]+)"')


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def extract_token(html: str) -> str:
    match = TOKEN_PATTERN.search(html)
    assert match, "form token not rendered"
    return match.group(1)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session_store():
    return MemorySessionStore()


@pytest.fixture
def spreadsheet():
    return MemorySpreadsheetStore()


@pytest.fixture
def transmitter():
    """Override target for tests that need an ingestion endpoint."""
    return None


@pytest.fixture
def client(clock, session_store, spreadsheet, transmitter):
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_spreadsheet_store] = lambda: spreadsheet
    app.dependency_overrides[get_lead_transmitter] = lambda: transmitter
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
