import asyncio
from urllib.parse import parse_qs

import httpx
import pytest

from funnel.core.config import settings
from funnel.deps import get_lead_transmitter
from funnel.main import app
from funnel.services.form_controller import RATE_LIMIT_MESSAGE, TOKEN_MESSAGE
from funnel.services.transport import LeadTransmitter

from tests.conftest import extract_token

VALID_LEAD = {
    "email": "alice@example.com",
    "phone": "5125550123",
    "brand": "Acme",
    "adSpend": "5k-20k",
    "businessType": "ecommerce",
}


def open_form(client, path="/"):
    response = client.get(path)
    assert response.status_code == 200
    return extract_token(response.text)


def submit(client, clock, data, form_id="leadForm", path="/", wait=5, **kwargs):
    token = open_form(client, path)
    clock.advance(wait)
    return client.post(f"/submit/{form_id}", data={**data, "formToken": token}, **kwargs)


@pytest.fixture
def endpoint_requests(client):
    """Route dispatched leads through a mock ingestion endpoint."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(parse_qs(request.content.decode(), keep_blank_values=True))
        return httpx.Response(200, json={"status": "ok", "sheet": "Sheet1"})

    transmitter = LeadTransmitter(
        "https://ingest.example/api/ingest",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    app.dependency_overrides[get_lead_transmitter] = lambda: transmitter
    return seen


def test_landing_sets_session_cookie_and_token(client):
    response = client.get("/")

    assert response.status_code == 200
    assert settings.session_cookie_name in response.cookies
    assert 'id="leadForm"' in response.text
    assert extract_token(response.text)


def test_audit_page_renders_audit_form(client):
    response = client.get("/audit")
    assert 'id="auditLeadForm"' in response.text
    assert 'name="siteUrl"' in response.text
    assert 'name="platform"' in response.text


def test_landing_captures_utm_once(client, session_store):
    client.get("/?utm_source=facebook&utm_campaign=bfcm")
    client.get("/?utm_source=google")

    sid = client.cookies[settings.session_cookie_name]
    state = asyncio.run(session_store.load(sid))
    assert state.utm["utm_source"] == "facebook"
    assert state.utm["utm_campaign"] == "bfcm"


def test_submit_accepted_renders_redirect(client, clock):
    response = submit(client, clock, VALID_LEAD)

    assert response.status_code == 200
    assert "url=/thank-you" in response.text
    assert 'content="0.4;' in response.text


def test_submit_with_endpoint_dispatches_lead(client, clock, endpoint_requests):
    client.get("/?utm_source=facebook")
    response = submit(client, clock, VALID_LEAD)

    assert 'content="1.0;' in response.text
    assert len(endpoint_requests) == 1
    sent = endpoint_requests[0]
    assert sent["email"] == ["alice@example.com"]
    assert sent["adSpend"] == ["5k-20k"]
    assert sent["utm_source"] == ["facebook"]
    assert "sheetName" not in sent


def test_audit_submit_routes_to_audit_sheet(client, clock, endpoint_requests):
    data = {**VALID_LEAD, "siteUrl": "https://acme.example", "platform": "shopify"}
    submit(client, clock, data, form_id="auditLeadForm", path="/audit")

    assert endpoint_requests[0]["sheetName"] == ["audit"]
    assert endpoint_requests[0]["platform"] == ["shopify"]


def test_submit_too_fast_is_rejected(client, clock):
    response = submit(client, clock, VALID_LEAD, wait=1)

    assert response.status_code == 400
    assert TOKEN_MESSAGE in response.text
    assert 'role="alert"' in response.text


def test_submit_with_forged_token_is_rejected(client, clock):
    client.get("/")
    clock.advance(5)
    response = client.post("/submit/leadForm", data={**VALID_LEAD, "formToken": "forged"})
    assert response.status_code == 400


def test_submit_invalid_fields_rerenders_with_errors(client, clock):
    response = submit(client, clock, {**VALID_LEAD, "email": "bad"})

    assert response.status_code == 422
    assert 'data-field="email"' in response.text
    # Submitted values and chip choices survive the re-render
    assert 'value="Acme"' in response.text
    assert "chip-selected" in response.text


def test_honeypot_redirects_silently(client, clock, endpoint_requests):
    response = submit(
        client,
        clock,
        {**VALID_LEAD, "websiteUrl": "http://spam.example"},
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert response.headers["location"] == "/thank-you"
    assert endpoint_requests == []


def test_fourth_submission_in_window_is_rate_limited(client, clock):
    for i in range(3):
        response = submit(client, clock, {**VALID_LEAD, "email": f"user{i}@example.com"})
        assert response.status_code == 200

    response = submit(client, clock, {**VALID_LEAD, "email": "user3@example.com"})
    assert response.status_code == 429
    assert RATE_LIMIT_MESSAGE in response.text

    clock.advance(60)
    response = submit(client, clock, {**VALID_LEAD, "email": "user4@example.com"})
    assert response.status_code == 200


def test_identical_resubmission_is_rejected(client, clock, endpoint_requests):
    assert submit(client, clock, VALID_LEAD).status_code == 200
    response = submit(client, clock, VALID_LEAD)

    assert response.status_code == 400
    assert "form-alert" in response.text
    assert len(endpoint_requests) == 1


def test_unknown_form_is_404(client):
    response = client.post("/submit/nope", data=VALID_LEAD)
    assert response.status_code == 404
    assert response.json()["code"] == "NotFoundError"


def test_thank_you_shows_last_lead(client, clock):
    submit(client, clock, VALID_LEAD)

    response = client.get("/thank-you")
    assert response.status_code == 200
    assert "Acme" in response.text
    assert "alice@example.com" in response.text


def test_exit_intent_shown_once_per_session(client):
    assert client.post("/exit-intent").json() == {"show": True}
    assert client.post("/exit-intent").json() == {"show": False}


def test_too_fast_rejection_keeps_token_and_wait(client, clock):
    token = open_form(client)
    clock.advance(1)
    response = client.post("/submit/leadForm", data={**VALID_LEAD, "formToken": token})

    assert response.status_code == 400
    assert extract_token(response.text) == token

    # The minimum wait counts from the first render, not the rejection
    clock.advance(2)
    response = client.post("/submit/leadForm", data={**VALID_LEAD, "formToken": token})
    assert response.status_code == 200


@pytest.mark.parametrize("path", ["/", "/audit"])
def test_landing_pages_wire_exit_intent(client, path):
    response = client.get(path)
    assert 'id="exitIntent"' in response.text
    assert 'fetch("/exit-intent"' in response.text


def test_thank_you_has_no_exit_intent(client):
    assert "exitIntent" not in client.get("/thank-you").text
