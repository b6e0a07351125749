from funnel.core.config import settings


def test_health_reports_memory_backends(client):
    response = client.get(f"{settings.api_prefix}/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["session_store"]["backend"] == "memory"
    assert body["checks"]["spreadsheet"]["backend"] == "memory"


def test_liveness(client):
    response = client.get(f"{settings.api_prefix}/health/live")
    assert response.json() == {"status": "alive"}


def test_request_id_is_echoed(client):
    response = client.get(f"{settings.api_prefix}/health/live", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert "X-Response-Time" in response.headers


def test_request_id_from_traceparent(client):
    traceparent = "00-4bf92f3577b34da6a3ce929d0e0e4736-00f067aa0ba902b7-01"
    response = client.get(f"{settings.api_prefix}/health/live", headers={"traceparent": traceparent})
    assert response.headers["X-Request-ID"] == "4bf92f3577b34da6a3ce929d0e0e4736"


def test_settings_carry_only_used_options():
    fields = set(type(settings).model_fields)
    assert {"api_prefix", "session_backend", "sheets_backend"} <= fields
    assert not fields & {"debug", "api_host", "api_port"}


def test_api_exception_body_and_headers(client):
    response = client.post("/submit/nope", data={"email": "alice@example.com"})

    assert response.status_code == 404
    assert set(response.json()) == {"code", "message", "details"}
    assert "retry-after" not in response.headers
