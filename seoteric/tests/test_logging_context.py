"""Tests for structured logging and request_id propagation."""

import json
import logging

from fastapi.testclient import TestClient

from seoteric.core.logging import JsonFormatter, log_event, request_id_ctx_var
from seoteric.main import app


def test_request_id_in_response_and_logs(caplog):
    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="seoteric"):
        response = client.get("/healthz")
    rid = response.headers.get("x-request-id")
    assert rid
    records = [r for r in caplog.records if getattr(r, "request_id", None) == rid]
    assert records, "Expected logs to contain request_id from response"
    assert len({r.request_id for r in records}) == 1


def test_request_id_in_error_response():
    client = TestClient(app)
    response = client.get("/api/billing/usage")
    rid = response.headers.get("x-request-id")
    assert response.status_code == 401
    assert rid
    payload = response.json()
    assert payload["error"]["code"] == "http_error"
    assert payload["error"]["request_id"] == rid


def test_json_formatter_carries_entitlement_fields():
    record = logging.LogRecord("seoteric.test", logging.WARNING, __file__, 1, "[entitlement] BLOCK", None, None)
    record.user_id = "u1"
    record.feature = "messages"
    record.used = 100
    record.limit = 100
    record.request_id = "rid-1"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "[entitlement] BLOCK"
    assert payload["feature"] == "messages"
    assert payload["used"] == 100
    assert payload["limit"] == 100
    assert payload["request_id"] == "rid-1"
    assert "plan" not in payload


def test_log_event_uses_context_request_id(caplog):
    token = request_id_ctx_var.set("ctx-rid")
    try:
        with caplog.at_level(logging.INFO, logger="seoteric"):
            log_event("info", "[billing] webhook ignored", user_id="u1", extra={"reason": "x" * 600})
    finally:
        request_id_ctx_var.reset(token)

    record = next(r for r in caplog.records if r.getMessage() == "[billing] webhook ignored")
    assert record.request_id == "ctx-rid"
    assert record.user_id == "u1"
    assert record.reason.endswith("...<truncated>")


def test_lifespan_logs_billing_mode_only(caplog):
    with caplog.at_level(logging.INFO, logger="seoteric"):
        with TestClient(app) as client:
            assert client.get("/healthz").status_code == 200

    record = next(r for r in caplog.records if r.getMessage() == "Starting Seoteric backend...")
    assert record.billing_enabled is False
    assert not hasattr(app.state, "startup_time")
