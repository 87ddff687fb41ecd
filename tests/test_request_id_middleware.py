from __future__ import annotations

import logging

from fastapi.testclient import TestClient

from main import create_app


def test_request_id_added_when_missing():
    client = TestClient(create_app())
    resp = client.get("/health")
    assert resp.status_code == 200, resp.text
    assert resp.headers.get("X-Request-ID")


def test_request_id_echoed_when_present():
    client = TestClient(create_app())
    resp = client.get("/health", headers={"X-Request-ID": "client-request-id"})
    assert resp.status_code == 200, resp.text
    assert resp.headers.get("X-Request-ID") == "client-request-id"


def test_request_end_log_includes_method_path_status(caplog):
    client = TestClient(create_app())
    caplog.set_level(logging.INFO, logger="nexus.http")
    resp = client.get("/health")
    assert resp.status_code == 200, resp.text
    assert any(
        "http_request_end" in record.message
        and "method=GET" in record.message
        and "path=/health" in record.message
        and "status=200" in record.message
        and "duration_ms=" in record.message
        for record in caplog.records
    )


def test_request_id_present_on_401():
    client = TestClient(create_app(), raise_server_exceptions=False)
    resp = client.get("/v1/orders")
    assert resp.status_code == 401, resp.text
    assert resp.headers.get("X-Request-ID")


def test_request_id_filter_stamps_records():
    from services.observability import RequestIdFilter, set_request_id

    record = logging.LogRecord("nexus.test", logging.INFO, __file__, 1, "hello", None, None)
    set_request_id("abc-123")
    try:
        RequestIdFilter().filter(record)
    finally:
        set_request_id(None)
    assert record.request_id == "abc-123"
