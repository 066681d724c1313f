from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from gatekeeper.core.app_factory import create_app


@pytest.fixture
def client(clock):
    with TestClient(create_app(clock=clock, configure_logs=False)) as client:
        yield client


def test_preserves_incoming_request_id_header(client: TestClient):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client: TestClient):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID")
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_access_log_flags_throttled_responses(client: TestClient, caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.INFO, logger="gatekeeper.core.middleware"):
        client.get("/health")

    records = [r for r in caplog.records if r.getMessage() == "http.request"]
    assert records
    assert records[-1].status == 200
    assert records[-1].throttled is False
