from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from philter.core.middleware import resolve_request_id
from philter.main import app

client = TestClient(app)


def test_preserves_incoming_request_id_header():
    resp = client.get("/health", headers={"X-Request-ID": "test-request-id-123"})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == "test-request-id-123"


def test_generates_request_id_when_missing():
    resp = client.get("/health")

    assert resp.status_code == 200
    assert uuid.UUID(resp.headers["X-Request-ID"])
    assert resp.headers.get("X-Request-Duration-ms") is not None


def test_replaces_unsafe_request_id():
    resp = client.get("/health", headers={"X-Request-ID": "bad id with spaces"})

    assert resp.headers["X-Request-ID"] != "bad id with spaces"
    assert uuid.UUID(resp.headers["X-Request-ID"])


def test_resolve_request_id_limits_length():
    assert resolve_request_id("a" * 128) == "a" * 128
    assert resolve_request_id("a" * 129) != "a" * 129
