"""Endpoint tests for the storage, application and health routes."""

import pytest
from fastapi.testclient import TestClient

from philter.adapters.storage.json_adapter import JsonStorageAdapter
from philter.adapters.storage.substrates import MemorySubstrate
from philter.core.app_factory import create_app
from philter.services import storage_keys as keys
from philter.services.storage_service import StorageService


@pytest.fixture
def storage() -> StorageService:
    return StorageService(JsonStorageAdapter(MemorySubstrate()))


@pytest.fixture
def client(storage: StorageService) -> TestClient:
    return TestClient(create_app(storage=storage))


class TestStorageRoutes:
    def test_put_then_get_round_trips_value(self, client: TestClient) -> None:
        value = {"name": "Jane Doe", "tags": ["a", "b"], "score": 3.5}

        put = client.put("/v1/storage/profile_app-1", json={"value": value})
        get = client.get("/v1/storage/profile_app-1")

        assert put.status_code == 200
        assert get.status_code == 200
        assert get.json() == {"key": "profile_app-1", "value": value}

    def test_missing_key_reads_as_null(self, client: TestClient) -> None:
        response = client.get("/v1/storage/never-written")

        assert response.status_code == 200
        assert response.json()["value"] is None

    def test_write_notifies_in_process_subscribers(self, client: TestClient, storage: StorageService) -> None:
        seen = []
        storage.subscribe("philter_theme", seen.append)

        client.put("/v1/storage/philter_theme", json={"value": "dark"})

        assert seen == ["dark"]

    def test_delete_removes_value(self, client: TestClient, storage: StorageService) -> None:
        storage.set("draft", [1, 2, 3])

        response = client.delete("/v1/storage/draft")

        assert response.status_code == 204
        assert storage.get("draft", "gone") == "gone"

    def test_invalid_key_is_rejected(self, client: TestClient) -> None:
        response = client.get("/v1/storage/bad key")

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "storage_invalid_key"
        assert "request_id" in error

    def test_responses_carry_rate_limit_headers(self, client: TestClient) -> None:
        response = client.get("/v1/storage/anything", headers={"X-Forwarded-For": "203.0.113.10"})

        assert response.headers["X-RateLimit-Limit"] == "100"
        assert response.headers["X-RateLimit-Remaining"] == "99"
        assert int(response.headers["X-RateLimit-Reset"]) > 0

    def test_delete_uses_strict_limit(self, client: TestClient) -> None:
        headers = {"X-Forwarded-For": "203.0.113.11"}

        statuses = [client.delete("/v1/storage/draft", headers=headers).status_code for _ in range(4)]

        assert statuses == [204, 204, 204, 429]

    def test_successful_delete_carries_strict_limit_headers(self, client: TestClient) -> None:
        response = client.delete("/v1/storage/draft", headers={"X-Forwarded-For": "203.0.113.14"})

        assert response.status_code == 204
        assert response.content == b""
        assert response.headers["X-RateLimit-Limit"] == "3"
        assert response.headers["X-RateLimit-Remaining"] == "2"
        assert "X-RateLimit-Reset" in response.headers

    def test_limited_delete_uses_error_envelope(self, client: TestClient) -> None:
        headers = {"X-Forwarded-For": "203.0.113.15"}
        for _ in range(3):
            client.delete("/v1/storage/draft", headers=headers)

        response = client.delete("/v1/storage/draft", headers=headers)

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert "Retry-After" in response.headers

    def test_chunk_like_key_does_not_shadow_value(self, client: TestClient, storage: StorageService) -> None:
        client.put("/v1/storage/draft", json={"value": "hello"})
        client.put("/v1/storage/draft_chunks", json={"value": 3})
        storage.clear_cache()

        response = client.get("/v1/storage/draft")

        assert response.json() == {"key": "draft", "value": "hello"}

    def test_strict_limit_is_per_client(self, client: TestClient) -> None:
        for _ in range(4):
            client.delete("/v1/storage/draft", headers={"X-Forwarded-For": "203.0.113.12"})

        response = client.delete("/v1/storage/draft", headers={"X-Forwarded-For": "203.0.113.13"})

        assert response.status_code == 204

    def test_cache_stats(self, client: TestClient, storage: StorageService) -> None:
        storage.set("b", 1)
        storage.set("a", 2)

        response = client.get("/v1/storage-stats")

        assert response.status_code == 200
        assert response.json() == {"enabled": True, "size": 2, "keys": ["a", "b"], "listener_count": 0}


class TestApplicationRoutes:
    def test_patch_merges_and_forces_id(self, client: TestClient) -> None:
        client.patch("/v1/applications/app-1", json={"updates": {"status": "draft", "unit": "4B"}})
        response = client.patch("/v1/applications/app-1", json={"updates": {"status": "submitted", "id": "x"}})

        assert response.status_code == 200
        assert response.json() == {"id": "app-1", "data": {"status": "submitted", "unit": "4B"}}

    def test_status_update_stamps_activity(self, client: TestClient) -> None:
        response = client.post("/v1/applications/app-2/status", json={"status": "in_review"})

        data = response.json()["data"]
        assert data["status"] == "in_review"
        assert "lastActivityAt" in data

    def test_sync_folds_form_sections(self, client: TestClient, storage: StorageService) -> None:
        storage.set(keys.form_data("profile", "app-3"), {"firstName": "Ann"})
        storage.set(keys.form_data("income", "app-3"), {"salary": 100000})

        sync = client.post("/v1/applications/app-3/sync")
        record = client.get("/v1/applications/app-3").json()

        assert sync.json() == {"application_id": "app-3", "synced": True}
        assert [s["key"] for s in record["data"]["sections"]] == ["profile", "income"]
        assert record["data"]["sections"][0]["data"] == {"firstName": "Ann"}

    def test_sync_without_drafts_reports_false(self, client: TestClient) -> None:
        response = client.post("/v1/applications/app-4/sync")

        assert response.json()["synced"] is False

    def test_invalid_application_id(self, client: TestClient) -> None:
        response = client.get("/v1/applications/bad_id")

        assert response.status_code == 422


class TestOperationalRoutes:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ok",
            "storage_backend": "memory",
            "rate_limit_backend": "in_memory",
        }

    def test_rate_limit_stats_counts_its_own_request(self, client: TestClient) -> None:
        response = client.get("/v1/rate-limit/stats")

        body = response.json()
        assert body["backend"] == "in_memory"
        assert body["entries_by_prefix"] == {"api": 1}
        assert response.headers["X-RateLimit-Remaining"] == "99"
