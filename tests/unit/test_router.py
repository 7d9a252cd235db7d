"""API tests for the retention and observability routers."""

from pathlib import Path

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import autodelete.dependencies as dependencies
import autodelete.retention.router as retention_routes
from autodelete.config import get_settings
from autodelete.dependencies import get_retention_service
from autodelete.main import create_app
from autodelete.retention.exceptions import RetentionError
from autodelete.retention.schemas import RetentionSettings
from autodelete.retention.sql_store import SqlRecordStore

API = "/api/v1/retention"


@pytest.fixture
def service(make_service, fake_store, retention_settings):
    fake_store.add_category(1, "Contact")
    for _ in range(3):
        fake_store.add_record(1, age_days=400)
    return make_service(retention_settings)


@pytest.fixture
def client(service):
    app = create_app()
    app.dependency_overrides[get_retention_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client


class TestCleanupEndpoints:
    def test_run(self, client):
        response = client.post(f"{API}/run")

        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 3
        assert body["status"] == "success"
        assert body["has_more"] is False

    def test_enqueue_cleanup(self, client, monkeypatch):
        class FakeAsyncResult:
            id = "task-123"

        class FakeTask:
            def delay(self):
                return FakeAsyncResult()

        monkeypatch.setattr(retention_routes, "retention_cleanup_manual_task", FakeTask())

        response = client.post(f"{API}/cleanup")

        assert response.status_code == 202
        assert response.json() == {"status": "enqueued", "task_id": "task-123"}

    def test_estimate(self, client):
        response = client.get(f"{API}/estimate", params={"scope": "records"})

        assert response.status_code == 200
        assert response.json()["count"] == 3

    def test_estimate_unknown_scope(self, client):
        response = client.get(f"{API}/estimate", params={"scope": "everything"})

        assert response.status_code == 422

    def test_retry_delete(self, client, fake_store):
        response = client.post(f"{API}/records/1/delete")

        assert response.status_code == 200
        assert response.json()["deleted"] is True
        assert 1 not in fake_store.records

    def test_retry_delete_unknown_record(self, client):
        response = client.post(f"{API}/records/999/delete")

        assert response.status_code == 404


class TestPersonSearchEndpoints:
    def test_search(self, client, fake_store):
        record = fake_store.add_record(1, age_days=2, fields={"email": "anna@example.com"})

        response = client.get(f"{API}/search", params={"term": "anna@"})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["record_id"] == record.id
        assert body["items"][0]["category_label"] == "Contact"
        assert body["items"][0]["matches"][0]["value"] == "anna@example.com"

    def test_search_short_term(self, client):
        response = client.get(f"{API}/search", params={"term": "an"})

        assert response.status_code == 422

    def test_search_per_page_is_bounded(self, client):
        response = client.get(f"{API}/search", params={"term": "anna", "per_page": 500})

        assert response.status_code == 422

    def test_delete_records(self, client, fake_store):
        response = client.post(f"{API}/records/delete", json={"record_ids": [1, 2, 999]})

        assert response.status_code == 200
        assert response.json() == {"deleted": 2, "failed": 0, "files_deleted": 0}
        assert sorted(fake_store.records) == [3]

    def test_delete_records_requires_ids(self, client):
        response = client.post(f"{API}/records/delete", json={"record_ids": []})

        assert response.status_code == 422


class TestHistoryEndpoints:
    def test_logs_after_run(self, client):
        client.post(f"{API}/run")

        response = client.get(f"{API}/logs", params={"per_page": 2, "order_by": "record_id", "order": "asc"})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert [item["record_id"] for item in body["items"]] == [1, 2]
        assert body["items"][0]["actions"] == ["TRASH"]

    def test_logs_per_page_is_bounded(self, client):
        response = client.get(f"{API}/logs", params={"per_page": 500})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_runs_and_clear(self, client):
        client.post(f"{API}/run")

        runs = client.get(f"{API}/runs").json()
        assert runs["total"] == 1
        assert runs["items"][0]["trigger"] == "manual"

        assert client.delete(f"{API}/logs").status_code == 204
        assert client.get(f"{API}/runs").json()["total"] == 0


class TestSettingsEndpoints:
    def test_settings(self, client):
        body = client.get(f"{API}/settings").json()

        assert body["record_disposition"] == "soft_delete"
        assert body["file_disposition"] == "delete"
        assert body["global_retention_days"] == 365

    def test_schedule(self, client):
        body = client.get(f"{API}/schedule").json()

        assert body["enabled"] is False
        assert body["next_run_at"] is None

    def test_invalid_settings_document(self, monkeypatch):
        def broken(path=None):
            raise RetentionError("bad document")

        monkeypatch.setattr(dependencies, "load_retention_settings", broken)

        with pytest.raises(HTTPException) as exc_info:
            dependencies.get_retention_settings()

        assert exc_info.value.status_code == 500

    def test_valid_settings_document(self, monkeypatch):
        monkeypatch.setattr(dependencies, "load_retention_settings", lambda path=None: RetentionSettings())

        assert dependencies.get_retention_settings() == RetentionSettings()


class TestObservability:
    def test_metrics(self, client):
        client.post(f"{API}/run")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "autodelete_records_processed_total" in response.text

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["name"] == "autodelete API"


class TestDependencies:
    def test_record_store_uses_request_session(self, db_session):
        store = dependencies.get_record_store(db_session)

        assert isinstance(store, SqlRecordStore)
        assert store.db is db_session

    def test_file_deleter_rooted_at_upload_root(self):
        deleter = dependencies.get_file_deleter()

        assert deleter.upload_root == Path(get_settings().UPLOAD_ROOT).resolve()
