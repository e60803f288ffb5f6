"""Tests for the manual job trigger routes.

Tests cover:
A) GET /v1/jobs lists the three lifecycle jobs with schedules
B) POST /v1/jobs/{name}/run returns the job's structured summary
C) Unknown job names return the 404 error envelope with request_id
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
from conftest import RecordingDispatcher
from fastapi.testclient import TestClient

from pcitrack.api.main import create_app
from pcitrack.jobs.context import JobContext
from pcitrack.models.document import Document
from pcitrack.persistence.documents import InMemoryDocumentStore


@pytest.fixture
def client(context: JobContext) -> TestClient:
    """Test client over in-memory collaborators, scheduler loop disabled."""
    app = create_app(context=context, start_scheduler=False)
    return TestClient(app, raise_server_exceptions=False)


class TestListJobs:
    def test_lists_registered_jobs(self, client: TestClient) -> None:
        response = client.get("/v1/jobs")

        assert response.status_code == 200
        items = response.json()["items"]
        assert [item["name"] for item in items] == [
            "expiration_scan",
            "status_reconciliation",
            "weekly_report",
        ]
        assert items[0]["schedule"] == "0 9 * * *"
        assert items[0]["running"] is False
        assert items[0]["next_run_at"]
        assert items[0]["last_started_at"] is None


class TestRunJob:
    def test_run_expiration_scan_returns_summary(
        self,
        client: TestClient,
        store: InMemoryDocumentStore,
        dispatcher: RecordingDispatcher,
        make_document: Callable[..., Document],
    ) -> None:
        store.save(make_document(10, document_id="doc-a"))

        response = client.post("/v1/jobs/expiration_scan/run")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["notified"] == 1
        assert data["details"][0]["document_id"] == "doc-a"
        assert data["details"][0]["days_remaining"] == 10
        assert len(dispatcher.calls) == 1

    def test_run_updates_job_listing(self, client: TestClient) -> None:
        client.post("/v1/jobs/weekly_report/run")

        items = {item["name"]: item for item in client.get("/v1/jobs").json()["items"]}

        assert items["weekly_report"]["last_finished_at"] is not None
        assert items["weekly_report"]["last_error"] is None
        assert items["expiration_scan"]["last_started_at"] is None

    def test_run_reconciliation_returns_summary(self, client: TestClient) -> None:
        response = client.post("/v1/jobs/status_reconciliation/run")

        assert response.status_code == 200
        assert response.json()["updated"] == 0

    def test_unknown_job_returns_not_found_envelope(self, client: TestClient) -> None:
        response = client.post("/v1/jobs/nightly_cleanup/run", headers={"X-Request-Id": "req-9"})

        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "NOT_FOUND"
        assert data["message"] == "Unknown job: nightly_cleanup"
        assert data["request_id"] == "req-9"
        assert data["details"]["job"] == "nightly_cleanup"
        assert "weekly_report" in data["details"]["known_jobs"]
        assert response.headers["X-Request-Id"] == "req-9"

    def test_unknown_route_uses_envelope(self, client: TestClient) -> None:
        response = client.get("/v1/nothing-here")

        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "NOT_FOUND"
        assert data["request_id"]

    def test_job_failure_returns_generic_500(
        self,
        client: TestClient,
        store: InMemoryDocumentStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def unreachable(query):
            raise ConnectionError("database password=hunter2 unreachable")

        monkeypatch.setattr(store, "find", unreachable)

        response = client.post("/v1/jobs/expiration_scan/run")

        assert response.status_code == 500
        data = response.json()
        assert data["code"] == "INTERNAL_ERROR"
        assert "hunter2" not in response.text
