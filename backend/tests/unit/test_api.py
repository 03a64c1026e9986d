"""HTTP tests for the jobs and sessions routers."""

import uuid
from collections.abc import Iterator
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from src.api import jobs, sessions
from src.db import get_session, utcnow
from src.main import app
from src.models.job import JobStatus
from src.schemas.job import FAILED_JOB_MESSAGE
from src.services import documents, job_store
from src.services.llm import GenerationTimeout
from src.services.worker import WorkerResult


@pytest.fixture()
def client(db: Session) -> Iterator[TestClient]:
    def _session() -> Iterator[Session]:
        yield db

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[jobs.get_enqueuer] = lambda: jobs.JobEnqueuer(trigger=MagicMock())
    # No context manager: startup would try to create tables on $DATABASE_URL.
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestCreateJob:
    def test_returns_202_with_job_id(self, client: TestClient, db: Session) -> None:
        session_id = uuid.uuid4()

        resp = client.post("/jobs", json={"sessionId": str(session_id), "drugName": "Amoxicillin"})

        assert resp.status_code == 202
        body = resp.json()
        assert body["status"] == "pending"
        job = job_store.get_job(db, uuid.UUID(body["jobId"]))
        assert job is not None
        assert job.session_id == session_id
        assert job.model_type == "txagent"

    def test_missing_drug_name_is_rejected(self, client: TestClient) -> None:
        resp = client.post("/jobs", json={"sessionId": str(uuid.uuid4())})

        assert resp.status_code == 422


class TestGetJob:
    def test_completed_job_exposes_result(self, client: TestClient, db: Session) -> None:
        job = job_store.enqueue(db, uuid.uuid4(), "Heparin")
        job.status = JobStatus.COMPLETED.value
        job.result = "# Doc"
        db.commit()

        body = client.get(f"/jobs/{job.id}").json()

        assert body["status"] == "completed"
        assert body["result"] == "# Doc"
        assert body["drugName"] == "Heparin"

    def test_failed_job_hides_internal_error(self, client: TestClient, db: Session) -> None:
        job = job_store.enqueue(db, uuid.uuid4(), "Heparin")
        job.status = JobStatus.FAILED.value
        job.error_message = "RunPod returned 500: stack trace"
        db.commit()

        body = client.get(f"/jobs/{job.id}").json()

        assert body["message"] == FAILED_JOB_MESSAGE
        assert "RunPod" not in str(body)

    def test_unknown_job_is_404(self, client: TestClient) -> None:
        assert client.get(f"/jobs/{uuid.uuid4()}").status_code == 404

    def test_latest_job_for_session(self, client: TestClient, db: Session) -> None:
        session_id = uuid.uuid4()
        job = job_store.enqueue(db, session_id, "Heparin")

        resp = client.get(f"/sessions/{session_id}/jobs/latest")

        assert resp.status_code == 200
        assert resp.json()["id"] == str(job.id)
        assert client.get(f"/sessions/{uuid.uuid4()}/jobs/latest").status_code == 404


class TestProcessJob:
    def test_reports_worker_result(self, client: TestClient) -> None:
        worker = MagicMock()
        worker.process_next.return_value = WorkerResult(status="idle", message="No pending jobs")
        app.dependency_overrides[jobs.get_worker] = lambda: worker

        resp = client.post("/jobs/process")

        assert resp.status_code == 200
        assert resp.json()["message"] == "No pending jobs"

    def test_worker_error_is_500_with_error_body(self, client: TestClient) -> None:
        worker = MagicMock()
        worker.process_next.return_value = WorkerResult(status="error", message="Could not claim a job: db down")
        app.dependency_overrides[jobs.get_worker] = lambda: worker

        resp = client.post("/jobs/process")

        assert resp.status_code == 500
        assert resp.json()["error"] == "Could not claim a job: db down"

    def test_service_key_is_enforced_when_configured(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("SERVICE_API_KEY", "s3cret")
        worker = MagicMock()
        worker.process_next.return_value = WorkerResult(status="idle", message="No pending jobs")
        app.dependency_overrides[jobs.get_worker] = lambda: worker

        assert client.post("/jobs/process").status_code == 401
        ok = client.post("/jobs/process", headers={"Authorization": "Bearer s3cret"})
        assert ok.status_code == 200


class TestResetJobs:
    def test_reset_by_job_id(self, client: TestClient, db: Session) -> None:
        job = job_store.enqueue(db, uuid.uuid4(), "Heparin")
        job.status = JobStatus.FAILED.value
        job.attempts = 3
        db.commit()

        resp = client.post("/jobs/reset", json={"jobId": str(job.id)})

        assert resp.status_code == 200
        assert resp.json()["success"] is True
        db.refresh(job)
        assert job.status == JobStatus.PENDING
        assert job.attempts == 0

    def test_reset_all_stale(self, client: TestClient, db: Session) -> None:
        job = job_store.enqueue(db, uuid.uuid4(), "Heparin")
        job.status = JobStatus.PROCESSING.value
        job.updated_at = utcnow() - timedelta(minutes=10)
        db.commit()

        resp = client.post("/jobs/reset", json={"resetAllStale": True})

        assert resp.status_code == 200
        assert resp.json()["jobIds"] == [str(job.id)]

    def test_unknown_job_is_404(self, client: TestClient) -> None:
        assert client.post("/jobs/reset", json={"jobId": str(uuid.uuid4())}).status_code == 404

    def test_empty_request_is_400(self, client: TestClient) -> None:
        assert client.post("/jobs/reset", json={}).status_code == 400


class TestSessionRoutes:
    def test_document_round_trip(self, client: TestClient) -> None:
        session_id = uuid.uuid4()

        assert client.get(f"/sessions/{session_id}/document").json()["content"] == ""
        client.put(f"/sessions/{session_id}/document", json={"content": "# Draft"})

        assert client.get(f"/sessions/{session_id}/document").json()["content"] == "# Draft"

    def test_chat_returns_reply_and_conversation_is_listed(self, client: TestClient, db: Session) -> None:
        session_id = uuid.uuid4()
        backend = MagicMock()
        backend.generate.return_value = "# Edited"
        app.dependency_overrides[sessions.get_chat_service] = lambda: sessions.ChatService(
            lambda model, assistant: backend, sleep=lambda s: None
        )

        resp = client.post(
            f"/sessions/{session_id}/chat",
            json={"message": "rewrite it", "assistantType": "document", "modelType": "txagent"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["reply"] == "# Edited"
        assert body["documentUpdated"] is True
        saved = documents.get_document(db, session_id)
        assert saved is not None and saved.content == "# Edited"

        convo = client.get(f"/sessions/{session_id}/conversations/document", params={"model_type": "txagent"}).json()
        assert [m["role"] for m in convo["messages"]] == ["user", "assistant"]

    def test_chat_timeout_is_504(self, client: TestClient) -> None:
        backend = MagicMock()
        backend.generate.side_effect = GenerationTimeout("slow")
        app.dependency_overrides[sessions.get_chat_service] = lambda: sessions.ChatService(
            lambda model, assistant: backend, sleep=lambda s: None
        )

        resp = client.post(
            f"/sessions/{uuid.uuid4()}/chat",
            json={"message": "hi", "assistantType": "shortage"},
        )

        assert resp.status_code == 504
