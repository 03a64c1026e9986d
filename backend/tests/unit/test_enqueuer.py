"""Unit tests for JobEnqueuer and WorkerTrigger."""

import json
import uuid
from unittest.mock import MagicMock

import httpx
import pytest
from sqlalchemy.orm import Session

from src.models.job import JobStatus
from src.services.enqueuer import JobEnqueuer, WorkerTrigger


@pytest.fixture()
def workflow_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "gh-token")
    monkeypatch.setenv("WORKER_WORKFLOW_REPO", "acme/shortages")
    monkeypatch.setenv("WORKER_WORKFLOW_FILE", "worker.yml")
    monkeypatch.delenv("WORKER_WORKFLOW_REF", raising=False)


def _trigger(handler: object) -> WorkerTrigger:
    return WorkerTrigger(client=httpx.Client(transport=httpx.MockTransport(handler)))  # type: ignore[arg-type]


class TestWorkerTrigger:
    def test_skips_when_not_configured(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        client = MagicMock()

        assert WorkerTrigger(client=client).notify(uuid.uuid4()) is False
        client.post.assert_not_called()

    def test_dispatches_workflow(self, workflow_env: None) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        assert _trigger(handler).notify(uuid.uuid4()) is True
        request = seen[0]
        assert request.url == "https://api.github.com/repos/acme/shortages/actions/workflows/worker.yml/dispatches"
        assert request.headers["Authorization"] == "Bearer gh-token"
        assert json.loads(request.content) == {"ref": "main"}

    def test_rejected_dispatch_returns_false(self, workflow_env: None) -> None:
        assert _trigger(lambda request: httpx.Response(404, text="Not Found")).notify(uuid.uuid4()) is False

    def test_transport_error_is_swallowed(self, workflow_env: None) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("dns failure", request=request)

        assert _trigger(handler).notify(uuid.uuid4()) is False


class TestJobEnqueuer:
    def test_inserts_job_and_notifies_trigger(self, db: Session) -> None:
        trigger = MagicMock()
        session_id = uuid.uuid4()

        job = JobEnqueuer(trigger).enqueue(db, session_id, "  Amoxicillin   Oral ", {"x": 1})

        assert job.status == JobStatus.PENDING
        assert job.drug_name == "Amoxicillin Oral"
        assert job.session_id == session_id
        trigger.notify.assert_called_once_with(job.id)

    def test_trigger_failure_does_not_fail_enqueue(self, db: Session) -> None:
        trigger = MagicMock()
        trigger.notify.side_effect = RuntimeError("boom")

        job = JobEnqueuer(trigger).enqueue(db, uuid.uuid4(), "Heparin")

        assert job.status == JobStatus.PENDING

    def test_blank_drug_name_is_rejected(self, db: Session) -> None:
        with pytest.raises(ValueError):
            JobEnqueuer(MagicMock()).enqueue(db, uuid.uuid4(), "   ")
