"""Enqueuer — inserts a document job and pokes the worker workflow."""

import logging
import os
import uuid

import httpx
from sqlalchemy.orm import Session

from src.models.job import DocumentJob
from src.services import job_store
from src.services.drug_names import clean_drug_name

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


class WorkerTrigger:
    """Fires a GitHub Actions ``workflow_dispatch`` so a worker runs soon.

    Best effort: missing configuration or any HTTP failure is logged, never raised.
    """

    def __init__(self, client: httpx.Client | None = None, timeout: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout

    def _config(self) -> tuple[str, str, str, str] | None:
        token = os.environ.get("GITHUB_TOKEN", "").strip()
        repo = os.environ.get("WORKER_WORKFLOW_REPO", "").strip()
        workflow = os.environ.get("WORKER_WORKFLOW_FILE", "").strip()
        ref = os.environ.get("WORKER_WORKFLOW_REF", "").strip() or "main"
        if not (token and repo and workflow):
            return None
        return token, repo, workflow, ref

    def notify(self, job_id: uuid.UUID) -> bool:
        """Return True if the workflow dispatch was accepted."""
        config = self._config()
        if config is None:
            logger.info("worker workflow not configured, skipping trigger for job %s", job_id)
            return False
        token, repo, workflow, ref = config
        url = f"{GITHUB_API_URL}/repos/{repo}/actions/workflows/{workflow}/dispatches"
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
        }
        client = self._client or httpx.Client(timeout=self._timeout)
        try:
            response = client.post(url, headers=headers, json={"ref": ref})
        except httpx.HTTPError as exc:
            logger.warning("worker trigger for job %s failed: %s", job_id, exc)
            return False
        finally:
            if self._client is None:
                client.close()
        if response.status_code >= 400:
            logger.warning(
                "worker trigger for job %s rejected (%d): %s", job_id, response.status_code, response.text[:200]
            )
            return False
        logger.info("worker workflow triggered for job %s", job_id)
        return True


class JobEnqueuer:
    def __init__(self, trigger: WorkerTrigger | None = None) -> None:
        self._trigger = trigger or WorkerTrigger()

    def enqueue(
        self,
        db: Session,
        session_id: uuid.UUID,
        drug_name: str,
        drug_data: dict[str, object] | None = None,
        user_id: uuid.UUID | None = None,
        model_type: str = "txagent",
    ) -> DocumentJob:
        """Insert a pending job, then notify the worker trigger."""
        name = clean_drug_name(drug_name)
        if not name:
            raise ValueError("drug_name must not be blank")
        job = job_store.enqueue(db, session_id, name, drug_data, user_id=user_id, model_type=model_type)
        try:
            self._trigger.notify(job.id)
        except Exception:
            logger.exception("worker trigger raised for job %s", job.id)
        return job
