"""Document worker — claims at most one job per invocation and drives it to a settled state.

Nothing raised while processing a claimed job escapes :meth:`DocumentWorker.process_next`:
every failure is turned into a ``fail_or_retry`` on the job row, so a job is
only ever left in ``processing`` if the process itself dies.
"""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy.orm import Session, sessionmaker

from src.models.job import JobStatus
from src.services import documents, job_store
from src.services.document_validation import DocumentValidationError, validate_document
from src.services.generation import DOCUMENT_TIMEOUT_SECONDS, generate_with_retry
from src.services.llm import AssistantType, ChatMessage, LLMBackend, TransientLLMError, get_backend
from src.services.prompts import build_corrective_prompt, build_document_prompt

logger = logging.getLogger(__name__)


class LeaseLostError(Exception):
    """Raised when the worker's claim on a job has been taken over."""


@dataclass
class WorkerResult:
    # idle | completed | retrying | failed | lost | error
    status: str
    message: str
    job_id: uuid.UUID | None = None


@dataclass
class _Claim:
    job_id: uuid.UUID
    token: int
    attempts: int
    session_id: uuid.UUID
    drug_name: str
    drug_data: dict[str, object] | None
    model_type: str


def _document_backend(model_type: str) -> LLMBackend:
    return get_backend(model_type, AssistantType.DOCUMENT)


def _short_message(exc: BaseException) -> str:
    text = str(exc).strip()
    return text if text else type(exc).__name__


class DocumentWorker:
    def __init__(
        self,
        backend_factory: Callable[[str], LLMBackend] = _document_backend,
        *,
        sleep: Callable[[float], None] = time.sleep,
        document_timeout: float = DOCUMENT_TIMEOUT_SECONDS,
        stale_after: timedelta = job_store.STALE_AFTER,
        max_attempts: int = job_store.MAX_ATTEMPTS,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._backend_factory = backend_factory
        self._sleep = sleep
        self._document_timeout = document_timeout
        self._stale_after = stale_after
        self._max_attempts = max_attempts
        self._today = today

    def process_next(self, db: Session) -> WorkerResult:
        """Claim the next job, generate its document and record the outcome."""
        try:
            job = job_store.claim_next(db, self._stale_after, self._max_attempts)
        except Exception as exc:
            logger.exception("could not claim a job")
            db.rollback()
            return WorkerResult(status="error", message=f"Could not claim a job: {_short_message(exc)}")
        if job is None:
            return WorkerResult(status="idle", message="No pending jobs")

        claim = _Claim(
            job_id=job.id,
            token=job.claim_token,
            attempts=job.attempts,
            session_id=job.session_id,
            drug_name=job.drug_name,
            drug_data=job.drug_data,
            model_type=job.model_type,
        )
        try:
            document = self._generate(db, claim)
            self._heartbeat(db, claim)
            documents.save_document(db, claim.session_id, document)
            if not job_store.complete(db, claim.job_id, claim.token, document):
                raise LeaseLostError(f"Job {claim.job_id} was reclaimed before it could be completed")
        except LeaseLostError as exc:
            db.rollback()
            logger.warning("job %s: %s", claim.job_id, exc)
            return WorkerResult(status="lost", message=str(exc), job_id=claim.job_id)
        except Exception as exc:
            db.rollback()
            logger.exception("job %s failed", claim.job_id)
            return self._record_failure(db, claim, _short_message(exc))

        return WorkerResult(
            status="completed",
            message=f"Job {claim.job_id} completed successfully",
            job_id=claim.job_id,
        )

    def _record_failure(self, db: Session, claim: _Claim, message: str) -> WorkerResult:
        try:
            status = job_store.fail_or_retry(db, claim.job_id, claim.token, message, self._max_attempts)
        except Exception:
            logger.exception("could not record failure for job %s", claim.job_id)
            db.rollback()
            return WorkerResult(status="error", message=f"Job {claim.job_id} failed: {message}", job_id=claim.job_id)
        if status is None:
            return WorkerResult(status="lost", message=f"Job {claim.job_id} was reclaimed", job_id=claim.job_id)
        if status is JobStatus.FAILED:
            return WorkerResult(status="failed", message=f"Job {claim.job_id} failed: {message}", job_id=claim.job_id)
        return WorkerResult(
            status="retrying",
            message=f"Job {claim.job_id} returned to queue: {message}",
            job_id=claim.job_id,
        )

    def _heartbeat(self, db: Session, claim: _Claim) -> None:
        if not job_store.heartbeat(db, claim.job_id, claim.token):
            raise LeaseLostError(f"Job {claim.job_id} is no longer held by this worker")

    def _generate(self, db: Session, claim: _Claim) -> str:
        backend = self._backend_factory(claim.model_type)
        prompt = build_document_prompt(claim.drug_name, claim.drug_data, self._today())
        handle_sessions = sessionmaker(bind=db.get_bind(), autocommit=False, autoflush=False)

        def on_submit(handle: str) -> None:
            # Runs on the LLM call thread, so it gets its own session.
            handle_db = handle_sessions()
            try:
                job_store.set_external_job_id(handle_db, claim.job_id, claim.token, handle)
            except Exception:
                logger.warning("job %s: could not record upstream handle %s", claim.job_id, handle, exc_info=True)
            finally:
                handle_db.close()

        def on_retry(exc: TransientLLMError, retry_index: int) -> bool:
            if claim.attempts + 1 >= self._max_attempts:
                return False
            if not job_store.record_retry(db, claim.job_id, claim.token, _short_message(exc)):
                raise LeaseLostError(f"Job {claim.job_id} was reclaimed during retry") from exc
            claim.attempts += 1
            return True

        logger.info("job %s: generating document for %r with %s", claim.job_id, claim.drug_name, claim.model_type)
        text = generate_with_retry(
            backend,
            [],
            prompt.user,
            self._document_timeout,
            instructions=prompt.system,
            on_submit=on_submit,
            max_tries=self._max_attempts,
            on_retry=on_retry,
            sleep=self._sleep,
        )

        validation = validate_document(text)
        if validation.ok:
            return text
        if not validation.truncated:
            raise DocumentValidationError("Generated document is invalid: " + "; ".join(validation.problems))

        logger.warning("job %s: document looks truncated (%s), asking again", claim.job_id, validation.problems)
        self._heartbeat(db, claim)
        history = [ChatMessage(role="user", content=prompt.user), ChatMessage(role="assistant", content=text)]
        text = generate_with_retry(
            backend,
            history,
            build_corrective_prompt(claim.drug_name, validation.problems),
            self._document_timeout,
            instructions=prompt.system,
            on_submit=on_submit,
            max_tries=1,
            sleep=self._sleep,
        )
        validation = validate_document(text)
        if not validation.ok:
            raise DocumentValidationError(
                "Generated document is invalid after corrective retry: " + "; ".join(validation.problems)
            )
        return text
