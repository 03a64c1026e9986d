"""Job store: queue operations on the document_generation_jobs table.

Every state change is a single conditional UPDATE. Claiming flips the oldest
eligible row to ``processing`` and bumps its ``claim_token``; every later write
made on behalf of that claim names the token and only lands while the row is
still ``processing`` under it. A worker that lost its job to the reclaimer
therefore cannot complete or fail it afterwards.
"""

import logging
import os
import uuid
from datetime import timedelta

from sqlalchemy import ColumnElement, and_, case, null, or_, select, update
from sqlalchemy.orm import Session, aliased

from src.db import utcnow
from src.models.job import DocumentJob, JobStatus

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = int(os.environ.get("MAX_ATTEMPTS", "3"))
STALE_AFTER = timedelta(minutes=int(os.environ.get("STALE_AFTER_MINUTES", "5")))
RESET_DUE_TO_TIMEOUT = "Reset due to timeout"
_MAX_ERROR_CHARS = 1000


class JobNotFoundError(Exception):
    """Raised when the requested job does not exist."""


def _eligible(entity: type[DocumentJob], cutoff: object) -> ColumnElement[bool]:
    return or_(
        entity.status == JobStatus.PENDING.value,
        and_(
            entity.status == JobStatus.PROCESSING.value,
            entity.updated_at < cutoff,
        ),
    )


def _held(job_id: uuid.UUID, claim_token: int) -> ColumnElement[bool]:
    return and_(
        DocumentJob.id == job_id,
        DocumentJob.status == JobStatus.PROCESSING.value,
        DocumentJob.claim_token == claim_token,
    )


def _truncate(message: str) -> str:
    return message if len(message) <= _MAX_ERROR_CHARS else message[: _MAX_ERROR_CHARS - 3] + "..."


def enqueue(
    db: Session,
    session_id: uuid.UUID,
    drug_name: str,
    drug_data: dict[str, object] | None = None,
    user_id: uuid.UUID | None = None,
    model_type: str = "txagent",
) -> DocumentJob:
    """Insert a new pending job and return it."""
    now = utcnow()
    job = DocumentJob(
        session_id=session_id,
        user_id=user_id,
        drug_name=drug_name,
        drug_data=drug_data,
        model_type=model_type,
        status=JobStatus.PENDING.value,
        attempts=0,
        claim_token=0,
        created_at=now,
        updated_at=now,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info("enqueued job %s for drug %r (session %s)", job.id, drug_name, session_id)
    return job


def _abandoned_attempt(max_attempts: int) -> dict[str, object]:
    """SET values that count the abandoned try of a stale ``processing`` row."""
    next_attempts = DocumentJob.attempts + 1
    return {
        "attempts": next_attempts,
        "status": case(
            (next_attempts >= max_attempts, JobStatus.FAILED.value),
            else_=JobStatus.PENDING.value,
        ),
        "error_message": RESET_DUE_TO_TIMEOUT,
        "external_job_id": None,
    }


def claim_next(
    db: Session,
    stale_after: timedelta = STALE_AFTER,
    max_attempts: int = MAX_ATTEMPTS,
) -> DocumentJob | None:
    """Atomically claim the oldest pending (or stale processing) job.

    Returns the claimed job with its new ``claim_token``, or None when there is
    nothing to do. Concurrent callers never receive the same claim: the row lock
    is taken with SKIP LOCKED and the eligibility check is repeated on the UPDATE.

    Taking over a stale row counts the abandoned try as an attempt. A stale row
    whose attempts are spent is marked ``failed`` instead and the search goes on.
    """
    while True:
        now = utcnow()
        cutoff = now - stale_after
        queued = aliased(DocumentJob)
        candidate = (
            select(queued.id)
            .where(_eligible(queued, cutoff))  # type: ignore[arg-type]
            .order_by(queued.created_at, queued.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        was_stale = DocumentJob.status == JobStatus.PROCESSING.value
        exhausted = and_(was_stale, DocumentJob.attempts + 1 >= max_attempts)
        stmt = (
            update(DocumentJob)
            .where(DocumentJob.id == candidate, _eligible(DocumentJob, cutoff))
            .values(
                status=case((exhausted, JobStatus.FAILED.value), else_=JobStatus.PROCESSING.value),
                attempts=case((was_stale, DocumentJob.attempts + 1), else_=DocumentJob.attempts),
                error_message=case((was_stale, RESET_DUE_TO_TIMEOUT), else_=DocumentJob.error_message),
                external_job_id=case((was_stale, null()), else_=DocumentJob.external_job_id),
                claim_token=DocumentJob.claim_token + 1,
                updated_at=now,
            )
            .returning(DocumentJob.id, DocumentJob.status)
            .execution_options(synchronize_session=False)
        )
        row = db.execute(stmt).one_or_none()
        db.commit()
        if row is None:
            return None
        if row.status == JobStatus.FAILED.value:
            logger.warning("stale job %s failed: attempts exhausted", row.id)
            continue
        job = db.get(DocumentJob, row.id, populate_existing=True)
        assert job is not None
        logger.info(
            "claimed job %s (drug %r, attempts=%d, token=%d)",
            job.id,
            job.drug_name,
            job.attempts,
            job.claim_token,
        )
        return job


def _update_held(db: Session, job_id: uuid.UUID, claim_token: int, **values: object) -> bool:
    stmt = (
        update(DocumentJob)
        .where(_held(job_id, claim_token))
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    held = result.rowcount == 1
    if not held:
        logger.warning("job %s: claim %d no longer held, update skipped", job_id, claim_token)
    return held


def heartbeat(db: Session, job_id: uuid.UUID, claim_token: int) -> bool:
    """Refresh ``updated_at`` for a held claim. False means the lease was lost."""
    return _update_held(db, job_id, claim_token)


def record_retry(db: Session, job_id: uuid.UUID, claim_token: int, error_message: str) -> bool:
    """Count a failed try that will be retried within the same claim."""
    return _update_held(
        db,
        job_id,
        claim_token,
        attempts=DocumentJob.attempts + 1,
        error_message=_truncate(error_message),
    )


def set_external_job_id(db: Session, job_id: uuid.UUID, claim_token: int, handle: str) -> bool:
    return _update_held(db, job_id, claim_token, external_job_id=handle)


def complete(db: Session, job_id: uuid.UUID, claim_token: int, result: str) -> bool:
    """Mark a held job completed with its generated document."""
    if not result or not result.strip():
        raise ValueError("cannot complete a job with an empty result")
    done = _update_held(
        db,
        job_id,
        claim_token,
        status=JobStatus.COMPLETED.value,
        result=result,
        error_message=None,
        external_job_id=None,
    )
    if done:
        logger.info("job %s completed (%d chars)", job_id, len(result))
    return done


def fail_or_retry(
    db: Session,
    job_id: uuid.UUID,
    claim_token: int,
    error_message: str,
    max_attempts: int = MAX_ATTEMPTS,
) -> JobStatus | None:
    """Record a failed attempt: back to pending, or failed once attempts are spent.

    Returns the new status, or None if the claim was no longer held.
    """
    next_attempts = DocumentJob.attempts + 1
    stmt = (
        update(DocumentJob)
        .where(_held(job_id, claim_token))
        .values(
            attempts=next_attempts,
            status=case(
                (next_attempts >= max_attempts, JobStatus.FAILED.value),
                else_=JobStatus.PENDING.value,
            ),
            error_message=_truncate(error_message),
            external_job_id=None,
            updated_at=utcnow(),
        )
        .returning(DocumentJob.status, DocumentJob.attempts)
        .execution_options(synchronize_session=False)
    )
    row = db.execute(stmt).one_or_none()
    db.commit()
    if row is None:
        logger.warning("job %s: claim %d no longer held, failure not recorded", job_id, claim_token)
        return None
    status = JobStatus(row.status)
    logger.info("job %s %s after %d attempt(s): %s", job_id, status.value, row.attempts, error_message)
    return status


def reclaim_stale(
    db: Session,
    older_than: timedelta = STALE_AFTER,
    max_attempts: int = MAX_ATTEMPTS,
) -> list[uuid.UUID]:
    """Return processing jobs untouched for longer than *older_than* to the queue.

    The abandoned try counts as an attempt, so a job that keeps killing its
    worker ends ``failed`` rather than cycling forever. Returns every swept id.
    """
    now = utcnow()
    stmt = (
        update(DocumentJob)
        .where(
            DocumentJob.status == JobStatus.PROCESSING.value,
            DocumentJob.updated_at < now - older_than,
        )
        .values(updated_at=now, **_abandoned_attempt(max_attempts))
        .returning(DocumentJob.id, DocumentJob.status)
        .execution_options(synchronize_session=False)
    )
    rows = db.execute(stmt).all()
    db.commit()
    for row in rows:
        if row.status == JobStatus.FAILED.value:
            logger.warning("stale job %s failed: attempts exhausted", row.id)
    return [row.id for row in rows]


def reset_job(db: Session, job_id: uuid.UUID) -> DocumentJob:
    """Operator reset: put *job_id* back to pending with a fresh attempt budget."""
    job = db.query(DocumentJob).filter(DocumentJob.id == job_id).first()
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    job.status = JobStatus.PENDING.value
    job.attempts = 0
    job.error_message = None
    job.result = None
    job.external_job_id = None
    job.updated_at = utcnow()
    db.commit()
    db.refresh(job)
    logger.info("job %s reset to pending by operator", job_id)
    return job


def get_job(db: Session, job_id: uuid.UUID) -> DocumentJob | None:
    return db.query(DocumentJob).filter(DocumentJob.id == job_id).first()


def latest_job_for_session(db: Session, session_id: uuid.UUID) -> DocumentJob | None:
    return (
        db.query(DocumentJob)
        .filter(DocumentJob.session_id == session_id)
        .order_by(DocumentJob.created_at.desc())
        .first()
    )
