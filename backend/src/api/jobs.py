"""Document jobs API router."""

import logging
import os
import uuid

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from src.db import get_session
from src.schemas.common import ErrorResponse
from src.schemas.job import (
    JobCreatedResponse,
    JobCreateRequest,
    JobResetRequest,
    JobResetResponse,
    JobStatusResponse,
    ProcessResponse,
)
from src.services import job_store
from src.services.enqueuer import JobEnqueuer
from src.services.job_store import JobNotFoundError
from src.services.reclaimer import reclaim_stale_jobs
from src.services.worker import DocumentWorker

logger = logging.getLogger(__name__)

router = APIRouter()


def require_service_key(authorization: str | None = Header(default=None)) -> None:
    """Guard for worker/maintenance endpoints when SERVICE_API_KEY is configured."""
    expected = os.environ.get("SERVICE_API_KEY", "").strip()
    if not expected:
        return
    if authorization != f"Bearer {expected}":
        raise HTTPException(status_code=401, detail="Invalid service key")


def get_enqueuer() -> JobEnqueuer:
    return JobEnqueuer()


def get_worker() -> DocumentWorker:
    return DocumentWorker()


@router.post("", status_code=202)
def create_job(
    body: JobCreateRequest,
    db: Session = Depends(get_session),
    enqueuer: JobEnqueuer = Depends(get_enqueuer),
) -> JobCreatedResponse:
    try:
        job = enqueuer.enqueue(
            db,
            body.session_id,
            body.drug_name,
            body.drug_data,
            user_id=body.user_id,
            model_type=body.model_type.value,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return JobCreatedResponse(job_id=job.id, status=job.status)


@router.post("/process", dependencies=[Depends(require_service_key)], response_model=None)
def process_next_job(
    db: Session = Depends(get_session),
    worker: DocumentWorker = Depends(get_worker),
) -> ProcessResponse | JSONResponse:
    """Process at most one job. Safe to call with no body and to call repeatedly."""
    result = worker.process_next(db)
    if result.status == "error":
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(error=result.message, detail=result.status).model_dump(),
        )
    return ProcessResponse(message=result.message, status=result.status, job_id=result.job_id)


@router.post("/reset", dependencies=[Depends(require_service_key)])
def reset_jobs(
    body: JobResetRequest,
    db: Session = Depends(get_session),
) -> JobResetResponse:
    if body.job_id is not None:
        try:
            job = job_store.reset_job(db, body.job_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return JobResetResponse(success=True, message=f"Job {job.id} reset to pending", job_ids=[job.id])
    if body.reset_all_stale:
        result = reclaim_stale_jobs(db, body.older_than_minutes)
        return JobResetResponse(
            success=True,
            message=f"Reset {result.count} stale job(s)",
            job_ids=result.job_ids,
        )
    raise HTTPException(status_code=400, detail="Provide jobId or resetAllStale: true")


@router.get("/{job_id}")
def get_job(job_id: uuid.UUID, db: Session = Depends(get_session)) -> JobStatusResponse:
    job = job_store.get_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse.from_job(job)
