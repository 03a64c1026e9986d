"""Pydantic schemas for document job endpoints."""

import uuid
from datetime import datetime

from pydantic import Field

from src.models.job import DocumentJob, JobStatus
from src.schemas.common import CamelModel
from src.services.llm import ModelType

FAILED_JOB_MESSAGE = "Document generation failed. Please retry."


class JobCreateRequest(CamelModel):
    session_id: uuid.UUID
    drug_name: str = Field(min_length=1)
    drug_data: dict[str, object] | None = None
    user_id: uuid.UUID | None = None
    model_type: ModelType = ModelType.TXAGENT


class JobCreatedResponse(CamelModel):
    job_id: uuid.UUID
    status: JobStatus


class JobStatusResponse(CamelModel):
    id: uuid.UUID
    session_id: uuid.UUID
    drug_name: str
    status: JobStatus
    result: str | None = None
    message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_job(cls, job: DocumentJob) -> "JobStatusResponse":
        """Public view of a job: internal error text and attempt counts stay hidden."""
        status = JobStatus(job.status)
        return cls(
            id=job.id,
            session_id=job.session_id,
            drug_name=job.drug_name,
            status=status,
            result=job.result if status is JobStatus.COMPLETED else None,
            message=FAILED_JOB_MESSAGE if status is JobStatus.FAILED else None,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class ProcessResponse(CamelModel):
    message: str
    status: str
    job_id: uuid.UUID | None = None


class JobResetRequest(CamelModel):
    job_id: uuid.UUID | None = None
    reset_all_stale: bool = False
    older_than_minutes: float = Field(default=5, gt=0)


class JobResetResponse(CamelModel):
    success: bool
    message: str
    job_ids: list[uuid.UUID]
