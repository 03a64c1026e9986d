"""DocumentJob ORM model — one row per document-generation request."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import JSON, Index, Integer, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db import Base, utcnow


class JobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentJob(Base):
    __tablename__ = "document_generation_jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    drug_name: Mapped[str] = mapped_column(Text, nullable=False)
    drug_data: Mapped[dict[str, object] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    model_type: Mapped[str] = mapped_column(Text, nullable=False, default="txagent")
    # status: pending | processing | completed | failed
    status: Mapped[str] = mapped_column(Text, nullable=False, default=JobStatus.PENDING.value)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Bumped by every claim; writes made under a claim must present the same token.
    claim_token: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Upstream handle (RunPod job id, OpenAI run id) while a generation is in flight.
    external_job_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (Index("idx_document_jobs_status_created", "status", "created_at"),)
