"""Pydantic schemas for session document endpoints."""

import uuid
from datetime import datetime

from src.schemas.common import CamelModel


class DocumentUpdateRequest(CamelModel):
    content: str


class DocumentResponse(CamelModel):
    session_id: uuid.UUID
    content: str
    updated_at: datetime | None = None
