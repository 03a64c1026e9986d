"""Pydantic schemas for chat endpoints."""

import uuid

from pydantic import Field

from src.schemas.common import CamelModel
from src.services.intent import MessageIntent
from src.services.llm import AssistantType, ModelType


class StoredMessage(CamelModel):
    id: str
    role: str  # user | assistant
    content: str
    timestamp: str


class ChatRequest(CamelModel):
    message: str = Field(min_length=1)
    assistant_type: AssistantType
    model_type: ModelType = ModelType.OPENAI
    edit_mode: bool = False
    drug_data: dict[str, object] | None = None
    all_shortage_data: list[dict[str, object]] | None = None


class ChatResponse(CamelModel):
    reply: str
    intent: MessageIntent
    document_updated: bool
    messages: list[StoredMessage]


class ConversationResponse(CamelModel):
    session_id: uuid.UUID
    assistant_type: AssistantType
    model_type: ModelType
    messages: list[StoredMessage]
