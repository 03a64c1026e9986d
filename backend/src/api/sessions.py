"""Per-session API router: latest job, chat threads and the working document."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from src.db import get_session
from src.schemas.chat import ChatRequest, ChatResponse, ConversationResponse, StoredMessage
from src.schemas.document import DocumentResponse, DocumentUpdateRequest
from src.schemas.job import JobStatusResponse
from src.services import conversations, documents, job_store
from src.services.chat import ChatService
from src.services.llm import AssistantType, GenerationTimeout, LLMError, ModelType

logger = logging.getLogger(__name__)

router = APIRouter()


def get_chat_service() -> ChatService:
    return ChatService()


@router.get("/{session_id}/jobs/latest")
def latest_job(session_id: uuid.UUID, db: Session = Depends(get_session)) -> JobStatusResponse:
    job = job_store.latest_job_for_session(db, session_id)
    if job is None:
        raise HTTPException(status_code=404, detail="No jobs for this session")
    return JobStatusResponse.from_job(job)


@router.post("/{session_id}/chat")
def chat(
    session_id: uuid.UUID,
    body: ChatRequest,
    db: Session = Depends(get_session),
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    try:
        return service.send(session_id, body, db)
    except GenerationTimeout as exc:
        raise HTTPException(status_code=504, detail="The assistant took too long to respond. Please try again.") from exc
    except LLMError as exc:
        logger.warning("session %s: chat failed: %s", session_id, exc)
        raise HTTPException(status_code=502, detail="The assistant is unavailable. Please try again.") from exc


@router.get("/{session_id}/conversations/{assistant_type}")
def get_conversation(
    session_id: uuid.UUID,
    assistant_type: AssistantType,
    model_type: ModelType = ModelType.OPENAI,
    db: Session = Depends(get_session),
) -> ConversationResponse:
    conversation = conversations.get_conversation(db, session_id, assistant_type.value, model_type.value)
    messages = conversation.messages if conversation else []
    return ConversationResponse(
        session_id=session_id,
        assistant_type=assistant_type,
        model_type=model_type,
        messages=[StoredMessage.model_validate(m) for m in messages],
    )


@router.get("/{session_id}/document")
def get_document(session_id: uuid.UUID, db: Session = Depends(get_session)) -> DocumentResponse:
    document = documents.get_document(db, session_id)
    if document is None:
        return DocumentResponse(session_id=session_id, content="")
    return DocumentResponse(session_id=session_id, content=document.content, updated_at=document.updated_at)


@router.put("/{session_id}/document")
def put_document(
    session_id: uuid.UUID,
    body: DocumentUpdateRequest,
    db: Session = Depends(get_session),
) -> DocumentResponse:
    document = documents.save_document(db, session_id, body.content)
    return DocumentResponse(session_id=session_id, content=document.content, updated_at=document.updated_at)
