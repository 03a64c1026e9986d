"""Chat service — one exchange with the shortage or document assistant."""

import logging
import time
import uuid
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.db import utcnow
from src.schemas.chat import ChatRequest, ChatResponse, StoredMessage
from src.services import conversations, documents
from src.services.generation import CHAT_TIMEOUT_SECONDS, generate_with_retry
from src.services.intent import MessageIntent, classify_message
from src.services.llm import AssistantType, ChatMessage, LLMBackend, get_backend
from src.services.prompts import build_edit_prompt, document_instructions, shortage_instructions

logger = logging.getLogger(__name__)


def _stored(role: str, content: str) -> dict[str, str]:
    return {
        "id": str(uuid.uuid4()),
        "role": role,
        "content": content,
        "timestamp": utcnow().isoformat() + "Z",
    }


class ChatService:
    def __init__(
        self,
        backend_factory: Callable[[str, str], LLMBackend] = get_backend,
        *,
        timeout: float = CHAT_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._backend_factory = backend_factory
        self._timeout = timeout
        self._sleep = sleep

    def send(self, session_id: uuid.UUID, request: ChatRequest, db: Session) -> ChatResponse:
        """Send *request* to the assistant, store both turns and return the reply.

        A message classified as an edit replaces the session document with the reply.
        LLM errors propagate; nothing is stored when the call fails.
        """
        assistant_type = request.assistant_type.value
        model_type = request.model_type.value
        conversation = conversations.get_conversation(db, session_id, assistant_type, model_type)
        stored = list(conversation.messages) if conversation else []
        history = [ChatMessage(role=m["role"], content=m["content"]) for m in stored]

        intent = classify_message(request.message, request.assistant_type, request.edit_mode)
        if request.assistant_type is AssistantType.SHORTAGE:
            instructions = shortage_instructions(request.drug_data, request.all_shortage_data)
        else:
            current = documents.get_document(db, session_id)
            instructions = document_instructions(request.drug_data, current.content if current else None)
        prompt = build_edit_prompt(request.message) if intent is MessageIntent.EDIT_DOCUMENT else request.message

        backend = self._backend_factory(model_type, assistant_type)
        logger.info("session %s: %s chat via %s (%s)", session_id, assistant_type, model_type, intent.value)
        reply = generate_with_retry(
            backend,
            history,
            prompt,
            self._timeout,
            instructions=instructions,
            sleep=self._sleep,
        )

        stored.append(_stored("user", request.message))
        stored.append(_stored("assistant", reply))
        conversations.save_conversation(db, session_id, assistant_type, model_type, stored)

        try:
            conversations.log_interaction(db, session_id, assistant_type, model_type, prompt, reply)
        except SQLAlchemyError:
            db.rollback()
            logger.warning("session %s: could not log interaction", session_id, exc_info=True)

        document_updated = False
        if intent is MessageIntent.EDIT_DOCUMENT:
            documents.save_document(db, session_id, reply)
            document_updated = True

        return ChatResponse(
            reply=reply,
            intent=intent,
            document_updated=document_updated,
            messages=[StoredMessage.model_validate(m) for m in stored],
        )
