"""Stored chat threads, keyed by session, assistant type and model type."""

import uuid

from sqlalchemy.orm import Session

from src.db import utcnow
from src.models.conversation import AIConversation
from src.models.interaction import AIInteraction


def get_conversation(
    db: Session, session_id: uuid.UUID, assistant_type: str, model_type: str
) -> AIConversation | None:
    return (
        db.query(AIConversation)
        .filter(
            AIConversation.session_id == session_id,
            AIConversation.assistant_type == assistant_type,
            AIConversation.model_type == model_type,
        )
        .first()
    )


def save_conversation(
    db: Session,
    session_id: uuid.UUID,
    assistant_type: str,
    model_type: str,
    messages: list[dict[str, str]],
) -> AIConversation:
    """Create or replace the stored messages for one thread."""
    now = utcnow()
    conversation = get_conversation(db, session_id, assistant_type, model_type)
    if conversation is None:
        conversation = AIConversation(
            session_id=session_id,
            assistant_type=assistant_type,
            model_type=model_type,
            messages=messages,
            created_at=now,
            updated_at=now,
        )
        db.add(conversation)
    else:
        # Reassign so the JSON column is flagged dirty.
        conversation.messages = list(messages)
        conversation.updated_at = now
    db.commit()
    db.refresh(conversation)
    return conversation


def log_interaction(
    db: Session,
    session_id: uuid.UUID,
    assistant_type: str,
    model_type: str,
    prompt: str,
    response: str,
) -> AIInteraction:
    interaction = AIInteraction(
        session_id=session_id,
        assistant_type=assistant_type,
        model_type=model_type,
        prompt=prompt,
        response=response,
        created_at=utcnow(),
    )
    db.add(interaction)
    db.commit()
    return interaction
