"""Session document persistence — one markdown document per session."""

import logging
import uuid

from sqlalchemy.orm import Session

from src.db import utcnow
from src.models.document import SessionDocument

logger = logging.getLogger(__name__)


def get_document(db: Session, session_id: uuid.UUID) -> SessionDocument | None:
    return db.query(SessionDocument).filter(SessionDocument.session_id == session_id).first()


def save_document(db: Session, session_id: uuid.UUID, content: str) -> SessionDocument:
    """Create or replace the document for *session_id*."""
    now = utcnow()
    document = get_document(db, session_id)
    if document is None:
        document = SessionDocument(session_id=session_id, content=content, created_at=now, updated_at=now)
        db.add(document)
    else:
        document.content = content
        document.updated_at = now
    db.commit()
    db.refresh(document)
    logger.info("saved document for session %s (%d chars)", session_id, len(content))
    return document
