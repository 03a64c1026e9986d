"""Decides whether a chat message asks for a document edit."""

import re
from enum import StrEnum

from src.services.llm import AssistantType


class MessageIntent(StrEnum):
    QUESTION = "question"
    EDIT_DOCUMENT = "edit_document"


_EDIT_WORDS = ("edit", "update", "change", "modify", "remove", "add", "revise", "rewrite")
_EDIT_RE = re.compile(r"\b(?:" + "|".join(_EDIT_WORDS) + r")\b", re.IGNORECASE)


def classify_message(text: str, assistant_type: AssistantType | str, edit_mode: bool = False) -> MessageIntent:
    """Keyword classifier. Only the document assistant ever edits."""
    if AssistantType(assistant_type) is not AssistantType.DOCUMENT:
        return MessageIntent.QUESTION
    if edit_mode or _EDIT_RE.search(text):
        return MessageIntent.EDIT_DOCUMENT
    return MessageIntent.QUESTION
