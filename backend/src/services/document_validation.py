"""Structural checks on a generated shortage-response document."""

import re
from dataclasses import dataclass, field

from src.services.prompts import DOCUMENT_TITLE, REQUIRED_SECTIONS

MIN_HEADERS = 3

_HEADER_RE = re.compile(r"^\s{0,3}#{1,6}\s+\S", re.MULTILINE)
# Endings that mean the model finished its last sentence or block.
_TERMINAL_CHARS = (".", "!", "?", ")", "*", "_", "`", "|", ":", '"', "'")


class DocumentValidationError(Exception):
    """Raised when a generated document fails validation after the corrective retry."""


@dataclass
class DocumentValidation:
    ok: bool
    problems: list[str] = field(default_factory=list)
    truncated: bool = False


def count_headers(text: str) -> int:
    return len(_HEADER_RE.findall(text))


def _looks_truncated(text: str) -> bool:
    stripped = text.rstrip()
    if not stripped:
        return True
    last_section = REQUIRED_SECTIONS[-1].lower()
    if last_section not in stripped.lower():
        return True
    return not stripped.endswith(_TERMINAL_CHARS)


def validate_document(text: str | None) -> DocumentValidation:
    """Check *text* for content, headers and the expected title.

    ``truncated`` is reported independently of ``ok`` so the caller can decide
    whether a corrective retry is worthwhile.
    """
    if not text or not text.strip():
        return DocumentValidation(ok=False, problems=["document is empty"], truncated=True)

    problems: list[str] = []
    headers = count_headers(text)
    if headers < MIN_HEADERS:
        problems.append(f"found {headers} markdown header(s), need at least {MIN_HEADERS}")
    if DOCUMENT_TITLE.lower() not in text.lower():
        problems.append(f'missing title "{DOCUMENT_TITLE}"')
    return DocumentValidation(ok=not problems, problems=problems, truncated=_looks_truncated(text))
