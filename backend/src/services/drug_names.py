"""Drug name clean-up for stored job input."""

import re

_WHITESPACE_RE = re.compile(r"\s+")


def clean_drug_name(drug_name: str) -> str:
    """Collapse whitespace but keep the caller's casing."""
    return _WHITESPACE_RE.sub(" ", drug_name).strip()
