"""text.py
Text normalisation shared by keyword extraction and discipline classification.
"""

from __future__ import annotations

import re

_NON_WORD = re.compile(r"[^\w\s]+")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str | None) -> str:
    """Lower-case *text*, turn punctuation into spaces and collapse whitespace.

    Pure and idempotent; empty or whitespace-only input yields ``""``.
    """
    if not text:
        return ""
    text = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def tokenize(text: str | None) -> list[str]:
    """Split normalised *text* on whitespace."""
    normalized = normalize(text)
    return normalized.split(" ") if normalized else []
