"""keywords.py
Frequency-ranked keyword extraction over normalised text.
"""

from __future__ import annotations

import re
from collections import Counter

from src.classification.text import tokenize

MAX_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 4

_ALPHA = re.compile(r"[a-z]+")

STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "can", "this", "that", "these",
        "those", "i", "me", "my", "mine", "we", "us", "our", "ours", "you",
        "your", "yours", "he", "him", "his", "she", "her", "hers", "it", "its",
        "they", "them", "their", "theirs",
    }
)


def is_keyword_candidate(token: str) -> bool:
    return (
        len(token) >= MIN_KEYWORD_LENGTH
        and _ALPHA.fullmatch(token) is not None
        and token not in STOP_WORDS
    )


def extract_keywords(text: str | None, limit: int = MAX_KEYWORDS) -> list[str]:
    """Return up to *limit* keywords, most frequent first.

    Ties keep the order in which the tokens first appear in *text*.
    """
    candidates = [t for t in tokenize(text) if is_keyword_candidate(t)]
    if not candidates:
        return []

    # Counter preserves insertion order and sorted() is stable, so equal counts
    # stay in first-occurrence order.
    counts = Counter(candidates)
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [word for word, _ in ranked[:limit]]
