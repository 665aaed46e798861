"""doctype.py
Rule-based document-type detection.

Rules are evaluated in a fixed order and the first match wins: URL evidence
outranks content evidence, and thesis signals outrank book/report signals.
"""

from __future__ import annotations

from src.common.entities import DocumentType

JOURNAL_URL_MARKERS = (
    "journal",
    "ijcai",
    "nips",
    "icml",
    "iclr",
    "arxiv.org",
    "scholar.google",
    "researchgate",
    "ieee.org",
)
THESIS_URL_MARKERS = ("thesis", "dissertation", "etd", "repository")

THESIS_TITLE_MARKERS = ("thesis", "dissertation", "master", "phd", "doctoral")
THESIS_TEXT_MARKERS = ("thesis", "dissertation", "supervisor", "committee")

BOOK_TITLE_MARKERS = ("handbook", "introduction to", "guide to", "textbook")
BOOK_TEXT_MARKERS = ("chapter", "isbn", "publisher", "edition")

REPORT_TITLE_MARKERS = ("report", "technical report", "white paper", "survey")
REPORT_TEXT_MARKERS = ("report", "findings", "recommendations")

JOURNAL_TEXT_MARKERS = (
    "abstract",
    "keywords",
    "introduction",
    "methodology",
    "results",
    "conclusion",
    "references",
    "doi",
    "published",
    "journal",
)


def _contains_any(haystack: str, needles: tuple[str, ...]) -> bool:
    return any(n in haystack for n in needles)


def detect_type(
    url: str | None = None,
    title: str | None = None,
    abstract: str | None = None,
    full_text: str | None = None,
) -> DocumentType:
    """Infer the document type from URL, title and body text."""
    if url:
        url_lower = url.lower()
        if _contains_any(url_lower, JOURNAL_URL_MARKERS):
            return DocumentType.JOURNAL
        if _contains_any(url_lower, THESIS_URL_MARKERS):
            return DocumentType.THESIS

    title_lower = (title or "").lower()
    text = " ".join((title or "", abstract or "", full_text or "")).lower()

    if _contains_any(title_lower, THESIS_TITLE_MARKERS) or _contains_any(text, THESIS_TEXT_MARKERS):
        return DocumentType.THESIS
    if _contains_any(title_lower, BOOK_TITLE_MARKERS) or _contains_any(text, BOOK_TEXT_MARKERS):
        return DocumentType.BOOK
    if _contains_any(title_lower, REPORT_TITLE_MARKERS) or _contains_any(text, REPORT_TEXT_MARKERS):
        return DocumentType.REPORT
    if _contains_any(text, JOURNAL_TEXT_MARKERS):
        return DocumentType.JOURNAL
    return DocumentType.JOURNAL
