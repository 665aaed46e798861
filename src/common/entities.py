"""entities.py
Shared type definitions used across the extraction pipeline and the stores.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

MIN_YEAR = 1000
MAX_YEAR = 3000


class DocumentType(str, Enum):
    JOURNAL = "journal"
    THESIS = "thesis"
    BOOK = "book"
    REPORT = "report"


class ReferenceSource(str, Enum):
    MANUAL = "manual"
    URL_EXTRACTION = "url_extraction"
    PDF_UPLOAD = "pdf_upload"
    DOI_LOOKUP = "doi_lookup"


def coerce_year(value: object) -> Optional[int]:
    """Return *value* as a year in [1000, 3000], or ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        year = int(value)
    except (TypeError, ValueError):
        return None
    return year if MIN_YEAR <= year <= MAX_YEAR else None


class RawExtraction(BaseModel):
    """Output of one adapter invocation, before classification.

    ``None`` / empty means the source simply did not carry the field;
    ``unavailable`` maps a field name to the reason it could not be read.
    """

    title: str = ""
    authors: list[str] = Field(default_factory=list)
    abstract: Optional[str] = None
    full_text: Optional[str] = None
    pdf_link: Optional[str] = None
    publication_year: Optional[int] = None
    unavailable: dict[str, str] = Field(default_factory=dict)

    @field_validator("publication_year", mode="before")
    @classmethod
    def _bounded_year(cls, value: object) -> Optional[int]:
        return coerce_year(value)


class ClassificationResult(BaseModel):
    discipline: str = "General"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    keywords: list[str] = Field(default_factory=list)
    document_type: DocumentType = DocumentType.JOURNAL


class ExtractionMetadata(BaseModel):
    """Provenance of an automatically extracted record."""

    source_url: Optional[str] = None
    extracted_at: Optional[datetime] = None
    extraction_method: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class ReferenceRecord(BaseModel):
    """Canonical schema for stored references.

    ``id``, ``created_at`` and ``updated_at`` are assigned by the store.
    """

    id: Optional[str] = None
    title: str = Field(..., min_length=1)
    authors: list[str] = Field(default_factory=list)
    abstract: str = ""
    full_text: Optional[str] = None
    url: Optional[str] = None
    type: DocumentType = DocumentType.JOURNAL
    discipline: str = "General"
    keywords: list[str] = Field(default_factory=list)
    publication_year: Optional[int] = None
    journal: Optional[str] = None
    doi: Optional[str] = None
    pdf_link: Optional[str] = None
    pdf_path: Optional[str] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    bookmarked: bool = False
    tags: list[str] = Field(default_factory=list)
    source: ReferenceSource = ReferenceSource.URL_EXTRACTION
    extraction_metadata: Optional[ExtractionMetadata] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("publication_year", mode="before")
    @classmethod
    def _bounded_year(cls, value: object) -> Optional[int]:
        return coerce_year(value)

    @model_validator(mode="after")
    def _timestamps_ordered(self) -> "ReferenceRecord":
        if self.created_at and self.updated_at and self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        return self
