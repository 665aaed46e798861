"""URL → raw extraction → classification → reference record.

Workflow
---------
1. Validate the URL (``http``/``https`` with a host).
2. Select the adapter for the URL shape and run it under the adapter's deadline.
3. If the source exposed a PDF link but no full text, try to pull the PDF text
   (best effort; failures are logged and ignored).
4. Classify discipline and extract keywords from full text, else abstract,
   else title; detect the document type unless the caller supplied one.
5. Assemble an unsaved :class:`ReferenceRecord`.  Persisting it is the
   caller's job.

Any adapter failure surfaces as a single :class:`ExtractionError`; no partial
record is returned.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

import httpx

from src.classification.discipline import DisciplineModel
from src.classification.doctype import detect_type
from src.classification.keywords import extract_keywords
from src.common.entities import (
    ClassificationResult,
    DocumentType,
    ExtractionMetadata,
    RawExtraction,
    ReferenceRecord,
    ReferenceSource,
)
from src.common.errors import (
    ExtractionError,
    FetchError,
    InvalidInputError,
    OperationTimeoutError,
    ParseError,
    PipelineError,
)
from src.common.settings import Settings, settings as default_settings
from src.extraction.adapters import SourceAdapter
from src.extraction.dispatch import AdapterRegistry
from src.extraction.pdf_text import fetch_pdf

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset({"http", "https"})


def validate_url(url: str | None) -> str:
    """Return the stripped *url* or raise :class:`InvalidInputError`."""
    if not url or not url.strip():
        raise InvalidInputError("URL is required")
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme.lower() not in _ALLOWED_SCHEMES or not parsed.hostname or " " in url:
        raise InvalidInputError(f"Invalid URL format: {url!r}")
    return url


def parse_document_type(value: str | DocumentType | None) -> Optional[DocumentType]:
    if value is None or value == "":
        return None
    try:
        return DocumentType(value)
    except ValueError as exc:
        allowed = ", ".join(t.value for t in DocumentType)
        raise InvalidInputError(f"Unknown document type {value!r} (expected one of {allowed})") from exc


def classify_content(
    model: DisciplineModel,
    *,
    title: str,
    abstract: str | None = None,
    full_text: str | None = None,
    url: str | None = None,
    type_hint: DocumentType | None = None,
) -> ClassificationResult:
    """Discipline, keywords and document type for one document."""
    text = full_text or abstract or title
    best = model.classify(text)
    return ClassificationResult(
        discipline=best.label,
        confidence=best.confidence,
        keywords=extract_keywords(text),
        document_type=type_hint or detect_type(url, title, abstract, full_text),
    )


class ExtractionOrchestrator:
    """Runs one URL through adapter selection, extraction and classification.

    Holds no per-request state, so a single instance serves concurrent
    requests; the shared :class:`DisciplineModel` is read-only.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        model: DisciplineModel,
        client: httpx.AsyncClient,
        settings: Settings | None = None,
    ) -> None:
        self._registry = registry
        self._model = model
        self._client = client
        self._settings = settings or default_settings

    async def extract_and_classify(
        self, url: str, type_hint: str | DocumentType | None = None
    ) -> ReferenceRecord:
        url = validate_url(url)
        doc_type = parse_document_type(type_hint)

        adapter = self._registry.select(url)
        logger.info("Extracting %s with %s", url, adapter.name)
        raw = await self._run_adapter(adapter, url)

        title = raw.title.strip()
        if not title:
            raise ExtractionError(
                f"Could not extract a title from {url}", url=url, reason="content"
            )

        if raw.pdf_link and not raw.full_text:
            raw.full_text = await self._pdf_text_or_none(raw.pdf_link)

        result = classify_content(
            self._model,
            title=title,
            abstract=raw.abstract,
            full_text=raw.full_text,
            url=url,
            type_hint=doc_type,
        )
        return self._assemble(url, adapter, raw, result)

    async def _run_adapter(self, adapter: SourceAdapter, url: str) -> RawExtraction:
        try:
            return await asyncio.wait_for(adapter.extract(url), timeout=adapter.timeout)
        except (OperationTimeoutError, asyncio.TimeoutError) as exc:
            logger.error("Extraction of %s timed out: %s", url, exc)
            raise ExtractionError(
                f"Timed out extracting {url}", url=url, reason="timeout", cause=exc
            ) from exc
        except (FetchError, ParseError) as exc:
            logger.error("Extraction of %s failed: %s", url, exc)
            raise ExtractionError(
                f"Failed to extract content from {url}: {exc}", url=url, cause=exc
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected failure extracting %s", url)
            raise ExtractionError(
                f"Internal error extracting {url}: {exc}", url=url, reason="internal", cause=exc
            ) from exc

    async def _pdf_text_or_none(self, pdf_url: str) -> Optional[str]:
        try:
            content = await asyncio.wait_for(
                fetch_pdf(self._client, pdf_url, self._settings),
                timeout=self._settings.pdf_timeout,
            )
        except (PipelineError, asyncio.TimeoutError) as exc:
            logger.warning("Could not extract PDF content from %s: %s", pdf_url, exc)
            return None
        return content.text or None

    @staticmethod
    def _assemble(
        url: str,
        adapter: SourceAdapter,
        raw: RawExtraction,
        result: ClassificationResult,
    ) -> ReferenceRecord:
        return ReferenceRecord(
            title=raw.title.strip(),
            authors=raw.authors,
            abstract=raw.abstract or "",
            full_text=raw.full_text,
            url=url,
            type=result.document_type,
            discipline=result.discipline,
            keywords=result.keywords,
            publication_year=raw.publication_year,
            pdf_link=raw.pdf_link,
            source=ReferenceSource.URL_EXTRACTION,
            extraction_metadata=ExtractionMetadata(
                source_url=url,
                extracted_at=datetime.now(timezone.utc),
                extraction_method=adapter.name,
                confidence=result.confidence,
            ),
        )
