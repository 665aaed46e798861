"""upload.py
Ingestion of user-uploaded PDF files.

The uploaded bytes are written to ``upload_dir`` before parsing; if anything
after that point fails, the file is removed so no orphan is left behind.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Optional

from src.classification.discipline import DisciplineModel
from src.common.entities import ReferenceRecord, ReferenceSource
from src.common.errors import ExtractionError, InvalidInputError, ParseError
from src.common.settings import Settings, settings as default_settings
from src.extraction.orchestrator import classify_content, parse_document_type
from src.extraction.pdf_text import parse_pdf
from src.extraction.readers import split_authors
from src.storage.base import ReferenceStore

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


class PdfUploadIngestor:
    """Parse, classify and store an uploaded PDF."""

    def __init__(
        self,
        store: ReferenceStore,
        model: DisciplineModel,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._model = model
        self._settings = settings or default_settings

    def _validate(self, data: bytes, content_type: str | None) -> None:
        mime = (content_type or "").split(";")[0].strip().lower()
        if mime != PDF_CONTENT_TYPE:
            raise InvalidInputError("Only PDF files are allowed")
        if not data:
            raise InvalidInputError("No PDF file uploaded")
        limit = self._settings.max_pdf_bytes
        if len(data) > limit:
            raise InvalidInputError(
                f"File too large. Maximum size is {limit // (1024 * 1024)}MB."
            )

    def _write(self, data: bytes, filename: str) -> Path:
        upload_dir = Path(self._settings.upload_dir)
        upload_dir.mkdir(parents=True, exist_ok=True)
        suffix = Path(filename).suffix.lower() or ".pdf"
        path = upload_dir / f"pdf-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{suffix}"
        path.write_bytes(data)
        return path

    async def ingest(
        self,
        data: bytes,
        filename: str,
        content_type: str | None,
        *,
        title: Optional[str] = None,
        authors: Optional[str] = None,
        type_hint: Optional[str] = None,
        discipline: Optional[str] = None,
    ) -> ReferenceRecord:
        """Store *data* as a new ``pdf_upload`` reference.

        Raises:
            InvalidInputError: Wrong content type, empty or oversized payload,
                unknown ``type_hint``.  Nothing is written in that case.
            ExtractionError: The PDF could not be parsed.
        """
        self._validate(data, content_type)
        doc_type = parse_document_type(type_hint)

        path = self._write(data, filename)
        try:
            try:
                content = await asyncio.to_thread(parse_pdf, data)
            except ParseError as exc:
                raise ExtractionError(
                    f"Could not read uploaded PDF '{filename}': {exc}", cause=exc
                ) from exc

            final_title = (
                (title or "").strip()
                or content.first_line()
                or Path(filename).stem
            )
            result = classify_content(
                self._model,
                title=final_title,
                full_text=content.text or None,
                type_hint=doc_type,
            )
            record = ReferenceRecord(
                title=final_title,
                authors=split_authors(authors) if authors else [],
                full_text=content.text or None,
                type=result.document_type,
                discipline=discipline or result.discipline,
                keywords=result.keywords,
                pdf_path=str(path),
                source=ReferenceSource.PDF_UPLOAD,
            )
            return await asyncio.to_thread(self._store.save, record)
        except BaseException:
            path.unlink(missing_ok=True)
            logger.warning("Upload of '%s' failed; removed %s", filename, path)
            raise
