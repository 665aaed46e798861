"""pdf_text.py
Helpers for (1) downloading PDF files with a size bound and (2) extracting
plain text and document metadata from PDF bytes using *PyMuPDF*.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

import fitz
import httpx

from src.common.errors import ParseError
from src.common.settings import Settings, settings as default_settings
from src.extraction.fetch import browser_headers, get_bytes_bounded

logger = logging.getLogger(__name__)

_HYPHENATED_BREAK = re.compile(r"(\w+)-\s*\n\s*(\w+)")
_BLANK_RUNS = re.compile(r"\n{3,}")
_JUNK_TITLES = re.compile(r"^(untitled|microsoft word\b|document\d*$|\s*$)", re.IGNORECASE)


@dataclass(frozen=True)
class PdfContent:
    """Text and metadata pulled out of one PDF."""

    text: str
    page_count: int
    meta_title: Optional[str] = None
    meta_author: Optional[str] = None

    def first_line(self) -> str:
        for line in self.text.splitlines():
            if line.strip():
                return line.strip()
        return ""

    def guess_title(self, fallback_name: str | None = None) -> str:
        """Metadata title when meaningful, else first text line, else *fallback_name*."""
        if self.meta_title and len(self.meta_title.strip()) > 3 and not _JUNK_TITLES.match(self.meta_title):
            return self.meta_title.strip()
        return self.first_line() or (fallback_name or "")


def clean_text(text: str) -> str:
    """Re-join words hyphenated across line breaks and squeeze blank runs."""
    text = text.replace("\x00", "")
    text = _HYPHENATED_BREAK.sub(r"\1\2", text)
    return _BLANK_RUNS.sub("\n\n", text).strip()


def parse_pdf(data: bytes | bytearray) -> PdfContent:
    """Extract text and metadata from PDF *data*.

    Raises:
        ParseError: If *data* is not a PDF or cannot be opened.
    """
    if not bytes(data[:1024]).lstrip().startswith(b"%PDF"):
        raise ParseError("Invalid PDF header - does not start with %PDF")

    try:
        with fitz.open(stream=bytes(data), filetype="pdf") as doc:
            texts: list[str] = []
            for page_number in range(doc.page_count):
                try:
                    page = doc.load_page(page_number)
                    texts.append(page.get_text("text"))
                except Exception as page_exc:  # pylint: disable=broad-except
                    logger.warning(
                        "Skipping page %d due to parsing error: %s",
                        page_number,
                        page_exc,
                    )
            metadata = doc.metadata or {}
            page_count = doc.page_count
    except Exception as exc:
        logger.error("Cannot parse PDF: %s", exc)
        raise ParseError(f"Cannot parse PDF: {exc}") from exc

    return PdfContent(
        text=clean_text("".join(texts)),
        page_count=page_count,
        meta_title=(metadata.get("title") or "").strip() or None,
        meta_author=(metadata.get("author") or "").strip() or None,
    )


def file_stem_from_url(url: str) -> str:
    name = PurePosixPath(unquote(urlparse(url).path)).stem
    return name.replace("_", " ").replace("-", " ").strip()


async def fetch_pdf(
    client: httpx.AsyncClient,
    url: str,
    settings: Settings | None = None,
) -> PdfContent:
    """Download *url* (bounded by ``max_pdf_bytes``) and parse it off the event loop."""
    settings = settings or default_settings
    data = await get_bytes_bounded(
        client,
        url,
        max_bytes=settings.max_pdf_bytes,
        headers=browser_headers(),
        timeout=settings.http_timeout,
        attempts=settings.download_retries,
    )
    return await asyncio.to_thread(parse_pdf, data)
