"""readers.py
Apply a :class:`SelectorProfile` to a parsed document.

Two readers expose the same small interface: :class:`SoupReader` over a
BeautifulSoup tree (static pages) and :class:`PageReader` over a live
Playwright page (rendered pages).  :func:`read_profile` walks the selector
cascades and builds a :class:`RawExtraction`.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Protocol
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError, Page
from soupsieve import SelectorSyntaxError

from src.common.entities import RawExtraction, coerce_year
from src.common.errors import ParseError
from src.extraction.profiles import SelectorProfile, split_selector

logger = logging.getLogger(__name__)

_YEAR = re.compile(r"\b(1\d{3}|2\d{3}|3000)\b")
_AUTHOR_SPLIT = re.compile(r",\s*|;\s*|\s+and\s+|\s*&\s*")
_NOT_AUTHOR = re.compile(r"^(pp?\.|vol\.|no\.|in\s|proc|ieee|acm|\d+)", re.IGNORECASE)
_SPACES = re.compile(r"\s+")

# Element text is read for at most this many matches per selector.
MAX_MATCHES = 50


class DocumentReader(Protocol):
    async def values(self, css: str, attr: Optional[str]) -> list[str]: ...

    async def body_text(self) -> str: ...


class SoupReader:
    """Reader over static HTML."""

    def __init__(self, soup: BeautifulSoup) -> None:
        self._soup = soup

    @classmethod
    def from_html(cls, html: str) -> "SoupReader":
        return cls(BeautifulSoup(html, "html.parser"))

    async def values(self, css: str, attr: Optional[str]) -> list[str]:
        try:
            matches = self._soup.select(css, limit=MAX_MATCHES)
        except SelectorSyntaxError as exc:
            raise ParseError(f"Invalid selector '{css}': {exc}") from exc
        out: list[str] = []
        for el in matches:
            raw = el.get(attr) if attr else el.get_text(" ", strip=True)
            if isinstance(raw, list):
                raw = " ".join(raw)
            if raw:
                out.append(str(raw))
        return out

    async def body_text(self) -> str:
        root = self._soup.body or self._soup
        return root.get_text(" ", strip=True)


class PageReader:
    """Reader over a rendered Playwright page."""

    def __init__(self, page: Page, element_timeout_ms: int = 5_000) -> None:
        self._page = page
        self._timeout = element_timeout_ms

    async def values(self, css: str, attr: Optional[str]) -> list[str]:
        out: list[str] = []
        try:
            locator = self._page.locator(css)
            count = min(await locator.count(), MAX_MATCHES)
            for i in range(count):
                el = locator.nth(i)
                if attr:
                    raw = await el.get_attribute(attr, timeout=self._timeout)
                else:
                    raw = await el.inner_text(timeout=self._timeout)
                    if not raw:
                        raw = await el.text_content(timeout=self._timeout)
                if raw:
                    out.append(raw)
        except PlaywrightError as exc:
            raise ParseError(f"Reading '{css}' failed: {exc}") from exc
        return out

    async def body_text(self) -> str:
        try:
            return await self._page.inner_text("body", timeout=self._timeout)
        except PlaywrightError as exc:
            raise ParseError(f"Reading page body failed: {exc}") from exc


def squeeze(text: str) -> str:
    return _SPACES.sub(" ", text).strip()


def strip_prefixes(text: str, prefixes: list[str]) -> str:
    for prefix in prefixes:
        if text.lower().startswith(prefix.lower()):
            return text[len(prefix):].strip()
    return text


def find_year(text: str) -> Optional[int]:
    for m in _YEAR.finditer(text):
        year = coerce_year(m.group(1))
        if year is not None:
            return year
    return None


def split_authors(raw: str | None, cutoff: str | None = None) -> list[str]:
    """Split a free-text author line into names.

    *cutoff* is a regex; anything after its first match is dropped
    (e.g. Google Scholar's ``"A Smith, B Jones - Journal, 2020"``).
    """
    if not raw:
        return []
    if cutoff:
        raw = re.split(cutoff, raw, maxsplit=1)[0]
    names = [squeeze(p) for p in _AUTHOR_SPLIT.split(raw)]
    return [n for n in names if len(n) > 1 and not _NOT_AUTHOR.match(n)]


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        key = item.lower()
        if key not in seen:
            seen.add(key)
            out.append(item)
    return out


async def _first_values(reader: DocumentReader, selectors: list[str]) -> list[str]:
    """Values of the first selector in *selectors* that matches anything.

    A failing selector does not stop the cascade; if every selector fails the
    last :class:`ParseError` is raised.
    """
    last_error: Optional[ParseError] = None
    for selector in selectors:
        css, attr = split_selector(selector)
        try:
            values = [squeeze(v) for v in await reader.values(css, attr)]
        except ParseError as exc:
            last_error = exc
            continue
        values = [v for v in values if v]
        if values:
            return values
    if last_error is not None:
        raise last_error
    return []


async def read_profile(
    reader: DocumentReader,
    profile: SelectorProfile,
    page_url: str,
    text_limit: int = 5000,
) -> RawExtraction:
    """Build a :class:`RawExtraction` from *reader* using *profile*.

    Only the title is mandatory; a failure reading it raises
    :class:`ParseError`.  Failures on optional fields are recorded in
    ``RawExtraction.unavailable``.
    """
    raw = RawExtraction()
    titles = await _first_values(reader, profile.title)
    raw.title = strip_prefixes(titles[0], profile.strip_prefixes) if titles else ""

    try:
        author_values = await _first_values(reader, profile.authors)
        if len(author_values) == 1:
            raw.authors = split_authors(author_values[0], profile.author_cutoff)
        else:
            raw.authors = _dedupe(author_values)
    except ParseError as exc:
        raw.unavailable["authors"] = str(exc)

    try:
        abstracts = await _first_values(reader, profile.abstract)
        if abstracts:
            raw.abstract = strip_prefixes(abstracts[0], profile.strip_prefixes) or None
    except ParseError as exc:
        raw.unavailable["abstract"] = str(exc)

    try:
        for value in await _first_values(reader, profile.year):
            raw.publication_year = find_year(value)
            if raw.publication_year is not None:
                break
    except ParseError as exc:
        raw.unavailable["publication_year"] = str(exc)

    try:
        links = await _first_values(reader, profile.pdf_link)
        if links:
            link = urljoin(page_url, links[0])
            if urlparse(link).scheme in {"http", "https"}:
                raw.pdf_link = link
    except ParseError as exc:
        raw.unavailable["pdf_link"] = str(exc)

    try:
        contents = await _first_values(reader, profile.content)
        if contents:
            raw.full_text = contents[0]
        elif profile.body_fallback:
            raw.full_text = (await reader.body_text())[:text_limit] or None
    except ParseError as exc:
        raw.unavailable["full_text"] = str(exc)

    if raw.unavailable:
        logger.warning(
            "Partial extraction from %s; unavailable: %s",
            page_url,
            ", ".join(sorted(raw.unavailable)),
        )
    return raw
