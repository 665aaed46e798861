"""adapters.py
Source adapters: one extraction strategy per recognised source shape.

Every adapter exposes ``async extract(url) -> RawExtraction`` and fails with
:class:`FetchError`, :class:`ParseError` or :class:`OperationTimeoutError`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from src.common.entities import RawExtraction
from src.common.errors import FetchError, OperationTimeoutError, ParseError
from src.common.settings import Settings, settings as default_settings
from src.extraction.fetch import (
    RETRY_BACKOFF_CAP,
    browser_headers,
    get_with_retry,
    random_user_agent,
)
from src.extraction.pdf_text import fetch_pdf, file_stem_from_url
from src.extraction.profiles import SelectorProfile
from src.extraction.readers import PageReader, SoupReader, read_profile, split_authors
from src.extraction.sessions import RenderSessionPool

logger = logging.getLogger(__name__)

_HTML_TYPES = ("html", "xml")


class SourceAdapter(ABC):
    """Extraction strategy for one source shape."""

    name: str = "adapter"

    @property
    @abstractmethod
    def timeout(self) -> float:
        """Overall deadline (seconds) the orchestrator grants one ``extract`` call."""

    @abstractmethod
    async def extract(self, url: str) -> RawExtraction:
        """Fetch *url* and return its raw bibliographic fields."""


class StaticHtmlAdapter(SourceAdapter):
    """Plain HTTP GET + BeautifulSoup; no JavaScript execution."""

    def __init__(
        self,
        profile: SelectorProfile,
        client: httpx.AsyncClient,
        settings: Settings | None = None,
    ) -> None:
        self.profile = profile
        self.name = f"static:{profile.name}"
        self._client = client
        self._settings = settings or default_settings

    @property
    def timeout(self) -> float:
        # Each attempt may use the full per-request timeout, plus backoff between attempts.
        attempts = max(self._settings.download_retries, 1)
        return attempts * self._settings.http_timeout + (attempts - 1) * RETRY_BACKOFF_CAP

    async def extract(self, url: str) -> RawExtraction:
        resp = await get_with_retry(
            self._client,
            url,
            headers=browser_headers(),
            timeout=self._settings.http_timeout,
            attempts=self._settings.download_retries,
        )
        content_type = resp.headers.get("content-type", "").lower()
        if content_type and not any(t in content_type for t in _HTML_TYPES):
            raise ParseError(f"Expected HTML from {url}, got '{content_type}'")

        reader = SoupReader.from_html(resp.text)
        return await read_profile(
            reader, self.profile, str(resp.url), self._settings.static_text_limit
        )


class RenderedPageAdapter(SourceAdapter):
    """Headless-browser extraction for JavaScript-heavy sites.

    Navigation waits for network idle (with a deadline), then a bounded settle
    delay lets late scripts populate the DOM before selectors are read.
    """

    def __init__(
        self,
        profile: SelectorProfile,
        pool: RenderSessionPool,
        settings: Settings | None = None,
    ) -> None:
        self.profile = profile
        self.name = f"render:{profile.name}"
        self._pool = pool
        self._settings = settings or default_settings

    @property
    def timeout(self) -> float:
        # Queueing for a session counts against the deadline as well.
        return self._settings.render_timeout + self._settings.render_queue_timeout

    async def extract(self, url: str) -> RawExtraction:
        async with self._pool.session(user_agent=random_user_agent()) as page:
            try:
                response = await page.goto(
                    url,
                    wait_until="networkidle",
                    timeout=int(self._settings.http_timeout * 1000),
                )
            except PlaywrightTimeoutError as exc:
                raise OperationTimeoutError(f"Timed out rendering {url}") from exc
            except PlaywrightError as exc:
                raise FetchError(f"Could not load {url}: {exc}", url=url) from exc

            if response is not None and response.status >= 400:
                raise FetchError(
                    f"HTTP {response.status} for {url}", url=url, status=response.status
                )

            try:
                await page.wait_for_timeout(self._settings.render_settle_ms)
            except PlaywrightError as exc:
                raise FetchError(f"Page for {url} closed while settling: {exc}", url=url) from exc
            return await read_profile(
                PageReader(page), self.profile, page.url, self._settings.static_text_limit
            )


class DirectPdfAdapter(SourceAdapter):
    """URLs pointing straight at a PDF file."""

    name = "pdf"

    def __init__(self, client: httpx.AsyncClient, settings: Settings | None = None) -> None:
        self._client = client
        self._settings = settings or default_settings

    @property
    def timeout(self) -> float:
        return self._settings.pdf_timeout

    async def extract(self, url: str) -> RawExtraction:
        content = await fetch_pdf(self._client, url, self._settings)
        return RawExtraction(
            title=content.guess_title(file_stem_from_url(url)),
            authors=split_authors(content.meta_author),
            full_text=content.text or None,
            pdf_link=url,
        )


class GenericAdapter(SourceAdapter):
    """Static fetch first; render the page only if access is denied."""

    name = "generic"

    def __init__(self, static: StaticHtmlAdapter, rendered: RenderedPageAdapter) -> None:
        self._static = static
        self._rendered = rendered

    @property
    def timeout(self) -> float:
        return self._static.timeout + self._rendered.timeout

    async def extract(self, url: str) -> RawExtraction:
        try:
            return await self._static.extract(url)
        except FetchError as exc:
            if not exc.is_access_denied:
                raise
            logger.info(
                "Static fetch of %s denied (HTTP %s); retrying with a browser",
                url,
                exc.status,
            )
        return await self._rendered.extract(url)
