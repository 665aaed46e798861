from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest
from playwright.async_api import Error as PlaywrightError

from src.classification.discipline import train_classifier
from src.common.settings import Settings
from src.extraction.adapters import SourceAdapter


def make_settings(**overrides: Any) -> Settings:
    """Fast, offline settings for unit tests."""
    values: dict[str, Any] = {
        "use_elasticsearch": False,
        "http_timeout": 2.0,
        "render_timeout": 2.0,
        "pdf_timeout": 2.0,
        "download_retries": 1,
        "max_render_sessions": 2,
        "render_queue_timeout": 1.0,
        "render_settle_ms": 0,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture(scope="session")
def model():
    return train_classifier()


@pytest.fixture
def settings(tmp_path):
    return make_settings(upload_dir=tmp_path / "uploads")


# --------------------------------------------------------------------------- #
# Minimal stand-ins for the Playwright objects the pipeline touches           #
# --------------------------------------------------------------------------- #
class FakeElement:
    def __init__(self, text: str = "", attrs: Optional[dict[str, str]] = None) -> None:
        self.text = text
        self.attrs = attrs or {}

    async def get_attribute(self, name: str, timeout: float | None = None) -> Optional[str]:
        return self.attrs.get(name)

    async def inner_text(self, timeout: float | None = None) -> str:
        return self.text

    async def text_content(self, timeout: float | None = None) -> str:
        return self.text


class FakeLocator:
    def __init__(self, elements: list[FakeElement]) -> None:
        self._elements = elements

    async def count(self) -> int:
        return len(self._elements)

    def nth(self, index: int) -> FakeElement:
        return self._elements[index]


class FakeResponse:
    def __init__(self, status: int = 200) -> None:
        self.status = status


class FakePage:
    """Page whose DOM is a ``{css: [FakeElement, ...]}`` mapping.

    ``broken`` makes every selector read fail like a detached page would.
    """

    def __init__(
        self,
        dom: Optional[dict[str, list[FakeElement]]] = None,
        *,
        status: int = 200,
        body: str = "",
        broken: bool = False,
    ) -> None:
        self.dom = dom or {}
        self.status = status
        self.body = body
        self.broken = broken
        self.url = "about:blank"

    async def goto(self, url: str, **kwargs: Any) -> FakeResponse:
        self.url = url
        return FakeResponse(self.status)

    async def wait_for_timeout(self, ms: float) -> None:
        return None

    def locator(self, css: str) -> FakeLocator:
        if self.broken:
            raise PlaywrightError("Target page, context or browser has been closed")
        return FakeLocator(self.dom.get(css, []))

    async def inner_text(self, selector: str, timeout: float | None = None) -> str:
        if self.broken:
            raise PlaywrightError("Target page, context or browser has been closed")
        return self.body


class FakeContext:
    def __init__(self, page: FakePage, options: dict[str, Any]) -> None:
        self.page = page
        self.options = options
        self.closed = False

    async def new_page(self) -> FakePage:
        return self.page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, page_factory=FakePage) -> None:
        self.page_factory = page_factory
        self.contexts: list[FakeContext] = []
        self.closed = False

    async def new_context(self, **options: Any) -> FakeContext:
        ctx = FakeContext(self.page_factory(), options)
        self.contexts.append(ctx)
        return ctx

    async def close(self) -> None:
        self.closed = True

    @property
    def open_contexts(self) -> int:
        return sum(1 for c in self.contexts if not c.closed)


def launcher_for(browser: FakeBrowser):
    async def _launch() -> FakeBrowser:
        return browser

    return _launch


class StubAdapter(SourceAdapter):
    """Adapter returning a canned extraction (or raising) after an optional delay."""

    def __init__(self, result=None, error=None, delay=0.0, timeout=1.0):
        self.name = "stub"
        self._result = result
        self._error = error
        self._delay = delay
        self._timeout = timeout
        self.calls = []

    @property
    def timeout(self):
        return self._timeout

    async def extract(self, url):
        self.calls.append(url)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._result.model_copy(deep=True)
