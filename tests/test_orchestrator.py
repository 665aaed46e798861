import asyncio

import httpx
import pytest
from playwright.async_api import Error as PlaywrightError

from src.common.entities import DocumentType, RawExtraction, ReferenceSource
from src.common.errors import (
    ExtractionError,
    FetchError,
    InvalidInputError,
    OperationTimeoutError,
    ParseError,
)
from src.extraction.adapters import DirectPdfAdapter, RenderedPageAdapter, StaticHtmlAdapter
from src.extraction.dispatch import AdapterRegistry, build_default_registry
from src.extraction.orchestrator import ExtractionOrchestrator, parse_document_type, validate_url
from src.extraction.profiles import BUILTIN_PROFILES, SelectorProfile
from src.extraction.sessions import RenderSessionPool

from conftest import FakeBrowser, FakeElement, FakePage, StubAdapter, launcher_for, make_settings


def _pdf_404(request):
    return httpx.Response(404)


def _run(model, adapter, url, type_hint=None, handler=_pdf_404):
    settings = make_settings()

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            orchestrator = ExtractionOrchestrator(AdapterRegistry([], adapter), model, client, settings)
            return await orchestrator.extract_and_classify(url, type_hint)

    return asyncio.run(run())


@pytest.mark.parametrize(
    "url",
    ["", "   ", "ftp://example.org/a", "example.org/paper", "https://", "https://exa mple.org", None],
)
def test_invalid_urls_rejected(url):
    with pytest.raises(InvalidInputError):
        validate_url(url)


def test_valid_url_is_stripped():
    assert validate_url("  https://example.org/x  ") == "https://example.org/x"


def test_parse_document_type():
    assert parse_document_type("thesis") is DocumentType.THESIS
    assert parse_document_type("") is None
    assert parse_document_type(None) is None
    with pytest.raises(InvalidInputError):
        parse_document_type("poem")


def test_invalid_url_never_reaches_adapter(model):
    adapter = StubAdapter(RawExtraction(title="x"))
    with pytest.raises(InvalidInputError):
        _run(model, adapter, "not a url")
    assert adapter.calls == []


def test_successful_extraction(model):
    raw = RawExtraction(
        title="  Deep Learning for Graphs ",
        authors=["A. Author"],
        abstract="A neural network algorithm for machine learning on graph data.",
        publication_year=2021,
    )
    record = _run(model, StubAdapter(raw), "https://example.org/paper")

    assert record.id is None
    assert record.title == "Deep Learning for Graphs"
    assert record.authors == ["A. Author"]
    assert record.discipline == "Computer Science"
    assert record.type is DocumentType.JOURNAL
    assert "neural" in record.keywords
    assert record.publication_year == 2021
    assert record.url == "https://example.org/paper"
    assert record.source is ReferenceSource.URL_EXTRACTION
    assert record.extraction_metadata.extraction_method == "stub"
    assert 0.0 < record.extraction_metadata.confidence <= 1.0


def test_type_hint_overrides_detection(model):
    raw = RawExtraction(title="PhD thesis on graphs")
    record = _run(model, StubAdapter(raw), "https://example.org/paper", type_hint="book")
    assert record.type is DocumentType.BOOK


def test_unknown_type_hint_rejected(model):
    with pytest.raises(InvalidInputError):
        _run(model, StubAdapter(RawExtraction(title="x")), "https://example.org/p", type_hint="poem")


def test_blank_title_is_content_error(model):
    with pytest.raises(ExtractionError) as info:
        _run(model, StubAdapter(RawExtraction(title="   ", abstract="text")), "https://example.org/p")
    assert info.value.reason == "content"
    assert not info.value.retryable


@pytest.mark.parametrize("error", [FetchError("HTTP 500", status=500), ParseError("bad markup")])
def test_adapter_failures_become_source_errors(model, error):
    with pytest.raises(ExtractionError) as info:
        _run(model, StubAdapter(error=error), "https://example.org/p")
    assert info.value.reason == "source"
    assert info.value.cause is error
    assert info.value.retryable


def test_adapter_timeout_error(model):
    with pytest.raises(ExtractionError) as info:
        _run(model, StubAdapter(error=OperationTimeoutError("slow")), "https://example.org/p")
    assert info.value.reason == "timeout"


def test_adapter_deadline_enforced(model):
    adapter = StubAdapter(RawExtraction(title="late"), delay=1.0, timeout=0.05)
    with pytest.raises(ExtractionError) as info:
        _run(model, adapter, "https://example.org/p")
    assert info.value.reason == "timeout"


def test_pdf_follow_up_failure_is_ignored(model):
    raw = RawExtraction(
        title="Protein folding",
        abstract="dna protein cell biology",
        pdf_link="https://example.org/missing.pdf",
    )
    record = _run(model, StubAdapter(raw), "https://example.org/p")

    assert record.full_text is None
    assert record.pdf_link == "https://example.org/missing.pdf"
    assert record.discipline == "Biology"


def test_pdf_follow_up_not_attempted_with_full_text(model):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(404)

    raw = RawExtraction(title="T", full_text="body", pdf_link="https://example.org/a.pdf")
    _run(model, StubAdapter(raw), "https://example.org/p", handler=handler)
    assert requests == []


# --------------------------------------------------------------------------- #
# Routing                                                                     #
# --------------------------------------------------------------------------- #
@pytest.fixture
def registry():
    settings = make_settings()
    pool = RenderSessionPool(settings, launcher=launcher_for(FakeBrowser()))
    return build_default_registry(httpx.AsyncClient(), pool, settings)


@pytest.mark.parametrize(
    "url, kind, profile",
    [
        ("https://scholar.google.com/scholar?q=x", RenderedPageAdapter, "google_scholar"),
        ("https://www.researchgate.net/publication/1", RenderedPageAdapter, "researchgate"),
        ("https://ieeexplore.ieee.org/document/1", RenderedPageAdapter, "ieee"),
        ("https://arxiv.org/abs/1706.03762", StaticHtmlAdapter, "arxiv"),
    ],
)
def test_routing_by_host(registry, url, kind, profile):
    adapter = registry.select(url)
    assert isinstance(adapter, kind)
    assert adapter.profile.name == profile


@pytest.mark.parametrize(
    "url", ["https://arxiv.org/pdf/1706.03762.pdf", "https://example.org/files/Paper.PDF"]
)
def test_pdf_urls_go_to_pdf_adapter(registry, url):
    assert isinstance(registry.select(url), DirectPdfAdapter)


def test_unknown_host_uses_generic(registry):
    assert registry.select("https://blog.example.org/post").name == "generic"
    assert registry.adapters[-1].name == "generic"


def test_render_pipeline_respects_session_cap(model):
    """Many concurrent rendered extractions share a small session pool."""
    browser = FakeBrowser(
        page_factory=lambda: FakePage({"h1": [FakeElement("Ecosystem species evolution")]})
    )
    settings = make_settings(max_render_sessions=2, render_queue_timeout=5)
    pool = RenderSessionPool(settings, launcher=launcher_for(browser))

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(_pdf_404)) as client:
            registry = build_default_registry(client, pool, settings)
            orchestrator = ExtractionOrchestrator(registry, model, client, settings)
            urls = [f"https://www.researchgate.net/publication/{i}" for i in range(6)]
            return await asyncio.gather(*(orchestrator.extract_and_classify(u) for u in urls))

    records = asyncio.run(run())

    assert len(records) == 6
    assert all(r.title == "Ecosystem species evolution" for r in records)
    assert all(r.discipline == "Biology" for r in records)
    assert pool.peak <= 2
    assert browser.open_contexts == 0


def test_unexpected_adapter_failure_is_internal_error(model):
    error = RuntimeError("adapter bug")
    with pytest.raises(ExtractionError) as info:
        _run(model, StubAdapter(error=error), "https://example.org/p")
    assert info.value.reason == "internal"
    assert info.value.cause is error
    assert not info.value.retryable


def test_browser_launch_failure_is_extraction_error(model):
    async def launcher():
        raise PlaywrightError("Executable doesn't exist at /ms-playwright/chromium")

    settings = make_settings()
    pool = RenderSessionPool(settings, launcher=launcher)

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(_pdf_404)) as client:
            registry = build_default_registry(client, pool, settings)
            orchestrator = ExtractionOrchestrator(registry, model, client, settings)
            return await orchestrator.extract_and_classify("https://www.researchgate.net/publication/1")

    with pytest.raises(ExtractionError) as info:
        asyncio.run(run())
    assert info.value.reason == "source"
    assert isinstance(info.value.cause, FetchError)
    assert pool.active == 0


def test_invalid_configured_selector_is_extraction_error(model):
    settings = make_settings()
    profile = SelectorProfile(name="generic", title=["h1[[["])

    def handler(request):
        return httpx.Response(200, html="<html><body><h1>Title</h1></body></html>")

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            adapter = StaticHtmlAdapter(profile, client, settings)
            orchestrator = ExtractionOrchestrator(AdapterRegistry([], adapter), model, client, settings)
            return await orchestrator.extract_and_classify("https://example.org/p")

    with pytest.raises(ExtractionError) as info:
        asyncio.run(run())
    assert isinstance(info.value.cause, ParseError)


def test_static_deadline_leaves_room_for_retries():
    settings = make_settings(http_timeout=2.0, download_retries=3)
    adapter = StaticHtmlAdapter(BUILTIN_PROFILES["generic"], httpx.AsyncClient(), settings)
    assert adapter.timeout > settings.download_retries * settings.http_timeout
