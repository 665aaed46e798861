import asyncio

import fitz
import pytest

from src.common.entities import DocumentType, RawExtraction, ReferenceSource
from src.common.errors import ExtractionError, InvalidInputError
from src.extraction.dispatch import AdapterRegistry
from src.extraction.orchestrator import ExtractionOrchestrator
from src.extraction.upload import PdfUploadIngestor
from src.library.service import ReferenceLibrary
from src.storage.memory_store import InMemoryReferenceStore

from conftest import StubAdapter


def _pdf_bytes(*lines: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    if lines:
        page.insert_text((72, 72), "\n".join(lines))
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def store():
    return InMemoryReferenceStore()


@pytest.fixture
def uploader(store, model, settings):
    return PdfUploadIngestor(store, model, settings)


def _uploaded_files(settings):
    return list(settings.upload_dir.glob("*")) if settings.upload_dir.exists() else []


# --------------------------------------------------------------------------- #
# Uploads                                                                     #
# --------------------------------------------------------------------------- #
def test_upload_stores_record_and_file(uploader, store, settings):
    data = _pdf_bytes("Protein Folding in Yeast", "dna protein cell organism biology")
    record = asyncio.run(uploader.ingest(data, "yeast.pdf", "application/pdf", authors="A Smith, B Jones"))

    assert record.id
    assert record.title == "Protein Folding in Yeast"
    assert record.authors == ["A Smith", "B Jones"]
    assert record.source is ReferenceSource.PDF_UPLOAD
    assert record.discipline == "Biology"
    assert record.pdf_path.endswith(".pdf")
    assert store.count() == 1
    assert len(_uploaded_files(settings)) == 1


def test_upload_explicit_fields_win(uploader):
    data = _pdf_bytes("Some first line", "body text")
    record = asyncio.run(
        uploader.ingest(
            data,
            "paper.pdf",
            "application/pdf",
            title="Given Title",
            type_hint="report",
            discipline="History",
        )
    )
    assert record.title == "Given Title"
    assert record.type is DocumentType.REPORT
    assert record.discipline == "History"


@pytest.mark.parametrize(
    "data, content_type",
    [
        (b"%PDF-1.4 tiny", "text/plain"),
        (b"%PDF-1.4 tiny", None),
        (b"", "application/pdf"),
    ],
)
def test_upload_rejected_before_write(uploader, store, settings, data, content_type):
    with pytest.raises(InvalidInputError):
        asyncio.run(uploader.ingest(data, "x.pdf", content_type))
    assert store.count() == 0
    assert _uploaded_files(settings) == []


def test_upload_too_large(store, model, settings):
    small = settings.model_copy(update={"max_pdf_bytes": 8})
    ingestor = PdfUploadIngestor(store, model, small)
    with pytest.raises(InvalidInputError):
        asyncio.run(ingestor.ingest(b"%PDF-1.4 0123456789", "x.pdf", "application/pdf"))
    assert _uploaded_files(settings) == []


def test_unparseable_upload_leaves_no_file(uploader, store, settings):
    with pytest.raises(ExtractionError):
        asyncio.run(uploader.ingest(b"not really a pdf", "broken.pdf", "application/pdf"))
    assert store.count() == 0
    assert _uploaded_files(settings) == []


def test_title_falls_back_to_file_name(uploader):
    data = _pdf_bytes()
    record = asyncio.run(uploader.ingest(data, "graph-survey.pdf", "application/pdf"))
    assert record.title == "graph-survey"


# --------------------------------------------------------------------------- #
# Library                                                                     #
# --------------------------------------------------------------------------- #
@pytest.fixture
def library(store, uploader, model, settings):
    raw = RawExtraction(title="Neural Networks", abstract="deep learning neural network algorithm")
    orchestrator = ExtractionOrchestrator(AdapterRegistry([], StubAdapter(raw)), model, None, settings)
    return ReferenceLibrary(store, orchestrator, uploader)


def test_add_from_url_persists(library, store):
    record = asyncio.run(library.add_from_url("https://example.org/nn"))
    assert store.find_by_id(record.id).title == "Neural Networks"
    assert record.discipline == "Computer Science"


def test_rate_validation(library):
    record = asyncio.run(library.add_from_url("https://example.org/nn"))

    assert asyncio.run(library.rate(record.id, 4)).rating == 4
    for bad in (0, 6, 2.5, True):
        with pytest.raises(InvalidInputError):
            asyncio.run(library.rate(record.id, bad))
    assert asyncio.run(library.rate("missing", 3)) is None


def test_toggle_bookmark(library):
    record = asyncio.run(library.add_from_url("https://example.org/nn"))
    assert asyncio.run(library.toggle_bookmark(record.id)).bookmarked is True
    assert asyncio.run(library.toggle_bookmark(record.id)).bookmarked is False
    assert asyncio.run(library.toggle_bookmark("missing")) is None


def test_update_whitelist(library):
    record = asyncio.run(library.add_from_url("https://example.org/nn"))

    updated = asyncio.run(library.update(record.id, {"title": "Renamed", "abstract": "", "type": "book"}))
    assert updated.title == "Renamed"
    assert updated.abstract == record.abstract
    assert updated.type is DocumentType.BOOK

    with pytest.raises(InvalidInputError):
        asyncio.run(library.update(record.id, {"source": "manual"}))


def test_find_pages_and_filters(library):
    async def populate():
        for i in range(5):
            await library.add_from_url(f"https://example.org/nn/{i}")

    asyncio.run(populate())

    page = asyncio.run(library.find(page=2, limit=2))
    assert page.total == 5
    assert page.pages == 3
    assert len(page.items) == 2
    assert all(r.full_text is None for r in page.items)

    assert asyncio.run(library.find(type="all", discipline="all")).total == 5
    assert asyncio.run(library.find(discipline="Biology")).total == 0
    with pytest.raises(InvalidInputError):
        asyncio.run(library.find(page=0))


def test_stats(library):
    async def populate():
        for i in range(3):
            await library.add_from_url(f"https://example.org/nn/{i}")

    asyncio.run(populate())
    stats = asyncio.run(library.stats(recent=2))

    assert stats.total == 3
    assert stats.by_type == [("journal", 3)]
    assert stats.by_discipline == [("Computer Science", 3)]
    assert len(stats.recent) == 2


def test_delete(library, store):
    record = asyncio.run(library.add_from_url("https://example.org/nn"))
    assert asyncio.run(library.delete(record.id)).id == record.id
    assert store.count() == 0
