"""service.py
Reference library operations on top of the extraction pipeline and a store.

Store calls are blocking (the Elasticsearch client is synchronous) and run in
worker threads.  Mutations of one record are serialised with a per-id lock.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from src.common.entities import ReferenceRecord
from src.common.errors import InvalidInputError
from src.extraction.orchestrator import ExtractionOrchestrator, parse_document_type
from src.extraction.upload import PdfUploadIngestor
from src.storage.base import FieldCount, QueryOptions, ReferenceFilter, ReferenceStore

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {"title", "authors", "abstract", "type", "discipline", "keywords", "rating", "bookmarked", "tags"}
)


@dataclass
class Page:
    items: list[ReferenceRecord]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


@dataclass
class LibraryStats:
    total: int
    by_type: list[FieldCount]
    by_discipline: list[FieldCount]
    recent: list[ReferenceRecord] = field(default_factory=list)


class ReferenceLibrary:
    """Add, query and curate references."""

    def __init__(
        self,
        store: ReferenceStore,
        orchestrator: ExtractionOrchestrator,
        uploader: PdfUploadIngestor,
    ) -> None:
        self.store = store
        self._orchestrator = orchestrator
        self._uploader = uploader
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def add_from_url(self, url: str, type_hint: str | None = None) -> ReferenceRecord:
        """Extract, classify and save the reference behind *url*."""
        record = await self._orchestrator.extract_and_classify(url, type_hint)
        saved = await asyncio.to_thread(self.store.save, record)
        logger.info("Saved reference %s (%s, %s)", saved.id, saved.type.value, saved.discipline)
        return saved

    async def add_upload(self, data: bytes, filename: str, content_type: str | None, **fields: Any) -> ReferenceRecord:
        return await self._uploader.ingest(data, filename, content_type, **fields)

    async def get(self, record_id: str) -> Optional[ReferenceRecord]:
        return await asyncio.to_thread(self.store.find_by_id, record_id)

    async def find(
        self,
        *,
        type: str | None = None,
        discipline: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "created_at",
        descending: bool = True,
    ) -> Page:
        """One page of references; ``"all"`` disables a filter."""
        if page < 1 or limit < 1:
            raise InvalidInputError("page and limit must be positive")
        flt = ReferenceFilter(
            type=parse_document_type(None if type == "all" else type),
            discipline=None if discipline in (None, "", "all") else discipline,
            search=search or None,
        )
        options = QueryOptions(
            sort_by=sort_by,
            descending=descending,
            skip=(page - 1) * limit,
            limit=limit,
            include_full_text=False,
        )
        items = await asyncio.to_thread(self.store.find, flt, options)
        total = await asyncio.to_thread(self.store.count, flt)
        return Page(items=items, page=page, limit=limit, total=total)

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> Optional[ReferenceRecord]:
        """Apply whitelisted *fields*; falsy values other than rating/bookmark are ignored."""
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        changes = {
            k: v for k, v in fields.items() if k in {"rating", "bookmarked"} or v
        }
        if "type" in changes:
            changes["type"] = parse_document_type(changes["type"])
        async with self._locks[record_id]:
            return await asyncio.to_thread(self.store.update, record_id, changes)

    async def rate(self, record_id: str, rating: int) -> Optional[ReferenceRecord]:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise InvalidInputError("Rating must be between 1 and 5")
        async with self._locks[record_id]:
            return await asyncio.to_thread(self.store.update, record_id, {"rating": rating})

    async def toggle_bookmark(self, record_id: str) -> Optional[ReferenceRecord]:
        async with self._locks[record_id]:
            current = await asyncio.to_thread(self.store.find_by_id, record_id)
            if current is None:
                return None
            return await asyncio.to_thread(
                self.store.update, record_id, {"bookmarked": not current.bookmarked}
            )

    async def delete(self, record_id: str) -> Optional[ReferenceRecord]:
        async with self._locks[record_id]:
            removed = await asyncio.to_thread(self.store.delete, record_id)
        self._locks.pop(record_id, None)
        return removed

    async def stats(self, recent: int = 5) -> LibraryStats:
        total = await asyncio.to_thread(self.store.count)
        by_type = await asyncio.to_thread(self.store.aggregate_by_field, "type")
        by_discipline = await asyncio.to_thread(self.store.aggregate_by_field, "discipline")
        latest = await asyncio.to_thread(
            self.store.find,
            None,
            QueryOptions(sort_by="created_at", descending=True, limit=recent, include_full_text=False),
        )
        return LibraryStats(total=total, by_type=by_type, by_discipline=by_discipline, recent=latest)
