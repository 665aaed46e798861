"""memory_store.py
Process-local :class:`ReferenceStore` used when Elasticsearch is unreachable.
"""

from __future__ import annotations

import threading
import uuid
from collections import Counter
from enum import Enum
from typing import Any, Mapping, Optional

from src.common.entities import ReferenceRecord
from src.storage.base import (
    FieldCount,
    QueryOptions,
    ReferenceFilter,
    ReferenceStore,
    check_aggregatable,
    merge_update,
    utc_now,
)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def matches(record: ReferenceRecord, flt: ReferenceFilter) -> bool:
    if flt.type is not None and record.type != flt.type:
        return False
    if flt.discipline is not None and record.discipline != flt.discipline:
        return False
    if flt.search:
        term = flt.search.lower()
        haystacks = [record.title, record.abstract, record.full_text or ""]
        haystacks.extend(record.authors)
        haystacks.extend(record.keywords)
        if not any(term in h.lower() for h in haystacks):
            return False
    return True


class InMemoryReferenceStore(ReferenceStore):
    """Dict-backed store guarded by a lock; records are copied in and out."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._records: dict[str, ReferenceRecord] = {}
        self._lock = threading.Lock()

    def save(self, record: ReferenceRecord) -> ReferenceRecord:
        now = utc_now()
        stored = record.model_copy(
            update={"id": uuid.uuid4().hex, "created_at": now, "updated_at": now},
            deep=True,
        )
        with self._lock:
            self._records[stored.id] = stored
        return stored.model_copy(deep=True)

    def find_by_id(self, record_id: str) -> Optional[ReferenceRecord]:
        with self._lock:
            record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    def find(
        self,
        flt: ReferenceFilter | None = None,
        options: QueryOptions | None = None,
    ) -> list[ReferenceRecord]:
        flt = flt or ReferenceFilter()
        options = options or QueryOptions()
        with self._lock:
            results = [r for r in self._records.values() if matches(r, flt)]

        present = [r for r in results if getattr(r, options.sort_by) is not None]
        missing = [r for r in results if getattr(r, options.sort_by) is None]
        present.sort(
            key=lambda r: _plain(getattr(r, options.sort_by)),
            reverse=options.descending,
        )
        results = present + missing

        end = None if options.limit is None else options.skip + options.limit
        page = results[options.skip:end]
        exclude = None if options.include_full_text else {"full_text": None}
        return [r.model_copy(update=exclude, deep=True) for r in page]

    def update(self, record_id: str, fields: Mapping[str, Any]) -> Optional[ReferenceRecord]:
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                return None
            updated = merge_update(current, fields)
            self._records[record_id] = updated
        return updated.model_copy(deep=True)

    def delete(self, record_id: str) -> Optional[ReferenceRecord]:
        with self._lock:
            record = self._records.pop(record_id, None)
        return record.model_copy(deep=True) if record is not None else None

    def count(self, flt: ReferenceFilter | None = None) -> int:
        flt = flt or ReferenceFilter()
        with self._lock:
            return sum(1 for r in self._records.values() if matches(r, flt))

    def aggregate_by_field(self, field_name: str) -> list[FieldCount]:
        check_aggregatable(field_name)
        with self._lock:
            counts = Counter(_plain(getattr(r, field_name)) for r in self._records.values())
        return [FieldCount(value, n) for value, n in counts.most_common()]
