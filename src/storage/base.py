"""base.py
Persistence contract shared by the Elasticsearch and in-memory stores.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, NamedTuple, Optional

from pydantic import ValidationError

from src.common.entities import DocumentType, ReferenceRecord
from src.common.errors import InvalidInputError

SORTABLE_FIELDS = frozenset(
    {"created_at", "updated_at", "title", "publication_year", "rating", "discipline", "type"}
)
AGGREGATABLE_FIELDS = frozenset(
    {"type", "discipline", "source", "publication_year", "rating", "bookmarked"}
)
# Fields the store owns; callers may not overwrite them through ``update``.
PROTECTED_FIELDS = frozenset({"id", "created_at", "updated_at"})


class StoreConnectionError(RuntimeError):
    """Raised when a persistent backend cannot be reached."""


@dataclass(frozen=True)
class ReferenceFilter:
    """Exact match on ``type``/``discipline`` plus a free-text ``search`` term."""

    type: Optional[DocumentType] = None
    discipline: Optional[str] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class QueryOptions:
    sort_by: str = "created_at"
    descending: bool = True
    skip: int = 0
    limit: Optional[int] = None
    include_full_text: bool = True

    def __post_init__(self) -> None:
        if self.sort_by not in SORTABLE_FIELDS:
            raise InvalidInputError(f"Cannot sort by {self.sort_by!r}")
        if self.skip < 0 or (self.limit is not None and self.limit < 0):
            raise InvalidInputError("skip and limit must be non-negative")


class FieldCount(NamedTuple):
    value: Any
    count: int


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def check_aggregatable(field_name: str) -> None:
    if field_name not in AGGREGATABLE_FIELDS:
        raise InvalidInputError(f"Cannot aggregate by {field_name!r}")


def merge_update(record: ReferenceRecord, fields: Mapping[str, Any]) -> ReferenceRecord:
    """Return a validated copy of *record* with *fields* applied and ``updated_at`` bumped."""
    unknown = set(fields) - set(ReferenceRecord.model_fields)
    if unknown:
        raise InvalidInputError(f"Unknown fields: {', '.join(sorted(unknown))}")
    protected = set(fields) & PROTECTED_FIELDS
    if protected:
        raise InvalidInputError(f"Fields are managed by the store: {', '.join(sorted(protected))}")

    data = record.model_dump()
    data.update(fields)
    data["updated_at"] = max(utc_now(), record.created_at) if record.created_at else utc_now()
    try:
        return ReferenceRecord.model_validate(data)
    except ValidationError as exc:
        raise InvalidInputError(str(exc)) from exc


class ReferenceStore(ABC):
    """Narrow save/query contract the pipeline relies on.

    Not-found is reported as ``None``; ids are opaque strings assigned by
    :meth:`save`.
    """

    backend_name: str = "abstract"

    @abstractmethod
    def save(self, record: ReferenceRecord) -> ReferenceRecord:
        """Persist *record* and return it with ``id`` and timestamps assigned."""

    def save_many(
        self, records: Iterable[ReferenceRecord], batch_size: int = 500
    ) -> list[ReferenceRecord]:
        return [self.save(r) for r in records]

    @abstractmethod
    def find_by_id(self, record_id: str) -> Optional[ReferenceRecord]: ...

    @abstractmethod
    def find(
        self,
        flt: ReferenceFilter | None = None,
        options: QueryOptions | None = None,
    ) -> list[ReferenceRecord]: ...

    @abstractmethod
    def update(self, record_id: str, fields: Mapping[str, Any]) -> Optional[ReferenceRecord]: ...

    @abstractmethod
    def delete(self, record_id: str) -> Optional[ReferenceRecord]: ...

    @abstractmethod
    def count(self, flt: ReferenceFilter | None = None) -> int: ...

    @abstractmethod
    def aggregate_by_field(self, field_name: str) -> list[FieldCount]:
        """Distinct values of *field_name* with their record counts, most common first."""

    def close(self) -> None:
        """Release backend resources (no-op by default)."""
