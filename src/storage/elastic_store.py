"""Thin wrapper around the official Elasticsearch client.

Implements the :class:`ReferenceStore` contract on a single index:

* :py:meth:`create_index` – create the reference mapping with optional force-delete.
* :py:meth:`save` / :py:meth:`save_many` – index one record, or stream bulk
  requests in configurable batches.
* :py:meth:`find` / :py:meth:`count` – ``term`` filters plus a ``multi_match``
  full-text query over title, abstract, full text, authors and keywords.
* :py:meth:`aggregate_by_field` – ``terms`` aggregation for distribution stats.
"""

from __future__ import annotations

import logging
import time
import uuid
from itertools import batched
from typing import Any, Iterable, Mapping, Optional

from elasticsearch import Elasticsearch, helpers
from elasticsearch.exceptions import NotFoundError

from src.common.entities import ReferenceRecord
from src.storage.base import (
    FieldCount,
    QueryOptions,
    ReferenceFilter,
    ReferenceStore,
    StoreConnectionError,
    check_aggregatable,
    merge_update,
    utc_now,
)

logger = logging.getLogger(__name__)

# Elasticsearch refuses from+size beyond this without scrolling.
MAX_RESULT_WINDOW = 10_000

_SEARCH_FIELDS = ["title^2", "abstract", "full_text", "authors", "keywords"]
_SORT_FIELDS = {"title": "title.keyword"}

_PROPERTIES: dict[str, Any] = {
    "title": {"type": "text", "fields": {"keyword": {"type": "keyword", "ignore_above": 512}}},
    "authors": {"type": "text"},
    "abstract": {"type": "text"},
    "full_text": {"type": "text", "analyzer": "standard"},
    "url": {"type": "keyword"},
    "type": {"type": "keyword"},
    "discipline": {"type": "keyword"},
    "keywords": {"type": "text"},
    "publication_year": {"type": "integer"},
    "journal": {"type": "text"},
    "doi": {"type": "keyword"},
    "pdf_link": {"type": "keyword"},
    "pdf_path": {"type": "keyword"},
    "rating": {"type": "integer"},
    "bookmarked": {"type": "boolean"},
    "tags": {"type": "keyword"},
    "source": {"type": "keyword"},
    "extraction_metadata": {"type": "object", "enabled": False},
    "created_at": {"type": "date"},
    "updated_at": {"type": "date"},
}


def _to_document(record: ReferenceRecord) -> dict[str, Any]:
    return record.model_dump(mode="json", exclude={"id"})


def _from_hit(hit: Mapping[str, Any]) -> ReferenceRecord:
    return ReferenceRecord.model_validate({**hit["_source"], "id": hit["_id"]})


class ElasticReferenceStore(ReferenceStore):
    """High-level helper storing reference records in one index."""

    backend_name = "elasticsearch"

    def __init__(
        self,
        hosts: list[str] | str = "http://localhost:9200",
        index_name: str = "references",
        *,
        client: Elasticsearch | None = None,
        connect_attempts: int = 3,
        retry_delay: float = 2.0,
    ) -> None:
        """Instantiate the store, verify connectivity and ensure the index exists.

        Args:
            hosts: Single host or list of hosts where Elasticsearch is available.
            index_name: Index holding the reference records.
            client: Pre-built client (tests inject a mock here).
            connect_attempts: Pings before giving up.
            retry_delay: Seconds between pings.

        Raises:
            StoreConnectionError: If the cluster is unreachable.
        """
        self._client = client or Elasticsearch(hosts, request_timeout=10)
        self.index_name = index_name

        # Elasticsearch container may still be starting – retry a few times
        for attempt in range(connect_attempts):
            try:
                if self._client.ping():
                    break
            except Exception as exc:  # pylint: disable=broad-except
                logger.debug("ES ping raised: %s", exc)

            if attempt == connect_attempts - 1:
                raise StoreConnectionError(f"Unable to connect to Elasticsearch at {hosts}")

            logger.info(
                "ES ping failed (attempt %d/%d); retrying in %.0fs…",
                attempt + 1,
                connect_attempts,
                retry_delay,
            )
            time.sleep(retry_delay)

        self.create_index()

    def create_index(self, force_delete: bool = False) -> None:
        """Create the reference index if it does not exist yet.

        Args:
            force_delete: Delete an existing index of the same name before creation.
        """
        if force_delete:
            try:
                self._client.indices.delete(index=self.index_name)
                logger.info("Deleted existing index '%s'.", self.index_name)
            except NotFoundError:
                pass

        if self._client.indices.exists(index=self.index_name):
            logger.debug("Index '%s' already exists; skipping creation.", self.index_name)
            return

        self._client.indices.create(
            index=self.index_name,
            settings={"number_of_shards": 1, "number_of_replicas": 0},
            mappings={"properties": _PROPERTIES},
        )
        logger.info("Created index '%s'.", self.index_name)

    def save(self, record: ReferenceRecord) -> ReferenceRecord:
        now = utc_now()
        stored = record.model_copy(
            update={"id": uuid.uuid4().hex, "created_at": now, "updated_at": now}
        )
        self._client.index(
            index=self.index_name,
            id=stored.id,
            document=_to_document(stored),
            refresh="wait_for",
        )
        return stored

    def save_many(
        self, records: Iterable[ReferenceRecord], batch_size: int = 500
    ) -> list[ReferenceRecord]:
        """Bulk-index *records*, *batch_size* documents per request."""
        saved: list[ReferenceRecord] = []
        for chunk in batched(records, batch_size):
            now = utc_now()
            stored = [
                r.model_copy(update={"id": uuid.uuid4().hex, "created_at": now, "updated_at": now})
                for r in chunk
            ]
            actions = [
                {
                    "_op_type": "index",
                    "_index": self.index_name,
                    "_id": r.id,
                    **_to_document(r),
                }
                for r in stored
            ]
            helpers.bulk(self._client, actions, refresh="wait_for")
            logger.info("Indexed %d references into '%s'.", len(stored), self.index_name)
            saved.extend(stored)
        return saved

    def find_by_id(self, record_id: str) -> Optional[ReferenceRecord]:
        try:
            hit = self._client.get(index=self.index_name, id=record_id)
        except NotFoundError:
            return None
        return _from_hit(hit)

    @staticmethod
    def _query(flt: ReferenceFilter | None) -> dict[str, Any]:
        flt = flt or ReferenceFilter()
        filters: list[dict[str, Any]] = []
        must: list[dict[str, Any]] = []
        if flt.type is not None:
            filters.append({"term": {"type": flt.type.value}})
        if flt.discipline is not None:
            filters.append({"term": {"discipline": flt.discipline}})
        if flt.search:
            must.append(
                {
                    "multi_match": {
                        "query": flt.search,
                        "fields": _SEARCH_FIELDS,
                        "type": "best_fields",
                    }
                }
            )
        if not filters and not must:
            return {"match_all": {}}
        return {"bool": {"filter": filters, "must": must}}

    def find(
        self,
        flt: ReferenceFilter | None = None,
        options: QueryOptions | None = None,
    ) -> list[ReferenceRecord]:
        options = options or QueryOptions()
        sort_field = _SORT_FIELDS.get(options.sort_by, options.sort_by)
        size = options.limit if options.limit is not None else MAX_RESULT_WINDOW
        kwargs: dict[str, Any] = {
            "index": self.index_name,
            "query": self._query(flt),
            "sort": [
                {sort_field: {"order": "desc" if options.descending else "asc", "missing": "_last"}}
            ],
            "from_": options.skip,
            "size": min(size, MAX_RESULT_WINDOW - options.skip),
        }
        if not options.include_full_text:
            kwargs["source_excludes"] = ["full_text"]

        res = self._client.search(**kwargs)
        return [_from_hit(hit) for hit in res.get("hits", {}).get("hits", [])]

    def update(self, record_id: str, fields: Mapping[str, Any]) -> Optional[ReferenceRecord]:
        current = self.find_by_id(record_id)
        if current is None:
            return None
        updated = merge_update(current, fields)
        self._client.index(
            index=self.index_name,
            id=record_id,
            document=_to_document(updated),
            refresh="wait_for",
        )
        return updated

    def delete(self, record_id: str) -> Optional[ReferenceRecord]:
        current = self.find_by_id(record_id)
        if current is None:
            return None
        try:
            self._client.delete(index=self.index_name, id=record_id, refresh="wait_for")
        except NotFoundError:
            return None
        return current

    def count(self, flt: ReferenceFilter | None = None) -> int:
        res = self._client.count(index=self.index_name, query=self._query(flt))
        return int(res["count"])

    def aggregate_by_field(self, field_name: str) -> list[FieldCount]:
        check_aggregatable(field_name)
        res = self._client.search(
            index=self.index_name,
            size=0,
            aggs={"by_field": {"terms": {"field": field_name, "size": 100}}},
        )
        buckets = res.get("aggregations", {}).get("by_field", {}).get("buckets", [])
        out: list[FieldCount] = []
        for bucket in buckets:
            value = bucket["key"]
            if field_name == "bookmarked":
                value = bool(value)
            out.append(FieldCount(value, int(bucket["doc_count"])))
        return out

    def close(self) -> None:
        self._client.close()
