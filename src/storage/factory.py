"""factory.py
Pick the storage backend once, at startup.
"""

from __future__ import annotations

import logging

from src.common.settings import Settings, settings as default_settings
from src.storage.base import ReferenceStore, StoreConnectionError
from src.storage.elastic_store import ElasticReferenceStore
from src.storage.memory_store import InMemoryReferenceStore

logger = logging.getLogger(__name__)


def open_store(settings: Settings | None = None) -> ReferenceStore:
    """Elasticsearch when reachable, otherwise the in-memory store."""
    settings = settings or default_settings
    if not settings.use_elasticsearch:
        logger.info("Elasticsearch disabled; using in-memory reference store")
        return InMemoryReferenceStore()

    try:
        store = ElasticReferenceStore(
            settings.es_host,
            settings.index_name,
            connect_attempts=settings.es_connect_attempts,
            retry_delay=settings.es_retry_delay,
        )
    except StoreConnectionError as exc:
        logger.warning("%s; falling back to in-memory reference store", exc)
        return InMemoryReferenceStore()

    logger.info("Using Elasticsearch index '%s' at %s", settings.index_name, settings.es_host)
    return store
