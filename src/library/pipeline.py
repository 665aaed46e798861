"""pipeline.py
Process start-up: train the classifier once, pick the store, open the shared
HTTP client and browser pool, and wire the orchestrator and library together.

Usage::

    async with build_pipeline() as pipeline:
        record = await pipeline.library.add_from_url("https://arxiv.org/abs/1706.03762")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Optional

import httpx

from src.classification.discipline import DisciplineModel, train_classifier
from src.common.settings import Settings, settings as default_settings
from src.extraction.dispatch import build_default_registry
from src.extraction.fetch import create_client
from src.extraction.orchestrator import ExtractionOrchestrator
from src.extraction.sessions import RenderSessionPool
from src.extraction.upload import PdfUploadIngestor
from src.library.service import ReferenceLibrary
from src.storage.base import ReferenceStore
from src.storage.factory import open_store

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """Long-lived, shared pipeline components."""

    settings: Settings
    model: DisciplineModel
    store: ReferenceStore
    client: httpx.AsyncClient
    pool: RenderSessionPool
    orchestrator: ExtractionOrchestrator
    library: ReferenceLibrary

    async def aclose(self) -> None:
        await self.pool.close()
        await self.client.aclose()
        await asyncio.to_thread(self.store.close)

    async def __aenter__(self) -> "Pipeline":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()


def build_pipeline(
    settings: Settings | None = None,
    *,
    store: ReferenceStore | None = None,
    model: DisciplineModel | None = None,
    pool: RenderSessionPool | None = None,
    client: httpx.AsyncClient | None = None,
) -> Pipeline:
    """Construct every shared component.

    The classifier is trained here, before any request can reach it.
    """
    settings = settings or default_settings
    model = model or train_classifier()
    store = store or open_store(settings)
    client = client or create_client(settings)
    pool = pool or RenderSessionPool(settings)

    registry = build_default_registry(client, pool, settings)
    orchestrator = ExtractionOrchestrator(registry, model, client, settings)
    uploader = PdfUploadIngestor(store, model, settings)
    library = ReferenceLibrary(store, orchestrator, uploader)

    logger.info(
        "Pipeline ready (store=%s, render sessions=%d)",
        store.backend_name,
        pool.max_sessions,
    )
    return Pipeline(
        settings=settings,
        model=model,
        store=store,
        client=client,
        pool=pool,
        orchestrator=orchestrator,
        library=library,
    )
