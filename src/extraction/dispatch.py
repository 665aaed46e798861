"""dispatch.py
Ordered ``(matcher, adapter)`` routing; the first matching route wins and the
generic adapter catches everything else.
"""

from __future__ import annotations

from typing import Callable, Sequence
from urllib.parse import urlparse

import httpx

from src.common.settings import Settings, settings as default_settings
from src.extraction.adapters import (
    DirectPdfAdapter,
    GenericAdapter,
    RenderedPageAdapter,
    SourceAdapter,
    StaticHtmlAdapter,
)
from src.extraction.profiles import SelectorProfile, load_profiles
from src.extraction.sessions import RenderSessionPool

UrlMatcher = Callable[[str], bool]


def host_contains(fragment: str) -> UrlMatcher:
    def _match(url: str) -> bool:
        return fragment in (urlparse(url).hostname or "").lower()

    _match.__name__ = f"host_contains({fragment!r})"
    return _match


def path_endswith(suffix: str) -> UrlMatcher:
    def _match(url: str) -> bool:
        return urlparse(url).path.lower().endswith(suffix)

    _match.__name__ = f"path_endswith({suffix!r})"
    return _match


class AdapterRegistry:
    """Prioritised list of routes plus a catch-all adapter."""

    def __init__(
        self,
        routes: Sequence[tuple[UrlMatcher, SourceAdapter]],
        fallback: SourceAdapter,
    ) -> None:
        self._routes = list(routes)
        self._fallback = fallback

    def select(self, url: str) -> SourceAdapter:
        for matches, adapter in self._routes:
            if matches(url):
                return adapter
        return self._fallback

    @property
    def adapters(self) -> list[SourceAdapter]:
        return [adapter for _, adapter in self._routes] + [self._fallback]


def build_default_registry(
    client: httpx.AsyncClient,
    pool: RenderSessionPool,
    settings: Settings | None = None,
    profiles: dict[str, SelectorProfile] | None = None,
) -> AdapterRegistry:
    """Academic hosts first, then direct PDFs, then the generic fallback."""
    settings = settings or default_settings
    profiles = profiles or load_profiles(settings)

    def rendered(name: str) -> RenderedPageAdapter:
        return RenderedPageAdapter(profiles[name], pool, settings)

    generic = GenericAdapter(
        StaticHtmlAdapter(profiles["generic"], client, settings),
        rendered("generic"),
    )
    routes: list[tuple[UrlMatcher, SourceAdapter]] = [
        (host_contains("scholar.google"), rendered("google_scholar")),
        (host_contains("researchgate.net"), rendered("researchgate")),
        (host_contains("ieee.org"), rendered("ieee")),
        (path_endswith(".pdf"), DirectPdfAdapter(client, settings)),
        (host_contains("arxiv.org"), StaticHtmlAdapter(profiles["arxiv"], client, settings)),
    ]
    return AdapterRegistry(routes, generic)
