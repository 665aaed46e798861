"""profiles.py
Per-site CSS selector cascades.

Selectors are configuration, not a correctness contract: sites redesign their
markup, so every list is tried in order and the first non-empty value wins.
A selector may end in ``@attr`` to read an attribute instead of element text.
Any profile can be replaced by name through ``SELECTOR_PROFILES_FILE``.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from src.common.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_ATTR_SUFFIX = re.compile(r"^(?P<css>.+?)@(?P<attr>[\w-]+)$")


def split_selector(selector: str) -> tuple[str, Optional[str]]:
    """``'meta[name=x]@content'`` -> ``('meta[name=x]', 'content')``."""
    m = _ATTR_SUFFIX.match(selector.strip())
    if m:
        return m.group("css"), m.group("attr")
    return selector.strip(), None


class SelectorProfile(BaseModel):
    """Selector cascades for one source shape."""

    name: str
    title: list[str] = Field(default_factory=list)
    authors: list[str] = Field(default_factory=list)
    author_cutoff: Optional[str] = Field(
        default=None,
        description="Regex; author text after the first match is discarded",
    )
    abstract: list[str] = Field(default_factory=list)
    year: list[str] = Field(default_factory=list)
    pdf_link: list[str] = Field(default_factory=list)
    content: list[str] = Field(default_factory=list)
    body_fallback: bool = False
    strip_prefixes: list[str] = Field(default_factory=list)


_HIGHWIRE_TITLE = 'meta[name="citation_title"]@content'
_HIGHWIRE_AUTHOR = 'meta[name="citation_author"]@content'
_HIGHWIRE_PDF = 'meta[name="citation_pdf_url"]@content'
_HIGHWIRE_DATE = 'meta[name="citation_publication_date"]@content'

BUILTIN_PROFILES: dict[str, SelectorProfile] = {
    "google_scholar": SelectorProfile(
        name="google_scholar",
        title=["h3 a", ".gs_rt a", "h3", ".gs_rt"],
        authors=[".gs_a"],
        author_cutoff=r"\s+-\s+",
        abstract=[".gs_rs"],
        year=[".gs_a"],
        pdf_link=['a[href*=".pdf"]@href'],
    ),
    "researchgate": SelectorProfile(
        name="researchgate",
        title=["h1", _HIGHWIRE_TITLE],
        authors=['[data-testid="author-name"]', _HIGHWIRE_AUTHOR],
        abstract=['[data-testid="publication-abstract"]', 'meta[name="description"]@content'],
        year=[".publication-meta", _HIGHWIRE_DATE],
        pdf_link=[_HIGHWIRE_PDF],
    ),
    "ieee": SelectorProfile(
        name="ieee",
        title=[".document-title span", "h1.document-title", _HIGHWIRE_TITLE],
        authors=[".authors-info .author", _HIGHWIRE_AUTHOR],
        abstract=[".abstract-text", 'meta[property="og:description"]@content'],
        year=[".publication-date", ".doc-abstract-pubdate", _HIGHWIRE_DATE],
        pdf_link=[_HIGHWIRE_PDF],
    ),
    "arxiv": SelectorProfile(
        name="arxiv",
        title=["h1.title", ".title", _HIGHWIRE_TITLE],
        authors=[".authors a", _HIGHWIRE_AUTHOR],
        abstract=["blockquote.abstract", ".abstract"],
        year=[".submission-history", ".dateline", 'meta[name="citation_date"]@content'],
        pdf_link=["a.download-pdf@href", _HIGHWIRE_PDF],
        strip_prefixes=["Title:", "Abstract:"],
    ),
    "generic": SelectorProfile(
        name="generic",
        title=[_HIGHWIRE_TITLE, 'meta[property="og:title"]@content', "title", "h1"],
        authors=[_HIGHWIRE_AUTHOR, 'meta[name="author"]@content'],
        abstract=[
            'meta[name="citation_abstract"]@content',
            'meta[name="description"]@content',
            'meta[property="og:description"]@content',
        ],
        year=[
            _HIGHWIRE_DATE,
            'meta[name="citation_date"]@content',
            'meta[property="article:published_time"]@content',
        ],
        pdf_link=[_HIGHWIRE_PDF],
        content=["article", ".content", ".main", "#content", "main"],
        body_fallback=True,
    ),
}


def load_profiles(settings: Settings | None = None) -> dict[str, SelectorProfile]:
    """Built-in profiles, overridden by name from ``selector_profiles_file``."""
    settings = settings or default_settings
    profiles = dict(BUILTIN_PROFILES)

    path: Optional[Path] = settings.selector_profiles_file
    if path is None:
        return profiles

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    for name, overrides in raw.items():
        profiles[name] = SelectorProfile.model_validate({"name": name, **overrides})
        logger.info("Selector profile '%s' overridden from %s", name, path)
    return profiles
