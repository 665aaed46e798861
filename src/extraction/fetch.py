"""fetch.py
HTTP helpers for the static adapters: browser-like headers, a shared
``httpx.AsyncClient`` and *tenacity*-driven retries for transient failures.
"""

from __future__ import annotations

import logging
import random
from contextlib import contextmanager
from typing import Iterator

import httpx
from httpx import Limits
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.common.errors import FetchError, OperationTimeoutError
from src.common.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Safari/605.1.15",
)

# Upper bound (seconds) of a single backoff wait between retries.
RETRY_BACKOFF_CAP = 8.0

ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


def browser_headers(user_agent: str | None = None) -> dict[str, str]:
    return {
        "User-Agent": user_agent or random_user_agent(),
        "Accept": ACCEPT_HTML,
        "Accept-Language": "en-US,en;q=0.9",
        "Upgrade-Insecure-Requests": "1",
    }


def create_client(settings: Settings | None = None) -> httpx.AsyncClient:
    """Shared client for every static fetch (keep-alive, redirects followed)."""
    settings = settings or default_settings
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=settings.http_timeout,
        limits=Limits(
            max_connections=settings.http_concurrency,
            max_keepalive_connections=settings.http_concurrency,
        ),
    )


def _is_transient(exc: BaseException) -> bool:
    """Transport errors and 5xx responses are retried; 4xx are permanent."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


def retrying(attempts: int, backoff: float = 0.5) -> AsyncRetrying:
    return AsyncRetrying(
        stop=stop_after_attempt(max(attempts, 1)),
        wait=wait_exponential(multiplier=backoff, min=backoff, max=RETRY_BACKOFF_CAP),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )


@contextmanager
def translate_http_errors(url: str) -> Iterator[None]:
    """Map *httpx* exceptions onto the pipeline error taxonomy."""
    try:
        yield
    except httpx.HTTPStatusError as exc:
        status = exc.response.status_code
        raise FetchError(f"HTTP {status} for {url}", url=url, status=status) from exc
    except httpx.TimeoutException as exc:
        raise OperationTimeoutError(f"Timed out fetching {url}") from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"Could not fetch {url}: {exc}", url=url) from exc


async def get_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    timeout: float | None = None,
    attempts: int = 3,
    backoff: float = 0.5,
) -> httpx.Response:
    """GET *url*, retrying transient failures; raise :class:`FetchError` otherwise."""
    with translate_http_errors(url):
        async for attempt in retrying(attempts, backoff):
            with attempt:
                resp = await client.get(url, headers=headers, timeout=timeout)
                resp.raise_for_status()
    return resp


async def get_bytes_bounded(
    client: httpx.AsyncClient,
    url: str,
    *,
    max_bytes: int,
    headers: dict[str, str] | None = None,
    timeout: float | None = None,
    attempts: int = 3,
    backoff: float = 0.5,
) -> bytes:
    """Stream *url* into memory, refusing bodies larger than *max_bytes*."""
    with translate_http_errors(url):
        async for attempt in retrying(attempts, backoff):
            with attempt:
                async with client.stream("GET", url, headers=headers, timeout=timeout) as resp:
                    resp.raise_for_status()
                    declared = resp.headers.get("content-length")
                    if declared and declared.isdigit() and int(declared) > max_bytes:
                        raise FetchError(
                            f"{url} is {int(declared)} bytes, above the {max_bytes} byte limit",
                            url=url,
                        )
                    buf = bytearray()
                    async for chunk in resp.aiter_bytes():
                        buf.extend(chunk)
                        if len(buf) > max_bytes:
                            raise FetchError(
                                f"{url} exceeded the {max_bytes} byte limit", url=url
                            )
    logger.debug("Downloaded %d bytes from %s", len(buf), url)
    return bytes(buf)
