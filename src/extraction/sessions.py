"""sessions.py
Bounded pool of headless-browser sessions (Playwright, Chromium).

Browser contexts are the scarce resource of the pipeline.  A request acquires
one through :meth:`RenderSessionPool.session`, an async context manager that
waits at most ``render_queue_timeout`` for a free slot and always closes the
context on exit, whether the body returns, raises or is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError, Page, async_playwright

from src.common.errors import BusyError, FetchError
from src.common.settings import Settings, settings as default_settings
from src.extraction.fetch import ACCEPT_HTML, random_user_agent

logger = logging.getLogger(__name__)

BrowserLauncher = Callable[[], Awaitable[Any]]

_CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
]


class RenderSessionPool:
    """Caps the number of concurrently open browser contexts.

    Args:
        settings: Supplies ``max_render_sessions``, ``render_queue_timeout``
            and ``headless``.
        launcher: Coroutine factory returning a browser-like object with
            ``new_context(**kwargs)`` and ``close()``.  Defaults to launching
            Chromium through Playwright on first use.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        launcher: Optional[BrowserLauncher] = None,
    ) -> None:
        self._settings = settings or default_settings
        self.max_sessions = max(1, self._settings.max_render_sessions)
        self.queue_timeout = self._settings.render_queue_timeout
        self._semaphore = asyncio.Semaphore(self.max_sessions)
        self._launcher = launcher or self._launch_chromium
        self._launch_lock = asyncio.Lock()
        self._playwright: Any = None
        self._browser: Any = None
        self.active = 0
        self.peak = 0

    async def _launch_chromium(self) -> Any:
        self._playwright = await async_playwright().start()
        try:
            return await self._playwright.chromium.launch(
                headless=self._settings.headless, args=_CHROMIUM_ARGS
            )
        except BaseException:
            await self._playwright.stop()
            self._playwright = None
            raise

    async def _ensure_browser(self) -> Any:
        async with self._launch_lock:
            if self._browser is None:
                logger.info("Launching headless browser")
                self._browser = await self._launcher()
            return self._browser

    @asynccontextmanager
    async def session(self, user_agent: str | None = None) -> AsyncIterator[Page]:
        """Yield a fresh page in its own browser context."""
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self.queue_timeout)
        except asyncio.TimeoutError as exc:
            raise BusyError(
                f"No rendering session free after {self.queue_timeout:.0f}s "
                f"({self.max_sessions} in use)"
            ) from exc

        self.active += 1
        self.peak = max(self.peak, self.active)
        context: Any = None
        try:
            try:
                browser = await self._ensure_browser()
                context = await browser.new_context(
                    user_agent=user_agent or random_user_agent(),
                    viewport={"width": 1366, "height": 768},
                    locale="en-US",
                    extra_http_headers={
                        "Accept-Language": "en-US,en;q=0.9",
                        "Accept": ACCEPT_HTML,
                    },
                )
                page = await context.new_page()
            except PlaywrightError as exc:
                logger.error("Could not open a browser session: %s", exc)
                raise FetchError(f"Could not open a browser session: {exc}") from exc
            yield page
        finally:
            if context is not None:
                try:
                    await context.close()
                except PlaywrightError as exc:
                    logger.warning("Closing browser context failed: %s", exc)
            self.active -= 1
            self._semaphore.release()

    async def close(self) -> None:
        """Close the shared browser (and Playwright driver) if one was started."""
        async with self._launch_lock:
            if self._browser is not None:
                await self._browser.close()
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()  # prevent orphan Playwright process
                self._playwright = None
