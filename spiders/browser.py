"""Playwright-driven evasion layer.

Procures a rendered document for pages that the plain HTTP path cannot get
past (WAF challenges, JS-rendered catalogs). The layer never parses
content; it returns HTML for the source adapter to parse.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from playwright.async_api import async_playwright, Error as PlaywrightError, BrowserContext, Page

from config.exceptions import EvasionTimeoutError, FetchError
from config.settings import Settings
from spiders.challenge import is_challenge_page

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Chrome args that prevent common bot-detection heuristics
_STEALTH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--no-default-browser-check",
]

POLL_INTERVAL_S = 1.0


class BrowserManager:
    """Manages a persistent Playwright Chromium context.

    The user-data directory keeps cookies between runs, so a challenge solved
    once by hand in the visible window stays solved for later headless fetches.
    """

    def __init__(self, user_data_dir: str | Path):
        self.user_data_dir = str(user_data_dir)
        self._playwright = None
        self._context: Optional[BrowserContext] = None
        self.headless: Optional[bool] = None

    @property
    def is_running(self) -> bool:
        return self._context is not None

    def _on_context_close(self, context: BrowserContext) -> None:
        # The user closed the window, or the browser process died
        if context is self._context:
            logger.warning("Browser context closed externally")
            self._context = None

    @property
    def context(self) -> BrowserContext:
        if not self._context:
            raise RuntimeError("Browser not launched. Call launch() first.")
        return self._context

    async def launch(self, headless: bool = True):
        """Launch Chromium with a persistent user-data directory."""
        Path(self.user_data_dir).mkdir(parents=True, exist_ok=True)
        self._playwright = await async_playwright().start()
        logger.info("Launching browser context in %s (headless=%s)", self.user_data_dir, headless)
        self._context = await self._playwright.chromium.launch_persistent_context(
            user_data_dir=self.user_data_dir,
            headless=headless,
            viewport={"width": 1280, "height": 800},
            locale="zh-CN",
            user_agent=BROWSER_USER_AGENT,
            args=_STEALTH_ARGS,
        )
        self._context.on("close", self._on_context_close)
        self.headless = headless

    async def new_page(self) -> Page:
        return await self.context.new_page()

    async def close(self):
        """Close browser and stop Playwright."""
        context, self._context = self._context, None
        playwright, self._playwright = self._playwright, None
        self.headless = None
        try:
            if context:
                await context.close()
        finally:
            if playwright:
                await playwright.stop()
        logger.info("Browser closed")


class EvasionLayer:
    """Fetches documents through a real browser session.

    Fetches are serialized: one page is driven at a time, the same way a
    single spider window would be.
    """

    def __init__(
        self,
        settings: Settings,
        manager_factory: Callable[[Path], BrowserManager] = BrowserManager,
    ):
        self.settings = settings
        self.timeout = settings.evasion_timeout
        self.settle = settings.evasion_settle
        self.poll_interval = POLL_INTERVAL_S
        self._manager_factory = manager_factory
        self._manager: Optional[BrowserManager] = None
        self._lock = asyncio.Lock()

    async def _ensure_browser(self, visible: bool) -> BrowserManager:
        headless = not visible
        if self._manager and self._manager.is_running and self._manager.headless == headless:
            return self._manager
        if self._manager and self._manager.is_running:
            # Visibility changed: relaunch with the same profile
            await self._manager.close()
        if self._manager is None:
            self._manager = self._manager_factory(self.settings.browser_user_data_dir)
        try:
            await self._manager.launch(headless=headless)
        except PlaywrightError as e:
            raise FetchError(f"Failed to launch browser: {e}") from e
        return self._manager

    async def fetch_document(
        self,
        url: str,
        ready_selectors: tuple[str, ...] = (),
        visible: Optional[bool] = None,
        extra_signatures: tuple[str, ...] = (),
    ) -> str:
        """Load ``url`` in the browser and return its HTML once usable.

        Args:
            url: Page to load.
            ready_selectors: CSS selectors of which at least one must be present
                before the page counts as loaded. Empty = any non-challenge page.
            visible: Show the browser window (for manual solving). Defaults to
                the ``evasion_visible`` setting.
            extra_signatures: Platform-specific challenge markers.

        Raises:
            EvasionTimeoutError: No usable page within ``evasion_timeout``.
            FetchError: The browser could not be started or navigation failed hard.
        """
        if visible is None:
            visible = self.settings.evasion_visible

        async with self._lock:
            manager = await self._ensure_browser(visible)
            loop = asyncio.get_running_loop()
            # One deadline covers navigation and polling
            deadline = loop.time() + self.timeout
            try:
                page = await manager.new_page()
            except PlaywrightError as e:
                await self._discard_browser()
                raise FetchError(f"Browser page unavailable: {e}", url) from e
            try:
                logger.info("Browser fetch: %s (visible=%s)", url, visible)
                # Playwright treats timeout=0 as "no timeout"
                goto_timeout_ms = max((deadline - loop.time()) * 1000, 1)
                try:
                    await page.goto(url, wait_until="domcontentloaded", timeout=goto_timeout_ms)
                except PlaywrightError as e:
                    # A challenge page can keep the load pending; keep polling
                    logger.warning("Navigation did not settle for %s: %s", url, e)
                return await self._wait_until_ready(page, url, deadline, ready_selectors, extra_signatures)
            finally:
                try:
                    await page.close()
                except PlaywrightError as e:
                    logger.debug("Page close failed: %s", e)

    async def _wait_until_ready(
        self,
        page: Page,
        url: str,
        deadline: float,
        ready_selectors: tuple[str, ...],
        extra_signatures: tuple[str, ...],
    ) -> str:
        loop = asyncio.get_running_loop()
        while True:
            try:
                html = await page.content()
                if not is_challenge_page(html, extra_signatures) and await self._has_any(page, ready_selectors):
                    if self.settle:
                        await asyncio.sleep(self.settle)
                        html = await page.content()
                    logger.info("Browser fetch succeeded: %s (%d bytes)", url, len(html))
                    return html
            except PlaywrightError as e:
                # Context destroyed by a redirect after the challenge cleared
                logger.debug("Page not readable yet (%s): %s", url, e)

            if loop.time() >= deadline:
                logger.error("Browser fetch timed out after %ss: %s", self.timeout, url)
                raise EvasionTimeoutError(url, self.timeout)
            await asyncio.sleep(self.poll_interval)

    @staticmethod
    async def _has_any(page: Page, selectors: tuple[str, ...]) -> bool:
        if not selectors:
            return True
        for selector in selectors:
            if await page.query_selector(selector) is not None:
                return True
        return False

    async def _discard_browser(self) -> None:
        """Drop a dead browser so the next fetch relaunches it."""
        if self._manager is None:
            return
        try:
            await self._manager.close()
        except PlaywrightError as e:
            logger.debug("Closing dead browser failed: %s", e)

    async def close(self):
        async with self._lock:
            if self._manager and self._manager.is_running:
                await self._manager.close()
