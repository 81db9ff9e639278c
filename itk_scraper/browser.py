"""
Playwright browser handle: one browser, one context, one page
"""

import logging
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from .config import BROWSER_ARGS, USER_AGENT, VIEWPORT, Settings

log = logging.getLogger(__name__)


class BrowserManager:
    """
    Owns the Playwright process, the browser, its context and the single page
    every automation run drives.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def page(self) -> Optional[Page]:
        return self._page

    @property
    def is_connected(self) -> bool:
        if self.browser is None or self._page is None:
            return False
        return self.browser.is_connected() and not self._page.is_closed()

    async def start(self) -> Page:
        """Launch the browser (or reuse the live one) and return its page"""
        if self.is_connected:
            return self._page

        if self.browser is not None:
            log.warning("Browser connection lost, relaunching")
            await self.close()

        log.info("Launching persistent browser instance...")
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=self.settings.headless,
            slow_mo=self.settings.slow_mo,
            args=BROWSER_ARGS,
        )
        self.context = await self.browser.new_context(
            user_agent=USER_AGENT,
            viewport=VIEWPORT,
            locale="en-US",
        )
        self._page = await self.context.new_page()
        self._page.set_default_timeout(self.settings.field_timeout_ms)
        self._page.set_default_navigation_timeout(self.settings.navigation_timeout_ms)
        log.info("Browser instance ready")
        return self._page

    async def close(self) -> None:
        """Close page, context, browser and Playwright; each step best-effort"""
        cleanup_errors = []

        if self._page is not None:
            try:
                await self._page.close()
            except Exception as e:
                cleanup_errors.append(f"Error closing page: {e}")
            self._page = None

        if self.context is not None:
            try:
                await self.context.close()
            except Exception as e:
                cleanup_errors.append(f"Error closing context: {e}")
            self.context = None

        if self.browser is not None:
            try:
                await self.browser.close()
            except Exception as e:
                cleanup_errors.append(f"Error closing browser: {e}")
            self.browser = None

        if self.playwright is not None:
            try:
                await self.playwright.stop()
            except Exception as e:
                cleanup_errors.append(f"Error stopping playwright: {e}")
            self.playwright = None

        for error in cleanup_errors:
            log.warning(error)
        log.info("Browser closed")
