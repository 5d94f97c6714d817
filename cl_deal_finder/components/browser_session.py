"""
Headless browser session management.

A single Chromium instance is launched lazily on first use and reused by
every search in a batch sweep; the owner tears it down explicitly when
the sweep (or a standalone diagnostic run) ends.
"""

from typing import List, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from ..models.config import DEFAULT_BROWSER_ARGS, DEFAULT_USER_AGENT
from ..utils.logging import get_logger

logger = get_logger("craigslist")


class BrowserSession:
    """Lazily launched, explicitly closed Playwright Chromium session."""

    def __init__(
        self,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        viewport_width: int = 1280,
        viewport_height: int = 720,
        launch_args: Optional[List[str]] = None,
    ):
        self.headless = headless
        self.user_agent = user_agent
        self.viewport = {"width": viewport_width, "height": viewport_height}
        self.launch_args = list(launch_args or DEFAULT_BROWSER_ARGS)

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    @classmethod
    def from_config(cls, marketplace_config) -> "BrowserSession":
        return cls(
            headless=marketplace_config.headless,
            user_agent=marketplace_config.user_agent,
            viewport_width=marketplace_config.viewport_width,
            viewport_height=marketplace_config.viewport_height,
            launch_args=marketplace_config.browser_args,
        )

    @property
    def is_open(self) -> bool:
        return self._browser is not None

    async def get_browser(self) -> Browser:
        """Return the shared browser, launching it on first use."""
        if self._browser is None:
            logger.info("Launching headless Chromium")
            self._playwright = await async_playwright().start()
            try:
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless, args=self.launch_args
                )
            except Exception:
                await self._playwright.stop()
                self._playwright = None
                raise
        return self._browser

    async def new_context(self) -> BrowserContext:
        """Open an isolated context with a desktop user agent and viewport."""
        browser = await self.get_browser()
        return await browser.new_context(
            user_agent=self.user_agent, viewport=self.viewport
        )

    async def close(self) -> None:
        """Close the browser and stop Playwright; a no-op when never launched."""
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None

        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")

        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping playwright: {e}")

        if browser is not None:
            logger.info("Browser session closed")
