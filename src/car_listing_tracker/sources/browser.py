"""Headless-browser session shared by sources that render pages with Playwright."""

from __future__ import annotations

from playwright.async_api import async_playwright
from scrapy import Selector

from car_listing_tracker import settings
from car_listing_tracker.items import PageContext
from car_listing_tracker.sources import ListingSource
from car_listing_tracker.stealth import apply_stealth


class BrowserSource(ListingSource):
    """A source whose session resource is one Chromium page."""

    use_stealth: bool = False

    def __init__(self, *, headless: bool | None = None, **kwargs):
        super().__init__(**kwargs)
        self.headless = settings.HEADLESS if headless is None else headless
        self._playwright = None
        self._browser = None
        self._context = None
        self.page = None

    async def launch(self) -> None:
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.headless,
            args=settings.BROWSER_LAUNCH_ARGS,
        )
        self._context = await self._browser.new_context(**settings.BROWSER_CONTEXT)
        self.page = await self._context.new_page()
        if self.use_stealth:
            await apply_stealth(self.page)
        self.logger.debug("[%s] Browser launched (headless=%s)", self.name, self.headless)

    async def close(self) -> None:
        try:
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        finally:
            if self._playwright is not None:
                await self._playwright.stop()
            self._playwright = self._browser = self._context = self.page = None

    # ------------------------------------------------------------------
    # Page helpers
    # ------------------------------------------------------------------

    async def goto(self, url: str, *, wait_until: str = "networkidle"):
        return await self.page.goto(
            url, wait_until=wait_until, timeout=settings.NAVIGATION_TIMEOUT,
        )

    async def settle(self, seconds: float = settings.SETTLE_DELAY) -> None:
        """Give client-side rendering a moment after navigation or a click."""
        await self.page.wait_for_timeout(seconds * 1000)

    async def selector(self) -> Selector:
        """Snapshot the current DOM as a Scrapy selector."""
        return Selector(text=await self.page.content())

    async def fetch_page_context(self, url: str) -> PageContext:
        response = await self.goto(url)
        final_url = self.page.url
        await self.page.wait_for_selector("body", timeout=settings.SELECTOR_TIMEOUT)
        await self.settle()
        return PageContext(
            html=await self.page.content(),
            status_code=response.status if response is not None else None,
            final_url=final_url,
            original_url=url,
        )
