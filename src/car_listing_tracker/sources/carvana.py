"""Source for Carvana search results.

Carvana's filter URLs change often, so this source types the query into
the site search box and lets Carvana's own autocomplete resolve it.
Results are ``[data-qa="result-tile"]`` cards split into numbered pages
behind a ``[data-qa="next-page"]`` button. Weak matches are shown below a
"We didn't find many matches" heading; those are ignored.

Carvana runs aggressive bot detection, so the browser is stealth-patched.
"""

from __future__ import annotations

import re

from scrapy import Selector

from car_listing_tracker import settings
from car_listing_tracker.items import (
    AVAILABLE,
    SELLING,
    SOLD,
    Listing,
    PageContext,
    Query,
    ScrapeOptions,
    ScrapeResult,
)
from car_listing_tracker.parsing_helpers import (
    clean_text,
    extract_year,
    parse_mileage,
    parse_price,
    title_matches,
    today_iso,
)
from car_listing_tracker.sources import SourceError, collect_unseen
from car_listing_tracker.sources.browser import BrowserSource

BASE_URL = "https://www.carvana.com"

_SEARCH_INPUT = 'input[placeholder*="Search"]'
_TILE_SELECTOR = '[data-qa="result-tile"]'
_NEXT_PAGE_SELECTOR = '[data-qa="next-page"]'
_WEAK_MATCHES_TEXT = "WE DIDN'T FIND"

_VEHICLE_ID_RE = re.compile(r"/vehicle/(\d+)")


class CarvanaSource(BrowserSource):
    """Scrape used-vehicle listings from carvana.com."""

    name = "carvana"
    use_stealth = True

    async def scrape_model(self, query: Query, options: ScrapeOptions) -> ScrapeResult:
        await self.goto(BASE_URL)
        await self.page.wait_for_selector(_SEARCH_INPUT, timeout=settings.SELECTOR_TIMEOUT)
        await self.page.type(_SEARCH_INPUT, query.key)
        await self.settle()  # let autocomplete catch up
        await self.page.keyboard.press("Enter")

        try:
            await self.page.wait_for_selector(_TILE_SELECTOR, timeout=settings.SELECTOR_TIMEOUT)
        except Exception as exc:
            raise SourceError(f"No result tiles for {query.key}: {exc}") from exc

        listings: list[Listing] = []
        seen: set[str] = set()
        pages = 0

        while pages < options.max_pages and len(listings) < options.limit:
            pages += 1
            await self.settle()

            page_listings = parse_listings(await self.selector(), query, logger=self.logger)
            collect_unseen(listings, seen, page_listings)
            if len(listings) >= options.limit:
                break

            button = await self.page.query_selector(f"{_NEXT_PAGE_SELECTOR}:not([disabled])")
            if button is None:
                break
            await button.click()
            await self.settle(settings.LOAD_MORE_DELAY)

        self.logger.info("[%s] %d listings over %d pages", self.name, len(listings), pages)
        return ScrapeResult(listings=listings, exceeded_max=len(listings) >= options.limit)

    def detect_status(self, context: PageContext) -> str:
        html = context.html.lower()
        if (
            "purchase in progress" in html
            or "purchase pending" in html
            or "another customer started purchasing" in html
        ):
            return SELLING
        if "is no longer available" in html or "not available" in html:
            return SOLD
        return AVAILABLE

    async def validate_listing(self, url: str) -> dict | None:
        await self.goto(url)
        await self.page.wait_for_selector("body", timeout=settings.SELECTOR_TIMEOUT)
        heading = (await self.selector()).css('[data-qa="base-vehicle-name"]')
        title = clean_text(heading[0].xpath("string()").get()) if heading else None
        if not title:
            return None
        m = re.match(r"^(\d{4})\s+([A-Za-z-]+)\s+(.+)$", title)
        return {"make": m.group(2), "model": m.group(3)} if m else None


def parse_listings(selector: Selector, query: Query, logger=None) -> list[Listing]:
    """Extract listings for *query* from one Carvana results page."""
    listings: list[Listing] = []
    today = today_iso()
    above_heading = 0
    non_matching = 0

    # Tiles after the weak-matches heading are "similar vehicles", not results.
    tiles = selector.xpath(
        f'//*[@data-qa="result-tile"][not(preceding::*[contains(text(), "{_WEAK_MATCHES_TEXT}")])]'
    )

    for tile in tiles:
        title = clean_text(tile.css('[data-qa="make-model"]').xpath("string()").get()) or ""
        above_heading += 1
        if not title_matches(title, query.make, query.model):
            non_matching += 1
            continue

        href = tile.css("a::attr(href)").get() or ""
        id_match = _VEHICLE_ID_RE.search(href)
        if not id_match:
            if logger:
                logger.warning("[carvana] Could not extract vehicle ID from URL: %s", href)
            continue

        price = parse_price(tile.css('[data-qa="price"]').xpath("string()").get())
        year = extract_year(title)
        if not price or not year:
            continue

        # "SE Sport Utility 4D • 12K mi"
        trim_mileage = clean_text(tile.css('[data-qa="trim-mileage"]').xpath("string()").get()) or ""
        parts = [p.strip() for p in trim_mileage.split("•")]
        trim = parts[0] or "Base"
        mileage = parse_mileage(parts[1]) if len(parts) > 1 else None

        listings.append(Listing(
            id=f"carvana-{id_match.group(1)}",
            make=query.make,
            model=query.model,
            year=year,
            trim=trim,
            price=price,
            mileage=mileage or 0,
            location="Carvana",
            url=href if href.startswith("http") else f"{BASE_URL}{href}",
            listing_date=today,
        ))

    if above_heading and non_matching / above_heading > 0.5 and logger:
        logger.warning(
            "[carvana] %d/%d results don't match %s; search may not support this model name",
            non_matching, above_heading, query.key,
        )
    return listings
