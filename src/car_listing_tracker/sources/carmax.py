"""Source for CarMax used-vehicle search results.

CarMax renders search results as ``article.scct--car-tile`` cards and
reveals more of them with a "See more matches" button rather than
numbered pages, so pagination here means clicking that button until the
target count is reached or the button disappears.

Example usage::

    car-listing-tracker run --source carmax --models "ioniq 5"
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
    today_iso,
)
from car_listing_tracker.sources import collect_unseen
from car_listing_tracker.sources.browser import BrowserSource

BASE_URL = "https://www.carmax.com"

_CARD_SELECTOR = "article.scct--car-tile"
_LOAD_MORE_SELECTOR = "#see-more-button"


class CarMaxSource(BrowserSource):
    """Scrape used-vehicle listings from carmax.com."""

    name = "carmax"

    async def scrape_model(self, query: Query, options: ScrapeOptions) -> ScrapeResult:
        await self.goto(build_search_url(query.make, query.model))
        await self.page.wait_for_selector("body", timeout=settings.SELECTOR_TIMEOUT)
        await self.settle(2)

        listings: list[Listing] = []
        seen: set[str] = set()
        pages = 0

        while pages < options.max_pages and len(listings) < options.limit:
            pages += 1
            await self.settle()

            page_listings = parse_listings(await self.selector(), query, logger=self.logger)
            added = collect_unseen(listings, seen, page_listings)
            self.logger.info(
                "[%s] Page %d: %d new listings (%d total)",
                self.name, pages, added, len(listings),
            )
            if len(listings) >= options.limit:
                break

            button = await self.page.query_selector(_LOAD_MORE_SELECTOR)
            if button is None:
                break
            await button.click()
            await self.settle(settings.LOAD_MORE_DELAY)

        # CarMax does not expose a reliable total, so reaching the cap is
        # the only signal that inventory was truncated.
        return ScrapeResult(listings=listings, exceeded_max=len(listings) >= options.limit)

    def detect_status(self, context: PageContext) -> str:
        html = context.html.lower()
        # Sold checks come first: a sold page may still mention "reserved".
        if (
            context.status_code == 404
            or ">sold<" in html
            or "sold\n" in html
            or "page not found" in html
            or "this car is sold" in html
            or "vehicle has been sold" in html
        ):
            return SOLD
        if "reserved" in html or "this car is on hold" in html:
            return SELLING
        return AVAILABLE

    async def validate_listing(self, url: str) -> dict | None:
        await self.goto(url)
        await self.page.wait_for_selector("body", timeout=settings.SELECTOR_TIMEOUT)
        heading = (await self.selector()).css("h1[class*='title']")
        title = clean_text(heading[0].xpath("string()").get()) if heading else None
        return parse_detail_title(title)


def build_search_url(make: str, model: str) -> str:
    """Return the CarMax search URL for *make* / *model*.

    Most models have a path URL (``/cars/tesla/model-3``). Models with an
    ``EV`` suffix or a dot in the name do not, so they use the free-text
    ``search`` parameter instead.
    """
    if re.search(r"\s+EV$", model, re.IGNORECASE) or "." in model:
        term = re.sub(r"\s+", "+", f"{make} {model}".lower())
        return f"{BASE_URL}/cars?search={term}"
    make_slug = re.sub(r"\s+", "-", make.lower())
    model_slug = re.sub(r"\s+", "-", model.lower())
    return f"{BASE_URL}/cars/{make_slug}/{model_slug}"


def parse_listings(selector: Selector, query: Query, logger=None) -> list[Listing]:
    """Extract listings for *query* from a CarMax search results page."""
    listings: list[Listing] = []
    today = today_iso()
    model_lower = query.model.lower()

    for card in selector.css(_CARD_SELECTOR):
        stock_id = card.attrib.get("data-id")
        if not stock_id:
            if logger:
                logger.warning("[carmax] Could not extract stock ID from listing")
            continue

        title = clean_text(" ".join(card.css(".scct--make-model-info ::text").getall())) or ""
        trim_text = clean_text(
            " ".join(card.css(".scct--make-model-info--model-trim ::text").getall())
        ) or ""

        # Suggestions for other models ("Equinox" when searching
        # "Equinox EV") are mixed into the results.
        if model_lower not in title.lower():
            continue
        if query.model.upper().endswith(" EV") and "ev" not in trim_text.lower():
            continue

        price = parse_price(card.css(".scct--price-miles-info--price::text").get())
        year = extract_year(title)
        if not price or not year:
            continue

        # The trim span reads "<Model> <Trim>"; drop the model part.
        if trim_text.lower().startswith(model_lower):
            trim = trim_text[len(query.model):].strip() or "Base"
        else:
            trim_parts = trim_text.split(" ")
            trim = " ".join(trim_parts[1:]) if len(trim_parts) > 1 else "Base"

        href = card.css("a.scct--make-model-info-link::attr(href)").get()
        listings.append(Listing(
            id=stock_id,
            make=query.make,
            model=query.model,
            year=year,
            trim=trim,
            price=price,
            mileage=parse_mileage(card.css(".scct--price-miles-info--mileage::text").get()) or 0,
            location="CarMax",
            url=f"{BASE_URL}{href}" if href else "",
            listing_date=today,
        ))
    return listings


def parse_detail_title(title: str | None) -> dict | None:
    """Split a detail title like ``2023 Tesla Model 3 Long Range`` into make/model.

    The model is taken as the first (up to) three words after the make,
    which over-reads into the trim for one-word models; audits only
    check that the expected model is *contained* in it.
    """
    if not title:
        return None
    m = re.match(r"^(\d{4})\s+([A-Za-z-]+)\s+(.+)$", title)
    if not m:
        return None
    model = " ".join(m.group(3).split()[:3])
    return {"make": m.group(2), "model": model}
