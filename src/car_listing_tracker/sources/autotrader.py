"""Source for Autotrader, read through its JSON listing API.

Autotrader's HTML is behind Akamai bot protection, but the JSON endpoints
its own front-end uses are reachable with a browser-like HTTP session.
No browser is needed: the session resource is a
:class:`cloudscraper.CloudScraper`, and the blocking calls run in a
worker thread.

Model names are first resolved to Autotrader's make/model codes through
the keyword-suggestion API, then listings are paged with
``firstRecord`` / ``numRecords``. The API reports ``totalResultCount``,
so ``exceeded_max`` reflects the real inventory size.
"""

from __future__ import annotations

import asyncio
from datetime import date
from urllib.parse import quote

import cloudscraper
from requests import RequestException

from car_listing_tracker import settings
from car_listing_tracker.items import (
    AVAILABLE,
    SOLD,
    Listing,
    PageContext,
    Query,
    ScrapeOptions,
    ScrapeResult,
)
from car_listing_tracker.parsing_helpers import parse_mileage, parse_price, safe_int, today_iso
from car_listing_tracker.sources import ListingSource, SourceError, collect_unseen, log_fetch_failure

BASE_URL = "https://www.autotrader.com"
PAGE_SIZE = 100
DEFAULT_ZIP = "97201"
SEARCH_RADIUS = 50

# Plausibility bounds for API rows; anything outside is a placeholder.
_MIN_PRICE = 1000
_MAX_PRICE = 500_000
_MAX_MILEAGE = 500_000
_MIN_YEAR = 2010


class AutotraderSource(ListingSource):
    """Scrape used-vehicle listings from the Autotrader listing API."""

    name = "autotrader"
    rate_limit = 2.0

    def __init__(self, *, zip_code: str = DEFAULT_ZIP, **kwargs):
        super().__init__(**kwargs)
        self.zip_code = zip_code
        self._session = None

    async def launch(self) -> None:
        self._session = cloudscraper.create_scraper(
            browser={"browser": "chrome", "platform": "darwin", "desktop": True},
        )

    async def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    async def _get(self, url: str, **params):
        response = await asyncio.to_thread(
            self._session.get, url, params=params or None, timeout=settings.HTTP_TIMEOUT,
        )
        response.raise_for_status()
        return response

    # ------------------------------------------------------------------
    # Model code lookup
    # ------------------------------------------------------------------

    async def get_model_codes(self, make: str, model: str) -> tuple[str, str]:
        """Resolve *make* / *model* to Autotrader's ``(makeCode, modelCode)``."""
        term = f"used {make} {model}"
        url = f"{BASE_URL}/collections/lcServices/rest/lsc/marketplace/suggested/keywords/{quote(term)}"
        try:
            suggestions = (await self._get(url)).json()
        except (RequestException, ValueError) as exc:
            raise SourceError(f"Keyword lookup failed for {make} {model}: {exc}") from exc

        match = pick_keyword_match(suggestions or [], term, model)
        if match is None:
            raise SourceError(f'Model "{make} {model}" not found on Autotrader')
        codes = match["codes"]
        self.logger.info(
            '[%s] Found codes makeCode=%s modelCode=%s via "%s"',
            self.name, codes["makeCode"][0], codes["modelCode"][0], match.get("name"),
        )
        return codes["makeCode"][0], codes["modelCode"][0]

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def fetch_listings(self, make_code: str, model_code: str, first_record: int = 0) -> dict:
        data = (await self._get(
            f"{BASE_URL}/rest/lsc/listing",
            searchRadius=SEARCH_RADIUS,
            makeCode=make_code,
            modelCode=model_code,
            zip=self.zip_code,
            numRecords=PAGE_SIZE,
            firstRecord=first_record,
            sortBy="relevance",
            listingType="USED",
        )).json()
        if not isinstance(data, dict) or "listings" not in data:
            raise SourceError("Invalid response format from listing API")
        return data

    async def scrape_model(self, query: Query, options: ScrapeOptions) -> ScrapeResult:
        make_code, model_code = await self.get_model_codes(query.make, query.model)

        listings: list[Listing] = []
        seen: set[str] = set()
        total = 0
        pages = 0

        while pages < options.max_pages and len(listings) < options.limit:
            data = await self.fetch_listings(make_code, model_code, first_record=pages * PAGE_SIZE)
            pages += 1
            total = safe_int(data.get("totalResultCount")) or 0
            rows = data.get("listings") or []

            page_listings = []
            for row in rows:
                try:
                    page_listings.append(convert_listing(row, query))
                except ValueError as exc:
                    self.logger.warning("[%s] Skipping invalid listing: %s", self.name, exc)
            collect_unseen(listings, seen, page_listings)

            if len(rows) < PAGE_SIZE or pages * PAGE_SIZE >= total:
                break

        if total > options.limit:
            self.logger.info(
                "[%s] %d listings available for %s, capped at %d",
                self.name, total, query.key, options.limit,
            )
        return ScrapeResult(listings=listings, exceeded_max=total > options.limit)

    # ------------------------------------------------------------------
    # Status revisits
    # ------------------------------------------------------------------

    async def fetch_page_context(self, url: str) -> PageContext:
        try:
            response = await asyncio.to_thread(
                self._session.get, url, timeout=settings.HTTP_TIMEOUT, allow_redirects=True,
            )
        except RequestException as exc:
            log_fetch_failure(exc, url, self.name, self.logger)
            raise
        return PageContext(
            html=response.text,
            status_code=response.status_code,
            final_url=response.url,
            original_url=url,
        )

    def detect_status(self, context: PageContext) -> str:
        html = context.html.lower()
        if context.status_code in (404, 410) or "no longer available" in html:
            return SOLD
        # Removed listings redirect back to a search results page.
        if context.was_redirected and "/cars-for-sale/vehicle/" not in context.final_url:
            return SOLD
        return AVAILABLE


def pick_keyword_match(suggestions: list[dict], term: str, model: str) -> dict | None:
    """Choose the keyword suggestion that best names *model*.

    An exact (case-insensitive) name match wins. Otherwise the shortest
    suggestion containing every model word longer than two characters
    is used, since extra words mean a more specific sub-model.
    """
    valid = [
        s for s in suggestions
        if (s.get("codes") or {}).get("makeCode") and (s.get("codes") or {}).get("modelCode")
    ]
    term_lower = term.lower()
    for s in valid:
        if (s.get("name") or "").lower() == term_lower:
            return s

    words = [w for w in model.lower().split() if len(w) > 2]
    relevant = [
        s for s in valid
        if all(w in (s.get("name") or "").lower() for w in words)
    ]
    if not relevant:
        return None
    return min(relevant, key=lambda s: len(s.get("name") or ""))


def convert_listing(row: dict, query: Query) -> Listing:
    """Convert one listing-API row; raises ``ValueError`` for implausible rows."""
    listing_id = row.get("id")
    if not listing_id:
        raise ValueError("Missing listing ID")

    price = parse_price((row.get("pricingDetail") or {}).get("salePrice")) or 0
    if not _MIN_PRICE <= price <= _MAX_PRICE:
        raise ValueError(f"Invalid price: {price}")

    mileage_raw = (
        (row.get("mileage") or {}).get("value")
        or ((row.get("specifications") or {}).get("mileage") or {}).get("value")
        or "0"
    )
    mileage = parse_mileage(mileage_raw) or 0
    if mileage > _MAX_MILEAGE:
        raise ValueError(f"Invalid mileage: {mileage}")

    year = safe_int(row.get("year"))
    if not year or not _MIN_YEAR <= year <= date.today().year + 1:
        raise ValueError(f"Invalid year: {year}")

    return Listing(
        id=f"autotrader-{listing_id}",
        make=query.make,
        model=query.model,
        year=year,
        trim=(row.get("trim") or {}).get("name") or "Base",
        price=price,
        mileage=mileage,
        location="Autotrader",
        url=f"{BASE_URL}/cars-for-sale/vehicle/{listing_id}",
        listing_date=today_iso(),
        vin=row.get("vin") or None,
    )
