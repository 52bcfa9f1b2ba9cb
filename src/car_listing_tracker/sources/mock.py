"""Offline source producing deterministic fake listings.

Useful for exercising the whole pipeline (persistence, reconciliation,
metrics, reports) without touching a real marketplace. Each model has a
fixed pool of vehicles; on any given day a seeded random subset of the
pool is "listed", with prices drifting slightly from day to day. A
vehicle missing from today's pool revisits as sold.
"""

from __future__ import annotations

import random
import re

from car_listing_tracker.items import AVAILABLE, SOLD, Listing, PageContext, Query, ScrapeOptions
from car_listing_tracker.parsing_helpers import today_iso
from car_listing_tracker.rate_limiter import RateLimiter

_TRIMS = ("Base", "SE", "SEL", "Limited")


def _slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


class MockSource:
    """Deterministic stand-in implementing the listing-source contract."""

    name = "mock-source"

    def __init__(self, *, pool_size: int = 20, rate_limit: float = 0.0, clock=today_iso):
        self.pool_size = pool_size
        self.rate_limiter = RateLimiter(rate_limit)
        self._today = clock

    async def launch(self) -> None:
        pass

    async def close(self) -> None:
        pass

    def _pool_member(self, query: Query, index: int, day: str) -> Listing | None:
        listed = random.Random(f"{query.key}:{index}:{day}").random() < 0.85
        if not listed:
            return None
        vehicle = random.Random(f"{query.key}:{index}")
        base_price = vehicle.randrange(25_000, 45_000, 100)
        drift = random.Random(f"{query.key}:{index}:{day}:price").randrange(-1000, 1000, 100)
        return Listing(
            id=f"mock-{_slug(query.key)}-{index}",
            make=query.make,
            model=query.model,
            year=vehicle.randint(2019, 2024),
            trim=vehicle.choice(_TRIMS),
            price=base_price + drift,
            mileage=vehicle.randrange(0, 60_000, 250),
            location="San Francisco, CA",
            url=f"https://example.com/{_slug(query.key)}/{index}",
            listing_date=day,
        )

    async def scrape_model(self, query: Query, options: ScrapeOptions) -> dict:
        day = self._today()
        listings = []
        for index in range(self.pool_size):
            listing = self._pool_member(query, index, day)
            if listing is not None:
                listings.append(listing)
        capped = listings[:options.limit]
        return {"listings": capped, "exceededMax": len(listings) > options.limit}

    async def fetch_page_context(self, url: str) -> PageContext:
        return PageContext(html="", status_code=404, final_url=url, original_url=url)

    def detect_status(self, context: PageContext) -> str:
        return SOLD if context.status_code == 404 else AVAILABLE

    async def validate_listing(self, url: str) -> dict | None:
        return None
