"""Items and value types shared by the scraping and metrics code."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

import scrapy

from car_listing_tracker import settings

# Purchase-status lifecycle values reported by ``detect_status``.
AVAILABLE = "available"
SELLING = "selling"  # reserved / purchase pending
SOLD = "sold"

STATUSES = frozenset({AVAILABLE, SELLING, SOLD})


class Listing(scrapy.Item):
    """A single vehicle offer observed at one source on one day."""

    # Identifiers
    id = scrapy.Field()  # source-namespaced, stable across days
    vin = scrapy.Field()

    # Vehicle info
    make = scrapy.Field()
    model = scrapy.Field()
    year = scrapy.Field()
    trim = scrapy.Field()
    normalized_trim = scrapy.Field()  # filled in by the trim normaliser, never here

    # Offer
    price = scrapy.Field()
    mileage = scrapy.Field()
    location = scrapy.Field()
    url = scrapy.Field()

    # Lifecycle
    listing_date = scrapy.Field()  # first observation by this pipeline
    purchase_status = scrapy.Field()  # absent while available


@dataclass(frozen=True)
class Query:
    """A tracked (make, model) pair with an optional target count."""

    make: str
    model: str
    limit: int | None = None

    @property
    def key(self) -> str:
        return f"{self.make} {self.model}"

    def as_marker(self) -> dict:
        return {"make": self.make, "model": self.model}


@dataclass(frozen=True)
class ScrapeOptions:
    limit: int = settings.DEFAULT_MAX_VEHICLES
    max_pages: int = settings.MAX_PAGES


@dataclass
class ScrapeResult:
    """What ``scrape_model`` produced for one query.

    ``exceeded_max`` is true when the source reported more results than
    the pagination cap allowed us to collect, i.e. ``listings`` is a
    lower bound on the real inventory.
    """

    listings: list = field(default_factory=list)
    exceeded_max: bool = False

    @classmethod
    def from_raw(cls, raw) -> ScrapeResult:
        """Normalise a source's return value into a :class:`ScrapeResult`.

        Older sources return a bare list of listings; newer ones return a
        mapping with ``listings`` and ``exceededMax`` (or
        ``exceeded_max``).
        """
        if isinstance(raw, ScrapeResult):
            return raw
        if isinstance(raw, (list, tuple)):
            return cls(listings=list(raw), exceeded_max=False)
        if isinstance(raw, Mapping) and "listings" in raw:
            exceeded = raw.get("exceeded_max", raw.get("exceededMax", False))
            return cls(listings=list(raw["listings"] or []), exceeded_max=bool(exceeded))
        raise TypeError(f"Unsupported scrape result: {type(raw).__name__}")


@dataclass(frozen=True)
class PageContext:
    """A rendered listing page handed to ``detect_status``."""

    html: str
    status_code: int | None
    final_url: str
    original_url: str

    @property
    def was_redirected(self) -> bool:
        return self.final_url != self.original_url
