"""The listing-source contract and utilities shared by all sources."""

from __future__ import annotations

import logging

from car_listing_tracker import settings
from car_listing_tracker.items import AVAILABLE, PageContext, Query, ScrapeOptions
from car_listing_tracker.rate_limiter import RateLimiter


class SourceError(Exception):
    """A source could not produce results (blocked page, missing markup, …)."""


class ListingSource:
    """One marketplace, driven through ``launch → scrape_model* → close``.

    Subclasses acquire their session resource (browser page or HTTP
    client) in :meth:`launch` and must release it in :meth:`close`,
    which is called even when :meth:`launch` failed half-way.
    """

    name: str = ""
    rate_limit: float = settings.RATE_LIMIT_SECONDS

    def __init__(self, *, rate_limit: float | None = None):
        if rate_limit is not None:
            self.rate_limit = rate_limit
        self.rate_limiter = RateLimiter(self.rate_limit)
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    async def launch(self) -> None:
        """Acquire the session resource."""

    async def close(self) -> None:
        """Release the session resource. Must be safe after a failed launch."""

    async def scrape_model(self, query: Query, options: ScrapeOptions):
        """Collect listings for *query*.

        Returns a :class:`~car_listing_tracker.items.ScrapeResult`, a
        mapping with ``listings`` / ``exceededMax``, or a bare list.
        """
        raise NotImplementedError(f"{type(self).__name__} must implement scrape_model")

    async def fetch_page_context(self, url: str) -> PageContext:
        """Load a listing's detail page for status detection."""
        raise NotImplementedError(f"{type(self).__name__} cannot revisit listings")

    def detect_status(self, context: PageContext) -> str:
        """Classify a detail page as ``available``, ``selling`` or ``sold``."""
        return AVAILABLE

    async def validate_listing(self, url: str) -> dict | None:
        """Return the ``{make, model}`` shown on a detail page, for audits."""
        return None


def collect_unseen(listings: list, seen: set[str], page_listings) -> int:
    """Append listings whose id is not in *seen*; return how many were added."""
    added = 0
    for listing in page_listings:
        listing_id = listing.get("id")
        if listing_id in seen:
            continue
        seen.add(listing_id)
        listings.append(listing)
        added += 1
    return added


def log_fetch_failure(
    exc: BaseException,
    url: str,
    source: str,
    logger: logging.Logger | None = None,
) -> None:
    """Log a failed page or API fetch with a ``[source]`` prefix.

    Parameters
    ----------
    exc:
        The exception raised by Playwright, cloudscraper or a parser.
    url:
        The URL being fetched.
    source:
        Source name used as a log prefix.
    logger:
        Logger instance, typically ``self.logger`` from the source.
        Falls back to the module-level logger when ``None``.
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    logger.warning("[%s] Request failed on %s: %s", source, url, exc)
