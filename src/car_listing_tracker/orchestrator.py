"""Drive one source through a query: rate limit, scrape, validate, persist.

Errors are recovered here, at the boundary of a single (source, query)
pair, so that one marketplace changing its markup never stops the rest
of the run.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from car_listing_tracker import settings
from car_listing_tracker.items import Query, ScrapeOptions, ScrapeResult
from car_listing_tracker.pipelines import CleanListingPipeline
from car_listing_tracker.validation import (
    ValidationStats,
    format_validation_errors,
    should_fail_source,
    validate_listings,
)

logger = logging.getLogger(__name__)

_cleaner = CleanListingPipeline()


@dataclass
class QueryOutcome:
    """What happened to one (source, query) pair."""

    source: str
    query: Query
    listings: list = field(default_factory=list)  # as persisted
    exceeded_max: bool = False
    stats: ValidationStats | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def label(self) -> str:
        return f"{self.source}:{self.query.key}"


@asynccontextmanager
async def source_session(source):
    """Launch *source* and always close it, even when launching fails."""
    try:
        await source.launch()
        yield source
    finally:
        await source.close()


def resolve_limit(query: Query, limit: int | None = None) -> int:
    """Explicit override, then the query's own limit, then the default."""
    if limit is not None:
        return limit
    if query.limit is not None:
        return query.limit
    return settings.DEFAULT_MAX_VEHICLES


async def scrape_query(source, query: Query, store, *, limit: int | None = None) -> QueryOutcome:
    """Scrape *query* from an already launched *source* and append the result to *store*.

    Never raises: any failure is logged and reported through
    ``QueryOutcome.error`` with an empty listing set.
    """
    outcome = QueryOutcome(source=source.name, query=query)
    logger.info("[%s] Scraping %s...", source.name, query.key)

    await source.rate_limiter.wait_if_needed()

    try:
        options = ScrapeOptions(limit=resolve_limit(query, limit))
        result = ScrapeResult.from_raw(await source.scrape_model(query, options))

        cleaned = [_cleaner.process_item(listing) for listing in result.listings]
        validation = validate_listings(cleaned, query)
        outcome.stats = validation.stats

        if validation.stats.invalid:
            logger.warning("[%s] %s", source.name, format_validation_errors(validation.stats))
        if should_fail_source(validation.stats):
            outcome.error = (
                f"validation failed: {validation.stats.invalid}/{validation.stats.total} "
                f"invalid ({validation.stats.success_rate}% success rate)"
            )
            logger.error("[%s] Discarding %s batch: %s", source.name, query.key, outcome.error)
            return outcome

        store.append_listings(
            source.name,
            validation.valid_listings,
            result.exceeded_max,
            query if result.exceeded_max else None,
        )
    except Exception as exc:
        logger.error("[%s] Error scraping %s: %s", source.name, query.key, exc)
        outcome.error = str(exc) or type(exc).__name__
        return outcome

    outcome.listings = validation.valid_listings
    outcome.exceeded_max = result.exceeded_max
    logger.info("[%s] Found %d listings for %s", source.name, len(outcome.listings), query.key)
    return outcome


async def run_source_query(source, query: Query, store, *, limit: int | None = None) -> QueryOutcome:
    """Run one (source, query) pair in its own session."""
    try:
        async with source_session(source):
            return await scrape_query(source, query, store, limit=limit)
    except Exception as exc:
        # Only launch() or close() can get here; scrape_query never raises.
        logger.error("[%s] Session failed for %s: %s", source.name, query.key, exc)
        return QueryOutcome(source=source.name, query=query, error=str(exc) or type(exc).__name__)
