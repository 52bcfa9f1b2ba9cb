"""Run every tracked query against every enabled source, one pair at a time."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from car_listing_tracker import settings
from car_listing_tracker.items import Query
from car_listing_tracker.orchestrator import QueryOutcome, run_source_query, source_session
from car_listing_tracker.parsing_helpers import normalize_name
from car_listing_tracker.reconcile import ReconcileReport, reconcile_source

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    outcomes: list[QueryOutcome] = field(default_factory=list)
    reconciled: list[ReconcileReport] = field(default_factory=list)

    def record(self, outcome: QueryOutcome) -> None:
        self.outcomes.append(outcome)
        (self.succeeded if outcome.ok else self.failed).append(outcome.label)

    @property
    def total_listings(self) -> int:
        return sum(len(o.listings) for o in self.outcomes)

    def lines(self) -> list[str]:
        out = [
            f"Succeeded: {len(self.succeeded)}",
            f"Failed: {len(self.failed)}",
        ]
        out += [f"  ✗ {o.label}: {o.error}" for o in self.outcomes if not o.ok]
        out.append(f"Listings saved: {self.total_listings}")
        for report in self.reconciled:
            out.append(
                f"Status check {report.source}: {report.checked} checked, "
                f"{report.selling} selling, {report.sold} sold"
            )
        return out


def filter_queries(queries: Iterable[Query], models: str | None) -> list[Query]:
    """Keep queries whose ``make model`` contains any comma-separated term of *models*.

    Matching ignores case and whitespace, so ``"ioniq5"`` selects
    ``Hyundai Ioniq 5``.
    """
    queries = list(queries)
    if not models:
        return queries
    terms = [normalize_name(t) for t in models.split(",") if t.strip()]
    if not terms:
        return queries
    return [q for q in queries if any(t in normalize_name(q.key) for t in terms)]


async def reconcile_entry(entry, store, *, date=None, queries=None, delay=settings.STATUS_CHECK_DELAY):
    """Open a fresh session for *entry* and reconcile it; ``None`` on failure."""
    try:
        source = entry.create()
        async with source_session(source):
            return await reconcile_source(source, store, date=date, queries=queries, delay=delay)
    except Exception as exc:
        logger.error("[%s] Status check failed: %s", entry.name, exc)
        return None


async def run_all(
    queries: Iterable[Query],
    entries,
    store,
    *,
    models: str | None = None,
    limit: int | None = None,
    reconcile: bool = False,
    status_delay: float = settings.STATUS_CHECK_DELAY,
) -> RunSummary:
    """Scrape each query from each source entry, sequentially.

    Sources are rebuilt for every pair but each entry keeps one rate
    limiter for the whole run. A failed pair is recorded and the loop
    moves on. With *reconcile*, each source then has its missing
    listings checked, limited to the queries that succeeded for it.
    """
    selected = filter_queries(queries, models)
    entries = list(entries)
    summary = RunSummary()
    limiters = {}

    if not selected:
        logger.warning("No tracked models match %r", models)
        return summary
    logger.info(
        "Starting run: %d models x %d sources",
        len(selected), len(entries),
    )

    for query in selected:
        for entry in entries:
            try:
                source = entry.create()
            except Exception as exc:
                logger.error("[%s] Could not create source: %s", entry.name, exc)
                summary.record(QueryOutcome(source=entry.name, query=query, error=str(exc)))
                continue
            source.rate_limiter = limiters.setdefault(entry.name, source.rate_limiter)
            outcome = await run_source_query(source, query, store, limit=limit)
            summary.record(outcome)

    if reconcile:
        for entry in entries:
            ok_queries = [
                o.query for o in summary.outcomes
                if o.ok and o.source == entry.name
            ]
            if not ok_queries:
                continue
            report = await reconcile_entry(entry, store, queries=ok_queries, delay=status_delay)
            if report is not None:
                summary.reconciled.append(report)

    logger.info(
        "Run finished: %d succeeded, %d failed",
        len(summary.succeeded), len(summary.failed),
    )
    return summary
