"""Classify listings that disappeared between two daily snapshots.

A listing present yesterday but absent today has either been reserved,
sold, or delisted. Each one is revisited on its own detail page and the
source decides which; the verdict is written back onto yesterday's
snapshot as ``purchase_status``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from car_listing_tracker import settings
from car_listing_tracker.items import SELLING, SOLD, STATUSES, Query

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    source: str
    date: str
    previous_date: str | None = None
    checked: int = 0
    selling: int = 0
    sold: int = 0
    available: int = 0

    @property
    def tagged(self) -> int:
        return self.selling + self.sold


def find_missing_listings(previous: Iterable[dict], current: Iterable[dict]) -> list[dict]:
    """Listings of *previous* whose id does not appear in *current*."""
    current_ids = {listing.get("id") for listing in current}
    return [listing for listing in previous if listing.get("id") not in current_ids]


async def check_listing_status(source, url: str) -> str:
    """Revisit *url* and let *source* classify it.

    A failed visit is reported as sold: a listing that vanished and whose
    page cannot be loaded is assumed to be gone for good.
    """
    try:
        context = await source.fetch_page_context(url)
        status = source.detect_status(context)
    except Exception as exc:
        logger.warning("[%s] Could not check %s, assuming sold: %s", source.name, url, exc)
        return SOLD
    if status not in STATUSES:
        logger.warning("[%s] Unknown status %r for %s, assuming sold", source.name, status, url)
        return SOLD
    return status


async def validate_missing_listings(
    source,
    missing: list[dict],
    delay: float = settings.STATUS_CHECK_DELAY,
    *,
    sleep=asyncio.sleep,
) -> list[dict]:
    """Revisit each missing listing, one at a time.

    Returns copies of every listing; only ``selling`` and ``sold``
    verdicts set ``purchase_status``.
    """
    results = []
    for i, listing in enumerate(missing):
        if i and delay > 0:
            await sleep(delay)
        status = await check_listing_status(source, listing.get("url") or "")
        checked = dict(listing)
        if status in (SELLING, SOLD):
            checked["purchase_status"] = status
        else:
            logger.info(
                "[%s] %s is still available but was missing from today's results",
                source.name, listing.get("id"),
            )
        results.append(checked)
    return results


def _in_queries(listing: dict, queries: Iterable[Query]) -> bool:
    make = (listing.get("make") or "").lower()
    model = (listing.get("model") or "").lower()
    return any(q.make.lower() == make and q.model.lower() == model for q in queries)


async def reconcile_source(
    source,
    store,
    *,
    date: str | None = None,
    queries: Iterable[Query] | None = None,
    delay: float = settings.STATUS_CHECK_DELAY,
    sleep=asyncio.sleep,
) -> ReconcileReport:
    """Tag yesterday's listings that are missing from *date*'s snapshot.

    *source* must already be launched. When *queries* is given only
    listings of those models are considered, so a model whose scrape
    failed today is not mistaken for a sell-out.
    """
    date = date or store.today()
    report = ReconcileReport(source=source.name, date=date)

    current = store.load(source.name, date)
    if current is None:
        logger.warning("[%s] No snapshot for %s, skipping status check", source.name, date)
        return report
    previous = store.latest(source.name, before=date)
    if previous is None:
        logger.info("[%s] No earlier snapshot to compare with %s", source.name, date)
        return report
    report.previous_date, previous_snapshot = previous

    candidates = [l for l in previous_snapshot["listings"] if not l.get("purchase_status")]
    if queries is not None:
        queries = list(queries)
        candidates = [l for l in candidates if _in_queries(l, queries)]

    missing = find_missing_listings(candidates, current["listings"])
    logger.info(
        "[%s] %d listings missing since %s, checking status...",
        source.name, len(missing), report.previous_date,
    )
    if not missing:
        return report

    checked = await validate_missing_listings(source, missing, delay, sleep=sleep)
    report.checked = len(checked)
    statuses = {}
    for listing in checked:
        status = listing.get("purchase_status")
        if status == SELLING:
            report.selling += 1
        elif status == SOLD:
            report.sold += 1
        else:
            report.available += 1
            continue
        statuses[listing.get("id")] = status

    store.tag_purchase_status(source.name, report.previous_date, statuses)
    logger.info(
        "[%s] Status check done: %d selling, %d sold, %d still available",
        source.name, report.selling, report.sold, report.available,
    )
    return report

