"""Differential and aggregate views over stored snapshots.

Every function here takes the plain list of snapshot dicts produced by
:meth:`SnapshotStore.load_history` and is side-effect free. A snapshot's
calendar day is the date part of its ``scraped_at``; listings are joined
across days by ``(source, id)``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from car_listing_tracker.date_aggregation import DateAggregation, parse_date

logger = logging.getLogger(__name__)

SightingIndex = dict[tuple[str, str], list[str]]


# ----------------------------------------------------------------------
# Basics
# ----------------------------------------------------------------------

def snapshot_date(snapshot: dict) -> str:
    return (snapshot.get("scraped_at") or "")[:10]


def unique_dates(snapshots: Iterable[dict]) -> list[str]:
    """Distinct snapshot dates, oldest first."""
    return sorted({snapshot_date(s) for s in snapshots if snapshot_date(s)})


def model_key(listing: dict) -> str:
    return f"{listing.get('make')} {listing.get('model')}"


def average_price(listings: Sequence[dict]) -> int:
    if not listings:
        return 0
    return round(sum(l["price"] for l in listings) / len(listings))


def price_stats(listings: Sequence[dict]) -> dict | None:
    if not listings:
        return None
    prices = [l["price"] for l in listings]
    return {"min": min(prices), "max": max(prices), "avg": average_price(listings)}


def unique_listings(listings: Iterable[dict]) -> list[dict]:
    """Collapse repeated ``(source, id)`` entries, keeping the last copy.

    Re-running a pair on the same day appends the same vehicles again;
    the later copy carries the freshest price and purchase status.
    """
    unique: dict[tuple, dict] = {}
    for position, listing in enumerate(listings):
        key = _join_key(listing) if listing.get("id") is not None else ("", position)
        unique[key] = listing
    return list(unique.values())


def listings_on(snapshots: Iterable[dict], date: str) -> list[dict]:
    """Every listing observed on *date*, each copy tagged with its ``source``."""
    return unique_listings(
        {**listing, "source": s.get("source")}
        for s in snapshots if snapshot_date(s) == date
        for listing in s.get("listings", [])
    )


def model_exceeded_max_on_date(snapshots: Iterable[dict], make: str, model: str, date: str) -> bool:
    """Whether any source hit its vehicle cap for *make* *model* on *date*."""
    wanted = (make.lower(), model.lower())
    return any(
        ((marker.get("make") or "").lower(), (marker.get("model") or "").lower()) == wanted
        for s in snapshots if snapshot_date(s) == date
        for marker in s.get("models_exceeded_max_vehicles") or []
    )


def _date_pair(snapshots: Sequence[dict], date: str | None) -> tuple[str | None, str | None]:
    """``(date, preceding available date)``; *date* defaults to the latest."""
    dates = unique_dates(snapshots)
    if not dates:
        return None, None
    if date is None:
        date = dates[-1]
    earlier = [d for d in dates if d < date]
    return date, (earlier[-1] if earlier else None)


def _join_key(listing: dict) -> tuple:
    return listing.get("source"), listing.get("id")


# ----------------------------------------------------------------------
# Day-over-day differences
# ----------------------------------------------------------------------

def find_new_listings(snapshots: Sequence[dict], date: str | None = None) -> list[dict]:
    """Listings on *date* that were absent on the preceding available day.

    With no preceding day every listing counts as new. Most expensive
    first.
    """
    date, previous = _date_pair(snapshots, date)
    if date is None:
        return []
    current = listings_on(snapshots, date)
    if previous is not None:
        seen = {_join_key(l) for l in listings_on(snapshots, previous)}
        current = [l for l in current if _join_key(l) not in seen]
    return sorted(current, key=lambda l: l.get("price") or 0, reverse=True)


def find_price_changes(snapshots: Sequence[dict], date: str | None = None) -> list[dict]:
    """Listings present on both days whose price moved, biggest move first."""
    date, previous = _date_pair(snapshots, date)
    if date is None or previous is None:
        return []
    before = {_join_key(l): l for l in listings_on(snapshots, previous)}
    changed = []
    for listing in listings_on(snapshots, date):
        old = before.get(_join_key(listing))
        if old is None or old.get("price") == listing.get("price"):
            continue
        changed.append({
            **listing,
            "price_change": listing["price"] - old["price"],
            "previous_price": old["price"],
        })
    return sorted(changed, key=lambda l: abs(l["price_change"]), reverse=True)


def find_sold_listings(snapshots: Sequence[dict], date: str | None = None) -> list[dict]:
    """Listings of the preceding day that are gone on *date* and carry a purchase status."""
    date, previous = _date_pair(snapshots, date)
    if date is None or previous is None:
        return []
    present = {_join_key(l) for l in listings_on(snapshots, date)}
    return [
        l for l in listings_on(snapshots, previous)
        if l.get("purchase_status") and _join_key(l) not in present
    ]


# ----------------------------------------------------------------------
# Days on market
# ----------------------------------------------------------------------

def build_sighting_index(snapshots: Iterable[dict]) -> SightingIndex:
    """``(source, id) -> sorted dates`` on which the listing was seen."""
    index: dict[tuple[str, str], set[str]] = {}
    first_listed: dict[tuple[str, str], str] = {}
    for s in snapshots:
        day = snapshot_date(s)
        for listing in s.get("listings", []):
            key = (s.get("source"), listing.get("id"))
            index.setdefault(key, set()).add(day)
            listed = listing.get("listing_date")
            if listed and (key not in first_listed or listed < first_listed[key]):
                first_listed[key] = listed
    # listing_date is folded in as an extra, earlier "sighting".
    result: SightingIndex = {}
    for key, days in index.items():
        if key in first_listed:
            days = days | {first_listed[key][:10]}
        result[key] = sorted(days)
    return result


def calculate_days_on_market(
    snapshots: Sequence[dict],
    listing_id: str,
    source: str,
    date: str,
    purchase_status: str | None = None,
    *,
    index: SightingIndex | None = None,
) -> int | None:
    """Days between first observation and *date*.

    For a listing with a purchase status the clock stops at the last day
    it was seen on or before *date*. ``None`` if the listing was never
    seen.
    """
    if index is None:
        index = build_sighting_index(snapshots)
    sightings = index.get((source, listing_id))
    if not sightings:
        return None

    end = date
    if purchase_status:
        seen_by_then = [d for d in sightings if d <= date]
        if not seen_by_then:
            return None
        end = seen_by_then[-1]
    try:
        days = (parse_date(end) - parse_date(sightings[0])).days
    except ValueError:
        logger.warning("Unparseable date for %s/%s", source, listing_id)
        return None
    return max(0, days)


def average_days_on_market(
    snapshots: Sequence[dict],
    listings: Iterable[dict],
    date: str,
    *,
    index: SightingIndex | None = None,
) -> int | None:
    if index is None:
        index = build_sighting_index(snapshots)
    values = [
        calculate_days_on_market(
            snapshots, l.get("id"), l.get("source"), date, l.get("purchase_status"), index=index,
        )
        for l in listings
    ]
    values = [v for v in values if v is not None]
    if not values:
        return None
    return round(sum(values) / len(values))


# ----------------------------------------------------------------------
# Grouped, bucketed metrics
# ----------------------------------------------------------------------

@dataclass
class BucketMetrics:
    avg_price: float | None = None
    min_price: int | None = None
    max_price: int | None = None
    avg_count: float = 0
    max_count: int = 0
    avg_days: int | None = None
    has_data: bool = False
    grouped_dates: list[str] = field(default_factory=list)


def listings_for_model(snapshot: dict, group: str) -> list[dict]:
    return unique_listings(
        {**l, "source": snapshot.get("source")}
        for l in snapshot.get("listings", []) if model_key(l) == group
    )


def listings_for_source(snapshot: dict, group: str) -> list[dict]:
    if snapshot.get("source") != group:
        return []
    return unique_listings({**l, "source": group} for l in snapshot.get("listings", []))


def aggregate_metrics_for_groups(
    snapshots: Sequence[dict],
    groups: Sequence[str],
    base_dates: Sequence[str],
    aggregation: DateAggregation,
    extract_listings: Callable[[dict, str], list[dict]],
) -> dict[str, dict[str, BucketMetrics]]:
    """Per-group metrics for each (possibly aggregated) date.

    Daily stats are computed first; each bucket then combines its days
    with prices weighted by that day's listing count.
    """
    index = build_sighting_index(snapshots)
    wanted = set(base_dates)

    by_day: dict[str, dict[str, list[dict]]] = {g: {d: [] for d in base_dates} for g in groups}
    for s in snapshots:
        day = snapshot_date(s)
        if day not in wanted:
            continue
        for group in groups:
            by_day[group][day].extend(extract_listings(s, group))

    daily: dict[str, dict[str, dict]] = {}
    for group in groups:
        daily[group] = {}
        for day in base_dates:
            listings = by_day[group][day]
            stats = price_stats(listings)
            daily[group][day] = {
                "count": len(listings),
                "stats": stats,
                "avg_days": average_days_on_market(snapshots, listings, day, index=index) if listings else None,
            }

    result: dict[str, dict[str, BucketMetrics]] = {}
    for group in groups:
        result[group] = {}
        for date in aggregation.dates:
            grouped = aggregation.date_groups.get(date, [date])
            weighted_sum = 0
            total = 0
            with_data = 0
            max_count = 0
            mins, maxes, day_values = [], [], []
            for day in grouped:
                metrics = daily[group].get(day)
                if metrics is None:
                    continue
                if metrics["count"] and metrics["stats"]:
                    weighted_sum += metrics["stats"]["avg"] * metrics["count"]
                    total += metrics["count"]
                    mins.append(metrics["stats"]["min"])
                    maxes.append(metrics["stats"]["max"])
                    max_count = max(max_count, metrics["count"])
                    with_data += 1
                if metrics["avg_days"] is not None:
                    day_values.append(metrics["avg_days"])

            avg = weighted_sum / total if total else None
            result[group][date] = BucketMetrics(
                avg_price=avg,
                min_price=min(mins) if mins else None,
                max_price=max(maxes) if maxes else None,
                avg_count=total / with_data if with_data else 0,
                max_count=max_count,
                avg_days=round(sum(day_values) / len(day_values)) if day_values else None,
                has_data=avg is not None,
                grouped_dates=list(grouped),
            )
    return result


def collect_scaling_values(
    metrics: dict[str, dict[str, BucketMetrics]],
) -> tuple[list[float], list[int]]:
    """All positive average counts and all average-days values, for chart axes."""
    counts: list[float] = []
    days: list[int] = []
    for per_date in metrics.values():
        for bucket in per_date.values():
            if bucket.avg_count > 0:
                counts.append(bucket.avg_count)
            if bucket.avg_days is not None:
                days.append(bucket.avg_days)
    return counts, days
