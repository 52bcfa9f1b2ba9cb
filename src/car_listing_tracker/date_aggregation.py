"""Group long runs of daily dates into ISO-week buckets.

Charts over six months of daily snapshots get unreadable, so past a
threshold each Monday-to-Sunday week collapses into one point. The
point is labelled with a representative date, preferably one that
actually has data.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from car_listing_tracker import settings

# Named ranges offered by reports, in days.
TIME_RANGES = {"7d": 7, "30d": 30, "6m": 180}


@dataclass
class DateAggregation:
    dates: list[str]
    date_groups: dict[str, list[str]] = field(default_factory=dict)

    @property
    def aggregated(self) -> bool:
        return any(len(group) > 1 for group in self.date_groups.values())


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` (anything after the date is ignored)."""
    return datetime.strptime(value[:10], "%Y-%m-%d").date()


def to_iso(value: date) -> str:
    return value.isoformat()


def week_start_key(value: str) -> str:
    """The Monday of *value*'s week, as an ISO date."""
    day = parse_date(value)
    return to_iso(day - timedelta(days=day.weekday()))


def pick_representative_date(dates: Sequence[str], available: Iterable[str] = ()) -> str | None:
    """The latest of *dates* that has data, else simply the latest."""
    if not dates:
        return None
    available = set(available)
    for value in reversed(dates):
        if value in available:
            return value
    return dates[-1]


def format_date_range_label(start: str | None, end: str | None) -> str | None:
    """``"Oct 15"``, ``"Oct 15 - 22"`` or ``"Oct 29 - Nov 4"``."""
    if not start or not end:
        return None
    start_day, end_day = parse_date(start), parse_date(end)
    start_label = f"{start_day:%b} {start_day.day}"
    if start == end:
        return start_label
    if (start_day.year, start_day.month) == (end_day.year, end_day.month):
        return f"{start_label} - {end_day.day}"
    return f"{start_label} - {end_day:%b} {end_day.day}"


def aggregate_dates(
    base_dates: Sequence[str],
    available_dates: Iterable[str] = (),
    threshold: int = settings.DATE_AGGREGATION_THRESHOLD,
) -> DateAggregation:
    """Bucket sorted *base_dates* by week once there are more than *threshold* of them.

    Every base date lands in exactly one group, keyed by the group's
    representative date.
    """
    base_dates = list(base_dates)
    if len(base_dates) <= threshold:
        return DateAggregation(
            dates=base_dates,
            date_groups={d: [d] for d in base_dates},
        )

    buckets: dict[str, list[str]] = {}
    for value in base_dates:
        buckets.setdefault(week_start_key(value), []).append(value)

    available = set(available_dates)
    dates: list[str] = []
    groups: dict[str, list[str]] = {}
    for bucket in buckets.values():
        representative = pick_representative_date(bucket, available)
        if representative in groups:
            continue
        groups[representative] = bucket
        dates.append(representative)
    return DateAggregation(dates=dates, date_groups=groups)


def range_date_labels(most_recent: str | None, days: int) -> list[str]:
    """Every calendar date of the *days*-long window ending on *most_recent*, oldest first."""
    if not most_recent:
        return []
    end = parse_date(most_recent)
    days = max(1, days)
    return [to_iso(end - timedelta(days=offset)) for offset in range(days - 1, -1, -1)]
