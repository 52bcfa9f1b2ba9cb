"""
Unit tests for weekly date bucketing and range labels
"""
from datetime import date, timedelta

from car_listing_tracker.date_aggregation import (
    aggregate_dates,
    format_date_range_label,
    parse_date,
    pick_representative_date,
    range_date_labels,
    week_start_key,
)


def daily(start: str, count: int) -> list[str]:
    first = date.fromisoformat(start)
    return [(first + timedelta(days=i)).isoformat() for i in range(count)]


class TestWeekStartKey:
    def test_monday_of_week(self):
        assert week_start_key("2025-01-01") == "2024-12-30"  # Wednesday
        assert week_start_key("2025-01-06") == "2025-01-06"  # Monday
        assert week_start_key("2025-01-12") == "2025-01-06"  # Sunday

    def test_timestamp_input(self):
        assert parse_date("2025-01-12T23:59:59Z") == date(2025, 1, 12)


class TestPickRepresentativeDate:
    def test_prefers_latest_with_data(self):
        dates = ["2025-01-06", "2025-01-07", "2025-01-08"]
        assert pick_representative_date(dates, {"2025-01-07", "2025-01-06"}) == "2025-01-07"

    def test_falls_back_to_last(self):
        assert pick_representative_date(["2025-01-06", "2025-01-07"], set()) == "2025-01-07"

    def test_empty(self):
        assert pick_representative_date([]) is None


class TestAggregateDates:
    """Identity below the threshold, ISO-week buckets above"""

    def test_identity_at_threshold(self):
        dates = daily("2025-01-01", 90)
        result = aggregate_dates(dates, threshold=90)
        assert result.dates == dates
        assert all(result.date_groups[d] == [d] for d in dates)
        assert not result.aggregated

    def test_weekly_buckets_over_threshold(self):
        dates = daily("2025-01-01", 120)
        available = dates[::3]

        result = aggregate_dates(dates, available, threshold=90)

        weeks = {week_start_key(d) for d in dates}
        assert len(result.dates) <= len(weeks)
        assert result.aggregated

        grouped = [d for group in result.date_groups.values() for d in group]
        assert sorted(grouped) == dates
        assert len(grouped) == len(set(grouped))

        for representative, group in result.date_groups.items():
            assert representative in group
            assert len({week_start_key(d) for d in group}) == 1
            with_data = [d for d in group if d in available]
            if with_data:
                assert representative == with_data[-1]
            else:
                assert representative == group[-1]

    def test_partial_first_week(self):
        dates = daily("2025-01-01", 100)
        result = aggregate_dates(dates, threshold=90)
        first = result.dates[0]
        assert result.date_groups[first] == ["2025-01-01", "2025-01-02", "2025-01-03", "2025-01-04", "2025-01-05"]


class TestLabels:
    def test_single_day(self):
        assert format_date_range_label("2025-10-15", "2025-10-15") == "Oct 15"

    def test_same_month(self):
        assert format_date_range_label("2025-10-15", "2025-10-22") == "Oct 15 - 22"

    def test_across_months(self):
        assert format_date_range_label("2025-10-29", "2025-11-04") == "Oct 29 - Nov 4"

    def test_missing_bound(self):
        assert format_date_range_label(None, "2025-10-22") is None

    def test_range_date_labels(self):
        assert range_date_labels("2025-03-01", 3) == ["2025-02-27", "2025-02-28", "2025-03-01"]
        assert range_date_labels("2025-03-01", 0) == ["2025-03-01"]
        assert range_date_labels(None, 7) == []
