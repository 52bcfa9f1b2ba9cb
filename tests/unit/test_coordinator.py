"""
Unit tests for the run-all coordinator
"""
import asyncio

from car_listing_tracker.coordinator import RunSummary, filter_queries, run_all
from car_listing_tracker.items import Query
from car_listing_tracker.rate_limiter import RateLimiter
from car_listing_tracker.registry import SourceEntry
from conftest import IONIQ, MODEL_3, FakeSource, make_listing

KIA = Query("Kia", "EV6")


def entry_for(name, results=None, pages=None, created=None, **kwargs):
    def factory():
        source = FakeSource(results, pages, name=name, **kwargs)
        if created is not None:
            created.append(source)
        return source
    return SourceEntry(name, factory)


class TestFilterQueries:
    """Whitespace- and case-insensitive substring match"""

    def test_no_filter_keeps_everything(self):
        assert filter_queries([IONIQ, MODEL_3], None) == [IONIQ, MODEL_3]

    def test_squashed_terms(self):
        assert filter_queries([IONIQ, MODEL_3, KIA], "ioniq5") == [IONIQ]
        assert filter_queries([IONIQ, MODEL_3, KIA], " Model 3 , ev6") == [MODEL_3, KIA]

    def test_make_matches_too(self):
        assert filter_queries([IONIQ, MODEL_3], "TESLA") == [MODEL_3]

    def test_no_match(self):
        assert filter_queries([IONIQ], "civic") == []


class TestRunAll:
    """(query x source) iteration with failure isolation"""

    def test_failures_do_not_stop_the_run(self, store):
        good = entry_for("good", {IONIQ.key: [make_listing("A")], MODEL_3.key: []})
        bad = entry_for("bad", {IONIQ.key: RuntimeError("blocked")})

        summary = asyncio.run(run_all([IONIQ, MODEL_3], [bad, good], store))

        assert summary.failed == ["bad:Hyundai Ioniq 5"]
        assert summary.succeeded == [
            "good:Hyundai Ioniq 5",
            "bad:Tesla Model 3",
            "good:Tesla Model 3",
        ]
        assert summary.total_listings == 1

    def test_fresh_source_per_pair(self, store):
        created = []
        entry = entry_for("fake", created=created)
        asyncio.run(run_all([IONIQ, MODEL_3], [entry], store))
        assert len(created) == 2
        assert all(s.closed for s in created)

    def test_rate_limit_spans_the_run(self, store):
        sleeps = []

        async def sleep(seconds):
            sleeps.append(seconds)

        def factory():
            source = FakeSource(name="fake")
            source.rate_limiter = RateLimiter(5.0, clock=lambda: 100.0, sleep=sleep)
            created.append(source)
            return source

        created = []
        asyncio.run(run_all([IONIQ, MODEL_3, KIA], [SourceEntry("fake", factory)], store))

        assert len(created) == 3
        assert created[1].rate_limiter is created[0].rate_limiter
        assert sleeps == [5.0, 5.0]

    def test_model_filter_and_limit_override(self, store):
        created = []
        entry = entry_for("fake", created=created)
        summary = asyncio.run(run_all([IONIQ, MODEL_3], [entry], store, models="model3", limit=7))
        assert summary.succeeded == ["fake:Tesla Model 3"]
        assert ("scrape_model", "Tesla Model 3", 7) in created[0].calls

    def test_launch_failure_counts_as_failed(self, store):
        entry = entry_for("fake", fail_launch=True)
        summary = asyncio.run(run_all([IONIQ], [entry], store))
        assert summary.failed == ["fake:Hyundai Ioniq 5"]

    def test_factory_error_counts_as_failed(self, store):
        def factory():
            raise TypeError("bad option")
        summary = asyncio.run(run_all([IONIQ], [SourceEntry("broken", factory)], store))
        assert summary.failed == ["broken:Hyundai Ioniq 5"]

    def test_reconcile_after_scrape(self, store, clock):
        store.append_listings("fake", [make_listing("A"), make_listing("GONE")])
        clock.advance(days=1)
        entry = entry_for("fake", {IONIQ.key: [make_listing("A")]})

        summary = asyncio.run(run_all([IONIQ], [entry], store, reconcile=True, status_delay=0))

        assert len(summary.reconciled) == 1
        assert summary.reconciled[0].sold == 1
        tagged = store.load("fake", "2025-01-10")["listings"]
        assert [l.get("purchase_status") for l in tagged] == [None, "sold"]

    def test_reconcile_skips_sources_without_success(self, store):
        entry = entry_for("fake", {IONIQ.key: RuntimeError("blocked")})
        summary = asyncio.run(run_all([IONIQ], [entry], store, reconcile=True, status_delay=0))
        assert summary.reconciled == []


class TestRunSummary:
    def test_lines_list_failures(self):
        summary = RunSummary()
        summary.failed.append("x:y")
        lines = summary.lines()
        assert lines[0] == "Succeeded: 0"
        assert lines[1] == "Failed: 1"
