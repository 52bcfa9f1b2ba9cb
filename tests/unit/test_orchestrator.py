"""
Unit tests for the per-source scrape orchestration
"""
import asyncio

import pytest

from car_listing_tracker.items import Query, ScrapeResult
from car_listing_tracker.orchestrator import (
    resolve_limit,
    run_source_query,
    scrape_query,
    source_session,
)
from conftest import IONIQ, FakeSource, make_listing

TODAY = "2025-01-10"


class TestScrapeQuery:
    """rate limit -> scrape -> normalise -> validate -> persist"""

    def test_persists_valid_listings(self, store):
        source = FakeSource({IONIQ.key: {"listings": [make_listing("A"), make_listing("B")], "exceededMax": True}})

        outcome = asyncio.run(scrape_query(source, IONIQ, store))

        assert outcome.ok
        assert outcome.label == "fake:Hyundai Ioniq 5"
        assert outcome.exceeded_max is True
        assert [l["id"] for l in outcome.listings] == ["A", "B"]
        snapshot = store.load("fake", TODAY)
        assert [l["id"] for l in snapshot["listings"]] == ["A", "B"]
        assert snapshot["models_exceeded_max_vehicles"] == [IONIQ.as_marker()]

    def test_legacy_bare_list_result(self, store):
        source = FakeSource({IONIQ.key: [make_listing("A")]})
        outcome = asyncio.run(scrape_query(source, IONIQ, store))
        assert outcome.ok
        assert outcome.exceeded_max is False
        assert store.load("fake", TODAY)["models_exceeded_max_vehicles"] == []

    def test_listings_are_cleaned_before_validation(self, store):
        raw = make_listing("A", price="$31,990", mileage="12K mi", trim="  SEL  ")
        source = FakeSource({IONIQ.key: ScrapeResult([raw])})

        asyncio.run(scrape_query(source, IONIQ, store))

        stored = store.load("fake", TODAY)["listings"][0]
        assert stored["price"] == 31990
        assert stored["mileage"] == 12000
        assert stored["trim"] == "SEL"

    def test_invalid_listings_are_not_persisted(self, store):
        source = FakeSource({IONIQ.key: [make_listing("A"), make_listing("B", price=0)]})
        outcome = asyncio.run(scrape_query(source, IONIQ, store))
        assert outcome.ok
        assert outcome.stats.invalid == 1
        assert [l["id"] for l in store.load("fake", TODAY)["listings"]] == ["A"]

    def test_failing_batch_is_discarded(self, store):
        bad = [make_listing(str(i), make="Kia") for i in range(3)]
        source = FakeSource({IONIQ.key: bad + [make_listing("OK")]})

        outcome = asyncio.run(scrape_query(source, IONIQ, store))

        assert not outcome.ok
        assert "validation failed: 3/4 invalid" in outcome.error
        assert outcome.listings == []
        assert store.load("fake", TODAY) is None

    def test_scrape_error_is_contained(self, store):
        source = FakeSource({IONIQ.key: RuntimeError("selector timeout")})
        outcome = asyncio.run(scrape_query(source, IONIQ, store))
        assert outcome.error == "selector timeout"
        assert outcome.listings == []
        assert store.load("fake", TODAY) is None

    def test_unsupported_result_shape_is_an_error(self, store):
        source = FakeSource({IONIQ.key: "nonsense"})
        outcome = asyncio.run(scrape_query(source, IONIQ, store))
        assert "Unsupported scrape result" in outcome.error

    def test_waits_on_rate_limiter(self, store):
        source = FakeSource({IONIQ.key: []})
        asyncio.run(scrape_query(source, IONIQ, store))
        assert source.rate_limiter.last_request_time is not None


class TestResolveLimit:
    """override -> query limit -> default"""

    def test_precedence(self):
        assert resolve_limit(Query("A", "B", limit=40), 10) == 10
        assert resolve_limit(Query("A", "B", limit=40)) == 40
        assert resolve_limit(Query("A", "B")) == 250

    def test_limit_reaches_source(self, store):
        source = FakeSource()
        asyncio.run(scrape_query(source, Query("Hyundai", "Ioniq 5", limit=40), store, limit=5))
        assert ("scrape_model", "Hyundai Ioniq 5", 5) in source.calls


class TestSession:
    """launch / close lifecycle"""

    def test_close_called_after_success(self, store):
        source = FakeSource({IONIQ.key: [make_listing("A")]})
        outcome = asyncio.run(run_source_query(source, IONIQ, store))
        assert outcome.ok
        assert source.calls[0] == ("launch",)
        assert source.calls[-1] == ("close",)

    def test_launch_failure_still_closes(self, store):
        source = FakeSource(fail_launch=True)
        outcome = asyncio.run(run_source_query(source, IONIQ, store))
        assert outcome.error == "browser failed to start"
        assert source.closed
        assert not any(c[0] == "scrape_model" for c in source.calls)

    def test_session_closes_when_body_raises(self):
        source = FakeSource()

        async def go():
            async with source_session(source):
                raise ValueError("boom")

        with pytest.raises(ValueError):
            asyncio.run(go())
        assert source.closed
