"""
Unit tests for the make/model spot-check audit
"""
import asyncio

from car_listing_tracker.audit import audit_snapshot, is_mismatch
from conftest import FakeSource, make_listing, make_snapshot


def url(listing_id):
    return f"https://example.com/vehicle/{listing_id}"


class TestIsMismatch:
    def test_model_containment(self):
        listing = make_listing()
        assert not is_mismatch(listing, {"make": "hyundai", "model": "IONIQ 5 SEL"})
        assert is_mismatch(listing, {"make": "Hyundai", "model": "Ioniq 6"})
        assert is_mismatch(listing, {"make": "Kia", "model": "Ioniq 5"})


class TestAuditSnapshot:
    def test_counts_and_mismatches(self):
        snapshot = make_snapshot("fake", "2025-01-10", [
            make_listing("A"), make_listing("B"), make_listing("C"), make_listing("D"),
        ])
        source = FakeSource(pages={
            url("A"): {"make": "Hyundai", "model": "Ioniq 5"},
            url("B"): {"make": "Hyundai", "model": "Kona Electric"},
            url("C"): RuntimeError("timeout"),
            url("D"): None,
        })
        sleeps = []

        async def sleep(seconds):
            sleeps.append(seconds)

        report = asyncio.run(audit_snapshot(source, snapshot, delay=2.0, sleep=sleep))

        assert report.total == 4
        assert report.validated == 2
        assert [m["id"] for m in report.mismatches] == ["B"]
        assert report.mismatches[0]["actual"] == {"make": "Hyundai", "model": "Kona Electric"}
        assert [e["id"] for e in report.errors] == ["C", "D"]
        assert sleeps == [2.0, 2.0, 2.0]
        assert not report.ok

    def test_sample_size(self):
        snapshot = make_snapshot("fake", "2025-01-10", [make_listing(str(i)) for i in range(15)])
        pages = {url(str(i)): {"make": "Hyundai", "model": "Ioniq 5"} for i in range(15)}

        report = asyncio.run(audit_snapshot(FakeSource(pages=pages), snapshot, delay=0))

        assert report.total == 10
        assert report.validated == 10
        assert report.ok
