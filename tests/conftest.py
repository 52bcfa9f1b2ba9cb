"""
Pytest configuration and fixtures for car-listing-tracker tests

Shared fixtures: a controllable clock, a snapshot store rooted in a temp
directory, a listing factory and a scripted in-memory listing source.
"""
from datetime import datetime, timedelta

import pytest

from car_listing_tracker.items import AVAILABLE, SELLING, SOLD, PageContext, Query
from car_listing_tracker.rate_limiter import RateLimiter
from car_listing_tracker.store import SnapshotStore


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: Unit tests with no I/O beyond tmp_path")
    config.addinivalue_line("markers", "integration: Multi-day pipeline tests")


# =======================
# CLOCK & STORE
# =======================

class FakeClock:
    """Callable returning a settable UTC datetime."""

    def __init__(self, start: str = "2025-01-10T06:00:00+00:00"):
        self.now = datetime.fromisoformat(start)

    def __call__(self) -> datetime:
        return self.now

    def set(self, value: str) -> None:
        self.now = datetime.fromisoformat(value)

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    @property
    def date(self) -> str:
        return self.now.date().isoformat()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock) -> SnapshotStore:
    """Snapshot store in a temp dir whose 'today' is driven by ``clock``"""
    return SnapshotStore(tmp_path / "data", clock=clock)


# =======================
# LISTINGS
# =======================

IONIQ = Query("Hyundai", "Ioniq 5")
MODEL_3 = Query("Tesla", "Model 3")


def make_listing(listing_id: str = "L1", **overrides) -> dict:
    """A valid Hyundai Ioniq 5 listing, with any field overridden"""
    listing = {
        "id": listing_id,
        "make": "Hyundai",
        "model": "Ioniq 5",
        "year": 2023,
        "trim": "SEL",
        "price": 35000,
        "mileage": 12000,
        "location": "Portland, OR",
        "url": f"https://example.com/vehicle/{listing_id}",
        "listing_date": "2025-01-10",
    }
    listing.update(overrides)
    return listing


def make_snapshot(source: str, date: str, listings, exceeded=()) -> dict:
    return {
        "source": source,
        "scraped_at": f"{date}T06:00:00+00:00",
        "listings": list(listings),
        "models_exceeded_max_vehicles": list(exceeded),
    }


@pytest.fixture
def listing_factory():
    return make_listing


# =======================
# SCRIPTED SOURCE
# =======================

class FakeSource:
    """In-memory source following the listing-source contract.

    ``results`` maps a query key to what ``scrape_model`` returns, or to
    an exception instance to raise. ``pages`` maps a URL to a
    ``(status_code, html)`` pair or an exception for revisits.
    """

    name = "fake"

    def __init__(self, results=None, pages=None, *, fail_launch=False, name=None):
        if name:
            self.name = name
        self.results = dict(results or {})
        self.pages = dict(pages or {})
        self.fail_launch = fail_launch
        self.rate_limiter = RateLimiter(0)
        self.calls: list[tuple] = []
        self.launched = False
        self.closed = False

    async def launch(self):
        self.calls.append(("launch",))
        if self.fail_launch:
            raise RuntimeError("browser failed to start")
        self.launched = True

    async def close(self):
        self.calls.append(("close",))
        self.closed = True

    async def scrape_model(self, query, options):
        self.calls.append(("scrape_model", query.key, options.limit))
        result = self.results.get(query.key, [])
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_page_context(self, url):
        self.calls.append(("fetch", url))
        page = self.pages.get(url, (404, ""))
        if isinstance(page, Exception):
            raise page
        status, html = page
        return PageContext(html=html, status_code=status, final_url=url, original_url=url)

    def detect_status(self, context):
        if context.status_code == 404:
            return SOLD
        if "purchase pending" in context.html:
            return SELLING
        if "mystery" in context.html:
            return "mystery"
        return AVAILABLE

    async def validate_listing(self, url):
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        return page


@pytest.fixture
def fake_source_cls():
    return FakeSource
