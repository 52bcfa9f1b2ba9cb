"""Spot-check stored listings against their live detail pages.

A cheap guard against a source's search silently returning the wrong
model: the first few listings of a snapshot are opened and the make and
model shown on the page are compared with what was stored.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from car_listing_tracker import settings

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 10


@dataclass
class AuditReport:
    total: int = 0
    validated: int = 0
    mismatches: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.mismatches


def is_mismatch(listing: dict, actual: dict) -> bool:
    """Different make, or a page model that does not contain the stored one."""
    expected_make = (listing.get("make") or "").lower()
    expected_model = (listing.get("model") or "").lower()
    actual_make = (actual.get("make") or "").lower()
    actual_model = (actual.get("model") or "").lower()
    return actual_make != expected_make or expected_model not in actual_model


async def audit_snapshot(
    source,
    snapshot: dict,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    delay: float = settings.AUDIT_DELAY,
    *,
    sleep=asyncio.sleep,
) -> AuditReport:
    """Open the first *sample_size* listings of *snapshot* with ``source.validate_listing``."""
    sample = snapshot.get("listings", [])[:sample_size]
    report = AuditReport(total=len(sample))

    for i, listing in enumerate(sample):
        if i and delay > 0:
            await sleep(delay)
        url = listing.get("url")
        try:
            actual = await source.validate_listing(url)
        except Exception as exc:
            logger.warning("[%s] Could not audit %s: %s", source.name, url, exc)
            report.errors.append({"id": listing.get("id"), "url": url, "error": str(exc)})
            continue
        if actual is None:
            report.errors.append({"id": listing.get("id"), "url": url, "error": "no vehicle info on page"})
            continue

        report.validated += 1
        if is_mismatch(listing, actual):
            logger.warning(
                "[%s] Mismatch on %s: stored %s %s, page shows %s %s",
                source.name, listing.get("id"), listing.get("make"), listing.get("model"),
                actual.get("make"), actual.get("model"),
            )
            report.mismatches.append({
                "id": listing.get("id"),
                "url": url,
                "expected": {"make": listing.get("make"), "model": listing.get("model")},
                "actual": {"make": actual.get("make"), "model": actual.get("model")},
            })
    return report
