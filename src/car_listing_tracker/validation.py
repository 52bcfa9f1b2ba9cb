"""Field-level validation of scraped listings and source-health policy.

Every check runs independently so a listing reports all of its problems
at once. Batch statistics feed :func:`should_fail_source`, which is a
signal for the caller rather than a gate: the orchestrator decides what
to do with a low-quality batch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from car_listing_tracker import settings


@dataclass
class ValidationStats:
    total: int = 0
    valid: int = 0
    invalid: int = 0
    success_rate: float = 0.0
    validation_errors: list[dict] = field(default_factory=list)


@dataclass
class ValidationResult:
    valid_listings: list = field(default_factory=list)
    invalid_listings: list[tuple] = field(default_factory=list)  # (listing, errors)
    stats: ValidationStats = field(default_factory=ValidationStats)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_listing(listing, query, current_year: int | None = None) -> list[str]:
    """Return the list of reasons *listing* is invalid for *query*.

    An empty list means the listing is valid.
    """
    if current_year is None:
        current_year = date.today().year
    max_year = current_year + 1  # next year's models are already on sale
    errors: list[str] = []

    if not listing.get("id"):
        errors.append("Missing id")

    for attr in ("make", "model"):
        expected = getattr(query, attr)
        actual = listing.get(attr)
        if not actual:
            errors.append(f"Missing {attr}")
        elif str(actual).lower() != expected.lower():
            errors.append(
                f'{attr.capitalize()} mismatch: expected "{expected}", got "{actual}"'
            )

    year = listing.get("year")
    if year is None:
        errors.append("Missing year")
    elif not isinstance(year, int) or isinstance(year, bool) or not (
        settings.MIN_YEAR <= year <= max_year
    ):
        errors.append(
            f"Invalid year: {year} (must be between {settings.MIN_YEAR}-{max_year})"
        )

    if not listing.get("trim"):
        errors.append("Missing trim")

    price = listing.get("price")
    if price is None:
        errors.append("Missing price")
    elif not _is_number(price) or price <= 0:
        errors.append(f"Invalid price: {price} (must be > 0)")

    mileage = listing.get("mileage")
    if mileage is None:
        errors.append("Missing mileage")
    elif not _is_number(mileage) or mileage < 0:
        errors.append(f"Invalid mileage: {mileage} (must be >= 0)")

    if not listing.get("url"):
        errors.append("Missing url")

    if not listing.get("listing_date"):
        errors.append("Missing listing_date")

    return errors


def validate_listings(listings, query, current_year: int | None = None) -> ValidationResult:
    """Partition *listings* into valid and invalid and compute batch stats."""
    result = ValidationResult()

    for listing in listings:
        errors = validate_listing(listing, query, current_year)
        if errors:
            result.invalid_listings.append((listing, errors))
            result.stats.validation_errors.append(
                {"id": listing.get("id") or "unknown", "errors": errors}
            )
        else:
            result.valid_listings.append(listing)

    total = len(listings)
    valid = len(result.valid_listings)
    result.stats.total = total
    result.stats.valid = valid
    result.stats.invalid = len(result.invalid_listings)
    result.stats.success_rate = round(valid / total * 100, 1) if total else 0.0
    return result


def should_fail_source(stats: ValidationStats) -> bool:
    """Return ``True`` when a batch is too broken to trust.

    Fails on at least ``MIN_INVALID_LISTINGS`` invalid listings *and* a
    success rate strictly below ``MIN_SUCCESS_RATE`` percent.
    """
    return (
        stats.invalid >= settings.MIN_INVALID_LISTINGS
        and stats.success_rate < settings.MIN_SUCCESS_RATE
    )


def format_validation_errors(stats: ValidationStats, limit: int = 5) -> str:
    """Render the first *limit* validation errors as a multi-line log message."""
    lines = [
        f"Validation failed: {stats.invalid}/{stats.total} listings invalid "
        f"({stats.success_rate}% success rate)",
        "",
        "Validation errors:",
    ]
    for error in stats.validation_errors[:limit]:
        lines.append(f"  - ID {error['id']}: {', '.join(error['errors'])}")
    if len(stats.validation_errors) > limit:
        lines.append(f"  ... and {len(stats.validation_errors) - limit} more")
    return "\n".join(lines)
