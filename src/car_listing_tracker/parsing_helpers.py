"""Shared parsing and normalisation utilities for listing sources.

Price, mileage and title parsing is the same across marketplaces even
though their markup is not, so the per-source modules lean on these
helpers instead of re-implementing them.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone


# ---------------------------------------------------------------------------
# Number helpers
# ---------------------------------------------------------------------------

def parse_price(s) -> int | None:
    """Extract integer price from a string like ``$48,714`` or ``48714``.

    Cents after a decimal point are dropped. Returns ``None`` for falsy
    input or zero values.
    """
    if s is None or s == "":
        return None
    text = str(s).split(".")[0]
    digits = re.sub(r"[^\d]", "", text)
    return int(digits) if digits and int(digits) != 0 else None


def safe_int(val) -> int | None:
    """Convert a value to ``int``, returning ``None`` on failure."""
    if val is None or isinstance(val, bool):
        return None
    try:
        return int(val)
    except (ValueError, TypeError):
        digits = re.sub(r"[^\d]", "", str(val))
        return int(digits) if digits else None


_MILEAGE_RE = re.compile(r"(\d+(?:,\d{3})*(?:\.\d+)?)\s*(K?)", re.IGNORECASE)


def parse_mileage(s) -> int | None:
    """Parse mileage text such as ``47K mi``, ``12.5k miles`` or ``68,203``."""
    if s is None:
        return None
    m = _MILEAGE_RE.search(str(s))
    if not m:
        return None
    value = float(m.group(1).replace(",", ""))
    if m.group(2).upper() == "K":
        value *= 1000
    return int(round(value))


_YEAR_PREFIX_RE = re.compile(r"^\s*(\d{4})\b")


def extract_year(title: str | None) -> int | None:
    """Return the leading model year of a title like ``2023 Tesla Model 3``."""
    if not title:
        return None
    m = _YEAR_PREFIX_RE.match(title)
    return int(m.group(1)) if m else None


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def clean_text(value: str | None) -> str | None:
    """Collapse runs of whitespace and strip; empty strings become ``None``."""
    if value is None:
        return None
    cleaned = re.sub(r"\s+", " ", str(value)).strip()
    return cleaned or None


def normalize_name(value: str) -> str:
    """Lower-case *value* and drop all whitespace, for fuzzy name matching."""
    return re.sub(r"\s+", "", value or "").lower()


def title_matches(title: str, make: str, model: str) -> bool:
    """Return ``True`` if *title* mentions both *make* and *model*.

    Matching is case-insensitive and collapses whitespace, so
    ``"2022 HYUNDAI  IONIQ 5 SEL"`` matches ``Hyundai`` / ``Ioniq 5``.
    """
    haystack = re.sub(r"\s+", " ", title or "").lower()
    return (
        make.lower() in haystack
        and re.sub(r"\s+", " ", model).lower() in haystack
    )


def today_iso() -> str:
    """Today's UTC date as ``YYYY-MM-DD``."""
    return datetime.now(timezone.utc).date().isoformat()

