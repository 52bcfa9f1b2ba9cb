"""Load the tracked-models TOML config.

Example ``tracked-models.toml``::

    [settings]
    data_dir = "data"
    limit = 250

    [[queries]]
    make = "Hyundai"
    model = "Ioniq 5"

    [[queries]]
    make = "Tesla"
    model = "Model 3"
    limit = 100

    [sources.carvana]
    enabled = false
    rate_limit = 5
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from car_listing_tracker.items import Query


class ConfigError(Exception):
    """The config file is missing or malformed; the run cannot continue."""


def _positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


@dataclass
class TrackerConfig:
    queries: list[Query]
    sources: dict[str, dict] = field(default_factory=dict)
    settings: dict = field(default_factory=dict)


def load_config(config_path) -> TrackerConfig:
    """Load and validate a tracked-models TOML config file."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid TOML in {path}: {exc}") from exc

    entries = raw.get("queries")
    if not entries:
        raise ConfigError("config file must contain at least one [[queries]] entry.")

    queries: list[Query] = []
    for i, entry in enumerate(entries):
        missing = [k for k in ("make", "model") if not entry.get(k)]
        if missing:
            raise ConfigError(f"queries[{i}] is missing required keys: {', '.join(missing)}")
        limit = entry.get("limit")
        if limit is not None and not _positive_int(limit):
            raise ConfigError(f"queries[{i}] limit must be a positive integer")
        queries.append(Query(make=entry["make"], model=entry["model"], limit=limit))

    sources = raw.get("sources", {})
    if not isinstance(sources, dict) or not all(isinstance(v, dict) for v in sources.values()):
        raise ConfigError("[sources] must be a table of per-source tables")

    settings = raw.get("settings", {})
    if not isinstance(settings, dict):
        raise ConfigError("[settings] must be a table")
    if settings.get("limit") is not None and not _positive_int(settings["limit"]):
        raise ConfigError("[settings] limit must be a positive integer")

    return TrackerConfig(queries=queries, sources=sources, settings=settings)
