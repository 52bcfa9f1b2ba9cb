"""The table of known listing sources.

Sources are registered explicitly here rather than discovered at run
time. Each entry carries an enabled flag and keyword options for the
source's constructor; both can be overridden per run from the
``[sources.<name>]`` tables of the config file.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace

from car_listing_tracker.config import ConfigError
from car_listing_tracker.sources.autotrader import AutotraderSource
from car_listing_tracker.sources.browser import BrowserSource
from car_listing_tracker.sources.carmax import CarMaxSource
from car_listing_tracker.sources.carvana import CarvanaSource
from car_listing_tracker.sources.mock import MockSource


@dataclass(frozen=True)
class SourceEntry:
    name: str
    factory: Callable
    enabled: bool = True
    options: dict = field(default_factory=dict)

    def create(self):
        """Build a fresh source instance for one session."""
        return self.factory(**self.options)

    @property
    def uses_browser(self) -> bool:
        return isinstance(self.factory, type) and issubclass(self.factory, BrowserSource)


SOURCES: tuple[SourceEntry, ...] = (
    SourceEntry("carmax", CarMaxSource),
    SourceEntry("carvana", CarvanaSource),
    SourceEntry("autotrader", AutotraderSource),
    SourceEntry("mock-source", MockSource, enabled=False),
)


def build_registry(
    overrides: Mapping[str, Mapping] | None = None,
    entries: Iterable[SourceEntry] = SOURCES,
) -> dict[str, SourceEntry]:
    """Return ``name -> SourceEntry`` with config *overrides* applied.

    An override table may set ``enabled``; every other key is passed to
    the source constructor.
    """
    registry = {entry.name: entry for entry in entries}
    for name, override in (overrides or {}).items():
        if name not in registry:
            raise ConfigError(f"unknown source in config: {name}")
        override = dict(override)
        enabled = override.pop("enabled", registry[name].enabled)
        registry[name] = replace(
            registry[name],
            enabled=bool(enabled),
            options={**registry[name].options, **override},
        )
    return registry


def select_sources(
    registry: Mapping[str, SourceEntry],
    names: Iterable[str] | None = None,
) -> list[SourceEntry]:
    """Return the enabled entries, in registration order, optionally restricted to *names*."""
    if names is None:
        return [entry for entry in registry.values() if entry.enabled]
    wanted = list(names)
    unknown = [n for n in wanted if n not in registry]
    if unknown:
        raise ConfigError(f"unknown source(s): {', '.join(unknown)}")
    return [
        entry for entry in registry.values()
        if entry.name in wanted and entry.enabled
    ]
