"""CLI entry-point for car-listing-tracker.

Designed for use with ``uvx`` from a daily scheduler::

    uvx car-listing-tracker run --config tracked-models.toml --reconcile

Restrict a run to some sources and models, with a smaller target count::

    car-listing-tracker run --source carmax --models "ioniq5,model 3" --limit 50

Then look at what changed::

    car-listing-tracker diff
    car-listing-tracker report -o report.html
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import replace

import click

from car_listing_tracker import metrics, settings
from car_listing_tracker.audit import audit_snapshot
from car_listing_tracker.config import ConfigError, TrackerConfig, load_config
from car_listing_tracker.coordinator import reconcile_entry, run_all
from car_listing_tracker.date_aggregation import TIME_RANGES
from car_listing_tracker.orchestrator import source_session
from car_listing_tracker.registry import build_registry, select_sources
from car_listing_tracker.store import SnapshotStore
from car_listing_tracker.tools.build_report import build_report, format_currency


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _load(config_path: str, *, required: bool = True) -> TrackerConfig | None:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        if required:
            _fail(str(exc))
        return None


def _store(data_dir: str | None, config: TrackerConfig | None = None) -> SnapshotStore:
    cfg_settings = config.settings if config else {}
    return SnapshotStore(data_dir or cfg_settings.get("data_dir") or settings.DATA_DIR)


def _entries(config: TrackerConfig | None, names, *, headless: bool | None = None):
    try:
        registry = build_registry(config.sources if config else None)
        entries = select_sources(registry, names or None)
    except ConfigError as exc:
        _fail(str(exc))
    if headless is not None:
        entries = [
            replace(e, options={**e.options, "headless": headless}) if e.uses_browser else e
            for e in entries
        ]
    return entries


config_option = click.option(
    "--config", "-c",
    "config_path",
    default=settings.CONFIG_PATH,
    show_default=True,
    help="Path to the tracked-models TOML config file.",
)
data_dir_option = click.option(
    "--data-dir", "-d",
    default=None,
    help=f"Snapshot directory (default: config data_dir or {settings.DATA_DIR}).",
)
source_option = click.option(
    "--source", "-s",
    "sources",
    multiple=True,
    help="Only use this source (repeatable).",
)


@click.group()
@click.option(
    "--log-level",
    default=settings.LOG_LEVEL,
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
)
def main(log_level: str):
    """Track used-vehicle listings across marketplaces, one snapshot per day."""
    logging.basicConfig(level=log_level.upper(), format=settings.LOG_FORMAT)


@main.command()
@config_option
@data_dir_option
@source_option
@click.option("--models", "-m", default=None, help="Comma-separated model filter, e.g. 'ioniq5,model 3'.")
@click.option("--limit", "-l", type=click.IntRange(min=1), default=None, help="Override the per-model target count.")
@click.option("--reconcile/--no-reconcile", default=False, help="Check missing listings after scraping.")
@click.option(
    "--headless/--no-headless",
    default=settings.HEADLESS,
    help="Run browser sources in headless mode (default: headless).",
)
def run(config_path, data_dir, sources, models, limit, reconcile, headless):
    """Scrape every tracked model from every enabled source.

    Individual source/model failures are reported but never change the
    exit status.
    """
    config = _load(config_path)
    entries = _entries(config, sources, headless=headless)
    store = _store(data_dir, config)

    default_limit = config.settings.get("limit")
    queries = [
        q if q.limit is not None or default_limit is None else replace(q, limit=default_limit)
        for q in config.queries
    ]

    click.echo(f"Loaded {len(queries)} model(s) and {len(entries)} source(s) from {config_path}")
    summary = asyncio.run(run_all(
        queries, entries, store, models=models, limit=limit, reconcile=reconcile,
    ))
    for line in summary.lines():
        click.echo(line)


@main.command()
@config_option
@data_dir_option
@source_option
@click.option("--date", default=None, help="Snapshot date to compare against the day before (default: today).")
def reconcile(config_path, data_dir, sources, date):
    """Check listings that disappeared since the previous snapshot."""
    config = _load(config_path, required=False)
    store = _store(data_dir, config)
    entries = [e for e in _entries(config, sources) if e.name in store.sources()]
    if not entries:
        click.echo("No stored snapshots for the selected sources.")
        return

    for entry in entries:
        report = asyncio.run(reconcile_entry(entry, store, date=date))
        if report is None:
            click.echo(f"  ✗ {entry.name}: status check failed")
        elif report.previous_date is None:
            click.echo(f"  - {entry.name}: nothing to compare")
        else:
            click.echo(
                f"  ✓ {entry.name}: {report.checked} checked since {report.previous_date}, "
                f"{report.selling} selling, {report.sold} sold, {report.available} still available"
            )


@main.command()
@data_dir_option
@source_option
@click.option("--date", default=None, help="Date to diff against the preceding day (default: latest).")
def diff(data_dir, sources, date):
    """Show new, re-priced and sold listings for one day."""
    store = _store(data_dir)
    snapshots = store.load_history(sources or None)
    if not snapshots:
        click.echo("No snapshots found.")
        return

    def describe(listing: dict) -> str:
        return (
            f"{listing.get('source')}  {listing.get('year')} {metrics.model_key(listing)} "
            f"{listing.get('trim') or ''}  {format_currency(listing.get('price'))}"
        )

    new = metrics.find_new_listings(snapshots, date)
    changed = metrics.find_price_changes(snapshots, date)
    sold = metrics.find_sold_listings(snapshots, date)

    click.echo(f"New listings ({len(new)}):")
    for listing in new:
        click.echo(f"  + {describe(listing)}")
    click.echo(f"Price changes ({len(changed)}):")
    for listing in changed:
        click.echo(
            f"  ~ {describe(listing)}  (was {format_currency(listing['previous_price'])}, "
            f"{listing['price_change']:+,})"
        )
    click.echo(f"Sold / pending ({len(sold)}):")
    for listing in sold:
        click.echo(f"  - {describe(listing)}  [{listing['purchase_status']}]")


@main.command()
@data_dir_option
@click.option("--output", "-o", default="report.html", show_default=True, help="Output HTML file path.")
@click.option("--date", default=None, help="Report date (default: latest).")
@click.option("--range", "time_range", type=click.Choice(list(TIME_RANGES)), default="30d", show_default=True)
def report(data_dir, output, date, time_range):
    """Write an HTML market report from the stored snapshots."""
    snapshots = _store(data_dir).load_history()
    if not snapshots:
        click.echo("No snapshots found, skipping HTML report.")
        return
    count = build_report(snapshots, output, date=date, time_range=time_range)
    click.echo(f"HTML report written to {output} ({count} listings)")


@main.command()
@click.argument("source_name")
@data_dir_option
@click.option("--date", default=None, help="Snapshot date to audit (default: latest).")
@click.option("--sample-size", "-n", type=click.IntRange(min=1), default=10, show_default=True)
def audit(source_name, data_dir, date, sample_size):
    """Compare stored make/model against live detail pages for SOURCE_NAME."""
    registry = build_registry()
    if source_name not in registry:
        _fail(f"unknown source: {source_name}")
    store = _store(data_dir)

    if date is None:
        latest = store.latest(source_name)
        snapshot = latest[1] if latest else None
    else:
        snapshot = store.load(source_name, date)
    if snapshot is None:
        _fail(f"no snapshot for {source_name}")

    async def _audit():
        source = registry[source_name].create()
        async with source_session(source):
            return await audit_snapshot(source, snapshot, sample_size)

    result = asyncio.run(_audit())
    click.echo(
        f"Audited {result.total} listings: {result.validated} validated, "
        f"{len(result.mismatches)} mismatches, {len(result.errors)} errors"
    )
    for mismatch in result.mismatches:
        expected, actual = mismatch["expected"], mismatch["actual"]
        click.echo(
            f"  ✗ {mismatch['id']}: expected {expected['make']} {expected['model']}, "
            f"got {actual['make']} {actual['model']}"
        )
    if not result.ok:
        sys.exit(1)


@main.command("mark-exceeded")
@click.argument("source_name")
@click.argument("make")
@click.argument("model")
@data_dir_option
def mark_exceeded(source_name, make, model, data_dir):
    """Backfill the exceeded-max marker for MAKE MODEL on every stored day."""
    touched = _store(data_dir).mark_exceeded(source_name, make, model)
    click.echo(f"Marked {make} {model} on {len(touched)} day(s) for {source_name}")


@main.command("list")
def list_sources():
    """List available sources."""
    click.echo("Available sources:")
    for entry in build_registry().values():
        state = "" if entry.enabled else " (disabled)"
        doc = (entry.factory.__doc__ or "").strip().splitlines()
        click.echo(f"  {entry.name:20s} {doc[0] if doc else ''}{state}")


if __name__ == "__main__":
    main()
