"""Render stored snapshot history as a static HTML market report.

Usage as a CLI (via the main entry-point)::

    car-listing-tracker report --data-dir data -o report.html

Usage from Python::

    from car_listing_tracker.tools.build_report import build_report
    build_report(store.load_history(), "report.html")
"""

from __future__ import annotations

import html
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from car_listing_tracker import metrics
from car_listing_tracker.date_aggregation import (
    TIME_RANGES,
    aggregate_dates,
    format_date_range_label,
    range_date_labels,
)

LISTING_COLUMNS = [
    ("Source", "source"),
    ("Year", "year"),
    ("Model", None),
    ("Trim", "trim"),
    ("Price", "price"),
    ("Mileage", "mileage"),
    ("Location", "location"),
    ("Days", "days_on_market"),
]


def format_currency(value) -> str:
    return f"${value:,.0f}" if isinstance(value, (int, float)) else ""


def format_currency_short(value) -> str:
    """``$28.5k`` style, for dense trend tables."""
    if not isinstance(value, (int, float)):
        return ""
    if abs(value) >= 1000:
        short = f"{value / 1000:.1f}".rstrip("0").rstrip(".")
        return f"${short}k"
    return f"${value:,.0f}"


def _cell(value, css: str = "", sort_value=None) -> str:
    cls = f' class="{css}"' if css else ""
    sort_attr = f' data-sort-value="{sort_value}"' if sort_value is not None else ""
    return f"      <td{cls}{sort_attr}>{html.escape(str(value))}</td>"


def _listing_row(listing: dict, extra: list[str] | None = None) -> str:
    cells = []
    for header, key in LISTING_COLUMNS:
        if header == "Model":
            url = listing.get("url") or ""
            label = html.escape(metrics.model_key(listing))
            if url:
                cells.append(
                    f'      <td><a href="{html.escape(url)}" target="_blank"'
                    f' rel="noopener">{label}</a></td>'
                )
            else:
                cells.append(f"      <td>{label}</td>")
        elif key == "price":
            cells.append(_cell(format_currency(listing.get("price")), "price", listing.get("price") or 0))
        elif key == "mileage":
            mileage = listing.get("mileage")
            cells.append(_cell(f"{mileage:,}" if isinstance(mileage, int) else "", sort_value=mileage or 0))
        else:
            value = listing.get(key)
            cells.append(_cell("" if value is None else value))
    cells.extend(extra or [])
    return "    <tr>\n" + "\n".join(cells) + "\n    </tr>"


def _listing_table(title: str, listings: list[dict], extra_headers=(), extra_cells=None) -> str:
    if not listings:
        return f"  <h2>{html.escape(title)}</h2>\n  <p class=\"meta\">None.</p>"
    headers = "".join(f"<th>{h}</th>" for h, _ in LISTING_COLUMNS)
    headers += "".join(f"<th>{h}</th>" for h in extra_headers)
    rows = [_listing_row(l, extra_cells(l) if extra_cells else None) for l in listings]
    return (
        f"  <h2>{html.escape(title)} ({len(listings)})</h2>\n"
        '  <table class="sortable">\n'
        f"    <thead><tr>{headers}</tr></thead>\n"
        "    <tbody>\n" + "\n".join(rows) + "\n    </tbody>\n"
        "  </table>"
    )


def _model_summary(snapshots: Sequence[dict], date: str, new, sold) -> str:
    current = metrics.listings_on(snapshots, date)
    index = metrics.build_sighting_index(snapshots)
    models = sorted({metrics.model_key(l) for l in current})
    new_by_model = _count_by_model(new)
    sold_by_model = _count_by_model(sold)

    rows = []
    for model in models:
        listings = [l for l in current if metrics.model_key(l) == model]
        stats = metrics.price_stats(listings)
        days = metrics.average_days_on_market(snapshots, listings, date, index=index)
        rows.append("    <tr>\n" + "\n".join([
            _cell(model),
            _cell(len(listings), sort_value=len(listings)),
            _cell(format_currency(stats["min"]), sort_value=stats["min"]),
            _cell(format_currency(stats["avg"]), "price", stats["avg"]),
            _cell(format_currency(stats["max"]), sort_value=stats["max"]),
            _cell("" if days is None else days, sort_value=days or 0),
            _cell(new_by_model.get(model, 0) or ""),
            _cell(sold_by_model.get(model, 0) or ""),
        ]) + "\n    </tr>")

    headers = "".join(
        f"<th>{h}</th>"
        for h in ("Model", "Listings", "Min", "Avg", "Max", "Avg Days", "New", "Sold")
    )
    return (
        '  <table class="sortable">\n'
        f"    <thead><tr>{headers}</tr></thead>\n"
        "    <tbody>\n" + "\n".join(rows) + "\n    </tbody>\n"
        "  </table>"
    )


def _count_by_model(listings: list[dict]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for listing in listings:
        key = metrics.model_key(listing)
        counts[key] = counts.get(key, 0) + 1
    return counts


def _trend_table(snapshots: Sequence[dict], date: str, days: int) -> str:
    available = metrics.unique_dates(snapshots)
    base_dates = range_date_labels(date, days)
    aggregation = aggregate_dates(base_dates, available)
    dates = [d for d in aggregation.dates if any(g in available for g in aggregation.date_groups[d])]
    if not dates:
        return ""

    in_range = set(base_dates)
    names = {
        metrics.model_key(l): (l.get("make") or "", l.get("model") or "")
        for s in snapshots if metrics.snapshot_date(s) in in_range
        for l in s.get("listings", [])
    }
    models = sorted(names)
    bucketed = metrics.aggregate_metrics_for_groups(
        snapshots, models, base_dates, aggregation, metrics.listings_for_model,
    )

    headers = "<th>Model</th>" + "".join(
        "<th>{}</th>".format(html.escape(
            format_date_range_label(aggregation.date_groups[d][0], aggregation.date_groups[d][-1]) or d
        ))
        for d in dates
    )
    rows = []
    for model in models:
        cells = [_cell(model)]
        for d in dates:
            bucket = bucketed[model][d]
            capped = any(
                metrics.model_exceeded_max_on_date(snapshots, *names[model], day)
                for day in bucket.grouped_dates
            )
            if bucket.has_data:
                count = f"Over {bucket.max_count}" if capped else f"{bucket.avg_count:.0f}"
                cells.append(_cell(
                    f"{format_currency_short(bucket.avg_price)} ({count})",
                    sort_value=round(bucket.avg_price),
                ))
            else:
                cells.append(_cell("Over listed max" if capped else ""))
        rows.append("    <tr>\n" + "\n".join(cells) + "\n    </tr>")
    return (
        '  <table class="sortable">\n'
        f"    <thead><tr>{headers}</tr></thead>\n"
        "    <tbody>\n" + "\n".join(rows) + "\n    </tbody>\n"
        "  </table>"
    )


def build_report(
    snapshots: Sequence[dict],
    output_path: str = "report.html",
    *,
    date: str | None = None,
    time_range: str = "30d",
) -> int:
    """Write an HTML report for *date* (default: latest) to *output_path*.

    Returns the number of listings observed on that date; nothing is
    written when there is no history.
    """
    dates = metrics.unique_dates(snapshots)
    if not dates:
        return 0
    date = date or dates[-1]

    index = metrics.build_sighting_index(snapshots)

    def with_days(listing: dict) -> dict:
        return {
            **listing,
            "days_on_market": metrics.calculate_days_on_market(
                snapshots, listing.get("id"), listing.get("source"), date,
                listing.get("purchase_status"), index=index,
            ),
        }

    new = [with_days(l) for l in metrics.find_new_listings(snapshots, date)]
    changed = [with_days(l) for l in metrics.find_price_changes(snapshots, date)]
    sold = [with_days(l) for l in metrics.find_sold_listings(snapshots, date)]
    count = len(metrics.listings_on(snapshots, date))

    def change_cells(listing: dict) -> list[str]:
        delta = listing["price_change"]
        css = "drop" if delta < 0 else "rise"
        sign = "-" if delta < 0 else "+"
        return [
            _cell(format_currency(listing["previous_price"]), sort_value=listing["previous_price"]),
            _cell(f"{sign}{format_currency(abs(delta))}", css, delta),
        ]

    def status_cells(listing: dict) -> list[str]:
        return [_cell(listing.get("purchase_status") or "")]

    page = _HTML_TEMPLATE.format(
        date=html.escape(date),
        timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
        count=count,
        summary=_model_summary(snapshots, date, new, sold),
        trend=_trend_table(snapshots, date, TIME_RANGES.get(time_range, 30)),
        new=_listing_table("New listings", new),
        changed=_listing_table(
            "Price changes", changed, ("Was", "Change"), change_cells,
        ),
        sold=_listing_table("Sold / pending", sold, ("Status",), status_cells),
    )
    Path(output_path).write_text(page, encoding="utf-8")
    return count


_HTML_TEMPLATE = """\
<!doctype html>
<html>
<head>
<meta charset="utf-8">
<title>Used Vehicle Market {date}</title>
<style>
  :root {{ --ink: #222; --muted: #6c757d; --rule: #dee2e6; --head: #212529; }}
  body {{ font: 14px/1.45 system-ui, sans-serif; color: var(--ink); max-width: 1200px; margin: 1.5rem auto; padding: 0 1rem; }}
  header p {{ color: var(--muted); margin-top: -0.5rem; }}
  section {{ margin-top: 2rem; overflow-x: auto; }}
  table {{ border-collapse: collapse; min-width: 60%; }}
  th {{ background: var(--head); color: #fff; padding: 6px 10px; cursor: pointer; user-select: none; }}
  td {{ padding: 5px 10px; border-top: 1px solid var(--rule); }}
  tbody tr:nth-child(even) {{ background: #f6f7f8; }}
  .price {{ font-variant-numeric: tabular-nums; font-weight: bold; }}
  .drop {{ color: #198754; }}
  .rise {{ color: #b02a37; }}
  a {{ color: inherit; }}
</style>
</head>
<body>
<header>
  <h1>Used Vehicle Market</h1>
  <p>{count} listings on {date}, generated {timestamp}</p>
</header>

<section>
  <h2>By Model</h2>
{summary}
</section>

<section>
  <h2>Average Price Trend</h2>
{trend}
</section>

<section>
{new}
</section>

<section>
{changed}
</section>

<section>
{sold}
</section>

<script>
function sortKey(row, col) {{
  var cell = row.cells[col];
  var raw = cell.dataset.sortValue;
  return raw === undefined ? cell.textContent.trim().toLowerCase() : Number(raw);
}}
for (const table of document.querySelectorAll('table.sortable')) {{
  const body = table.tBodies[0];
  Array.from(table.tHead.rows[0].cells).forEach((th, col) => {{
    let dir = 1;
    th.onclick = () => {{
      const rows = Array.from(body.rows);
      rows.sort((a, b) => {{
        const x = sortKey(a, col), y = sortKey(b, col);
        return ((x > y) - (x < y)) * dir;
      }});
      body.append(...rows);
      dir = -dir;
    }};
  }});
}}
</script>
</body>
</html>
"""
