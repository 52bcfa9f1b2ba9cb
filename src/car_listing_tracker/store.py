"""Append-only per-source, per-day snapshot files.

Layout::

    <data_dir>/<source>/<YYYY-MM-DD>.json

Each file is a snapshot document::

    {
      "source": "carmax",
      "scraped_at": "2025-11-07T06:12:44.102934+00:00",
      "listings": [...],
      "models_exceeded_max_vehicles": [{"make": "Tesla", "model": "Model 3"}]
    }

The day's file only ever grows through :meth:`SnapshotStore.append_listings`.
Later corrections (status tags, exceeded-max backfill) rewrite fields in
place and never remove or reorder listings. The store is
read-modify-write with no locking; callers must serialise writes to a
given (source, date) file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path

from car_listing_tracker import settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _empty_snapshot(source: str, scraped_at: str) -> dict:
    return {
        "source": source,
        "scraped_at": scraped_at,
        "listings": [],
        "models_exceeded_max_vehicles": [],
    }


class SnapshotStore:
    """Read and write daily snapshots under *data_dir*."""

    def __init__(self, data_dir: str | os.PathLike = settings.DATA_DIR, *, clock=_utcnow):
        self.data_dir = Path(data_dir)
        self._clock = clock

    # ------------------------------------------------------------------
    # Paths & dates
    # ------------------------------------------------------------------

    def today(self) -> str:
        return self._clock().date().isoformat()

    def path_for(self, source: str, date: str) -> Path:
        return self.data_dir / source / f"{date}.json"

    def sources(self) -> list[str]:
        if not self.data_dir.is_dir():
            return []
        return sorted(p.name for p in self.data_dir.iterdir() if p.is_dir())

    def dates(self, source: str) -> list[str]:
        """Every stored date for *source*, oldest first."""
        source_dir = self.data_dir / source
        if not source_dir.is_dir():
            return []
        return sorted(p.stem for p in source_dir.glob("*.json"))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self, source: str, date: str) -> dict | None:
        """Load one snapshot, or ``None`` if that day was never scraped."""
        path = self.path_for(source, date)
        if not path.exists():
            return None
        snapshot = json.loads(path.read_text(encoding="utf-8"))
        # Files written before the exceeded-max marker existed lack the key.
        snapshot.setdefault("models_exceeded_max_vehicles", [])
        snapshot.setdefault("listings", [])
        return snapshot

    def latest(self, source: str, before: str | None = None) -> tuple[str, dict] | None:
        """Return ``(date, snapshot)`` for the newest day, optionally strictly before *before*."""
        for date in reversed(self.dates(source)):
            if before is not None and date >= before:
                continue
            snapshot = self.load(source, date)
            if snapshot is not None:
                return date, snapshot
        return None

    def load_history(
        self,
        sources: Iterable[str] | None = None,
        dates: Iterable[str] | None = None,
    ) -> list[dict]:
        """Load every snapshot, optionally restricted to *sources* and a date allowlist."""
        allowed = set(dates) if dates is not None else None
        history: list[dict] = []
        for source in sources if sources is not None else self.sources():
            for date in self.dates(source):
                if allowed is not None and date not in allowed:
                    continue
                snapshot = self.load(source, date)
                if snapshot is not None:
                    history.append(snapshot)
        return history

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append_listings(
        self,
        source: str,
        listings: Iterable,
        exceeded_max: bool = False,
        query=None,
    ) -> Path:
        """Append *listings* to today's snapshot for *source*.

        No deduplication happens here; sources dedupe within their own
        pagination. When *exceeded_max* is set, *query*'s make/model is
        added to ``models_exceeded_max_vehicles`` unless already present.
        """
        now = self._clock()
        date = now.date().isoformat()
        now_iso = now.isoformat()

        snapshot = self.load(source, date) or _empty_snapshot(source, now_iso)
        new_listings = [dict(listing) for listing in listings]
        snapshot["listings"].extend(new_listings)
        if now_iso > snapshot.get("scraped_at", ""):
            snapshot["scraped_at"] = now_iso

        if exceeded_max and query is not None:
            marker = _marker(query)
            if marker not in snapshot["models_exceeded_max_vehicles"]:
                snapshot["models_exceeded_max_vehicles"].append(marker)

        path = self._write(source, date, snapshot)
        logger.info(
            "[%s] Added %d listings (total: %d) to %s",
            source, len(new_listings), len(snapshot["listings"]), path,
        )
        return path

    def tag_purchase_status(self, source: str, date: str, statuses: Mapping[str, str]) -> int:
        """Set ``purchase_status`` on listings of an existing day, by id.

        Returns the number of listings tagged. ``scraped_at`` is left
        untouched so the snapshot keeps its calendar day.
        """
        if not statuses:
            return 0
        snapshot = self.load(source, date)
        if snapshot is None:
            raise FileNotFoundError(self.path_for(source, date))

        tagged = 0
        for listing in snapshot["listings"]:
            status = statuses.get(listing.get("id"))
            if status is not None and listing.get("purchase_status") != status:
                listing["purchase_status"] = status
                tagged += 1

        if tagged:
            self._write(source, date, snapshot)
            logger.info("[%s] Tagged %d listings in %s", source, tagged, date)
        return tagged

    def mark_exceeded(self, source: str, make: str, model: str) -> list[str]:
        """Backfill the exceeded-max marker on every stored day that has *make*/*model*.

        Returns the dates whose files were changed.
        """
        marker = {"make": make, "model": model}
        touched: list[str] = []
        for date in self.dates(source):
            snapshot = self.load(source, date)
            has_model = any(
                l.get("make") == make and l.get("model") == model
                for l in snapshot["listings"]
            )
            if not has_model or marker in snapshot["models_exceeded_max_vehicles"]:
                continue
            snapshot["models_exceeded_max_vehicles"].append(marker)
            self._write(source, date, snapshot)
            touched.append(date)
            logger.info("[%s] Marked %s %s as exceeded in %s", source, make, model, date)
        return touched

    def _write(self, source: str, date: str, snapshot: dict) -> Path:
        """Write *snapshot* atomically: temp file in the same directory, then rename."""
        path = self.path_for(source, date)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{date}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(snapshot, fh, indent=2, default=str)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return path


def _marker(query) -> dict:
    if isinstance(query, Mapping):
        return {"make": query["make"], "model": query["model"]}
    return {"make": query.make, "model": query.model}
