"""
Per-station, per-year record of daily percentile ranks for the calendar heatmap.

Each (station, year) lives in ``<HEATMAP_DIR>/<id>-<year>.csv``::

    date,percentile
    2024-01-01,63
    2024-01-02,71

Rows are updated in place or appended, never duplicated and never deleted.
The read-modify-write runs under an advisory lock and lands via atomic rename,
so overlapping or retried runs cannot corrupt a store.
"""
from __future__ import annotations

import csv
import io
import logging
import math
from datetime import date
from pathlib import Path
from typing import Any, Callable

import numpy as np

from models.errors import MalformedStore
from models.heatmap import HeatmapRow
from utils.atomic_file import atomic_write_text, exclusive_lock

logger = logging.getLogger("isithot.heatmap")

HEADER = ["date", "percentile"]
GRID_SHAPE = (31, 12)  # day of month × month


# ── Reconciliation ────────────────────────────────────────────────────────────


def reconcile(rows: list[HeatmapRow], new_row: HeatmapRow) -> list[HeatmapRow]:
    """
    Fold today's row into the full row set.

    - percentile missing     → rows returned unchanged
    - date already present   → percentile overwritten in place
    - date not present       → row appended
    """
    if new_row.percentile is None:
        logger.debug("No percentile for %s; heatmap rows left as they are", new_row.date)
        return list(rows)

    updated = list(rows)
    for i, row in enumerate(updated):
        if row.date == new_row.date:
            logger.debug("Updating heatmap row %s: %s → %s", row.date, row.percentile, new_row.percentile)
            updated[i] = row.with_percentile(new_row.percentile)
            return updated

    logger.debug("Adding heatmap row %s = %s", new_row.date, new_row.percentile)
    updated.append(new_row)
    return updated


# ── Grid ──────────────────────────────────────────────────────────────────────


def build_grid(rows: list[HeatmapRow], year: int) -> np.ndarray:
    """Dense day × month array for *year*; NaN wherever no percentile is known."""
    grid = np.full(GRID_SHAPE, np.nan, dtype=np.float64)
    for row in rows:
        if row.date.year != year or row.percentile is None:
            continue
        grid[row.date.day - 1, row.date.month - 1] = row.percentile
    return grid


def grid_to_json(grid: np.ndarray, year: int) -> dict[str, Any]:
    """JSON-ready grid: ``values[day - 1][month - 1]``, null for empty cells."""
    values = [
        [None if math.isnan(v) else (int(v) if float(v).is_integer() else float(v)) for v in day_row]
        for day_row in grid.tolist()
    ]
    return {"year": year, "rows": "day", "columns": "month", "values": values}


# ── Durable store ─────────────────────────────────────────────────────────────


class HeatmapStore:
    """CSV-backed (station, year) row sets."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    def path(self, station_id: str, year: int) -> Path:
        return self._directory / f"{station_id}-{year}.csv"

    def read(self, station_id: str, year: int) -> list[HeatmapRow]:
        """Rows in file order. A store that doesn't exist yet is an empty year."""
        path = self.path(station_id, year)
        text = _read_raw(path)
        if text is None:
            logger.info("No heatmap store for %s %d yet; starting empty", station_id, year)
            return []
        return self._parse(text, year, path)

    @staticmethod
    def _parse(text: str, year: int, path: Path) -> list[HeatmapRow]:
        reader = csv.reader(io.StringIO(text))
        header = next(reader, None)
        if header is None:
            return []
        if [h.strip().lower() for h in header] != HEADER:
            raise MalformedStore(f"expected header {','.join(HEADER)}, got {','.join(header)}", path)

        rows: list[HeatmapRow] = []
        seen: set[date] = set()
        for line_no, record in enumerate(reader, start=2):
            if not record:
                continue
            if len(record) != len(HEADER):
                raise MalformedStore(f"line {line_no}: expected 2 fields", path)
            try:
                day = date.fromisoformat(record[0].strip())
                percentile = _parse_percentile(record[1])
            except ValueError as exc:
                raise MalformedStore(f"line {line_no}: {exc}", path) from exc
            if day.year != year:
                raise MalformedStore(f"line {line_no}: {day} is outside {year}", path)
            if day in seen:
                raise MalformedStore(f"line {line_no}: duplicate row for {day}", path)
            seen.add(day)
            rows.append(HeatmapRow(date=day, percentile=percentile))
        return rows

    def write(self, station_id: str, year: int, rows: list[HeatmapRow]) -> Path:
        """Rewrite the whole row set atomically."""
        path = self.path(station_id, year)
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(HEADER)
        for row in rows:
            writer.writerow([row.date.isoformat(), "" if row.percentile is None else row.percentile])
        atomic_write_text(path, buf.getvalue())
        return path

    def update(
        self,
        station_id: str,
        year: int,
        new_row: HeatmapRow,
        on_commit: Callable[[list[HeatmapRow]], None] | None = None,
    ) -> list[HeatmapRow]:
        """
        Locked read → reconcile → atomic write. Returns the stored rows.

        The file is only written when the rows change, so a missing percentile
        never creates or touches a store. *on_commit* runs under the same lock
        with the stored rows; if it raises, the store is put back exactly as it
        was before this call.
        """
        path = self.path(station_id, year)
        with exclusive_lock(path):
            original = _read_raw(path)
            rows = self._parse(original, year, path) if original is not None else []
            updated = reconcile(rows, new_row)
            changed = updated != rows
            if changed:
                self.write(station_id, year, updated)
                logger.info(
                    "Heatmap store %s now has %d rows (%s = %s)",
                    path.name, len(updated), new_row.date, new_row.percentile,
                )
            if on_commit is not None:
                try:
                    on_commit(updated)
                except BaseException:
                    if changed:
                        self._restore(path, original)
                    raise
        return updated

    @staticmethod
    def _restore(path: Path, original: str | None) -> None:
        logger.warning("Rolling back heatmap store %s", path.name)
        if original is None:
            path.unlink(missing_ok=True)
        else:
            atomic_write_text(path, original)


def _parse_percentile(raw: str) -> int | None:
    text = raw.strip()
    if text == "" or text.upper() == "NA":
        return None
    value = float(text)
    if math.isnan(value):
        return None
    if not 0 <= value <= 100:
        raise ValueError(f"percentile {value} outside 0-100")
    return int(round(value))


def _read_raw(path: Path) -> str | None:
    """File text exactly as stored, or None when there is no file yet."""
    if not path.exists():
        return None
    with open(path, "r", newline="", encoding="utf-8") as f:
        return f.read()
