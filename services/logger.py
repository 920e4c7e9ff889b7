from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import config
from models.result import StationResult
from models.station import StationConfig

logger = logging.getLogger("isithot.run_log")

_BASE_DIR = config.LOG_DIR


def _ensure_dir(subdir: str, base_dir: Path | None = None) -> Path:
    path = (base_dir or _BASE_DIR) / subdir
    path.mkdir(parents=True, exist_ok=True)
    return path


def _today_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _append_jsonl(subdir: str, record: dict[str, Any], base_dir: Path | None = None) -> None:
    """Append a single JSON record to today's JSONL file in the given subdirectory."""
    try:
        dir_path = _ensure_dir(subdir, base_dir)
        filepath = dir_path / f"{_today_str()}.jsonl"
        with open(filepath, "a") as f:
            f.write(json.dumps(record, default=str) + "\n")
    except OSError as exc:
        logger.error("Failed to write run log under %s: %s", subdir, exc)


def log_station_result(
    result: StationResult,
    timestamp: datetime | None = None,
    base_dir: Path | None = None,
) -> None:
    """Log a processed station to data/logs/runs/."""
    ts = timestamp or datetime.now(timezone.utc)
    record = {
        "timestamp": ts.isoformat(),
        "status": "ok",
        "station": result.station.id,
        "label": result.station.label,
        "date": result.run_date.isoformat(),
        "category": result.category.code if result.category is not None else None,
        "tavg": result.current_average,
        "average_percent": result.average_percent,
        "window_sample": result.percentiles.sample_size,
        "tavg_percentiles": result.percentiles.column("Tavg"),
        "heatmap_changed": result.heatmap_changed,
    }
    _append_jsonl("runs", record, base_dir)


def log_station_failure(
    station: StationConfig,
    exc: BaseException,
    timestamp: datetime | None = None,
    base_dir: Path | None = None,
) -> None:
    """Log a station that was skipped, with the cause."""
    ts = timestamp or datetime.now(timezone.utc)
    record = {
        "timestamp": ts.isoformat(),
        "status": "failed",
        "station": station.id,
        "label": station.label,
        "error": type(exc).__name__,
        "reason": str(exc),
    }
    _append_jsonl("runs", record, base_dir)
