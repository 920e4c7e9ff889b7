"""
Station Processor: one batch run over the configured stations.

Per station:
  1. Load the historical daily record and today's max/min
  2. Decide today's station-local date
  3. Select the ±WINDOW_DAYS historical window and compute its percentiles
  4. Classify today's Tavg and rank it against the full record
  5. Fold today's rank into this year's heatmap rows and build the grid
  6. Only then publish, all or nothing: heatmap store, stats.json, heatmap.json,
     plot_context.json (a failure rolls the store back)

Everything a station needs travels in a StationContext; there is no shared
mutable state, so stations run concurrently and one station's failure never
touches another's outputs.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

import config
from models.errors import DateAlignmentError, InsufficientData, MissingCurrentObservation
from models.heatmap import HeatmapRow
from models.observation import CurrentObservation, HistoricalObservation
from models.result import StationResult
from models.station import StationConfig
from services import logger as log_service
from services.classifier import classify
from services.climatology import (
    average_percent,
    calc_hist_percentiles,
    sample,
    select_window,
    warming_trend,
)
from services.heatmap import HeatmapStore, build_grid, grid_to_json, reconcile
from services.output_writer import stage_station_outputs
from utils.observation_loader import (
    load_current_obs,
    load_feed_readings,
    load_historical_obs,
    station_zone,
    summarise_readings,
)

logger = logging.getLogger("isithot.station_processor")


@dataclass(frozen=True)
class Settings:
    """Where a run reads from and writes to."""

    latest_obs_file: Path = config.LATEST_OBS_FILE
    feed_dir: Path = config.FEED_DIR
    hist_dir: Path = config.HIST_DIR
    heatmap_dir: Path = config.HEATMAP_DIR
    output_dir: Path = config.OUTPUT_DIR
    log_dir: Path = config.LOG_DIR
    window_days: int = config.WINDOW_DAYS
    max_concurrent: int = config.MAX_CONCURRENT_STATIONS

    @classmethod
    def under(cls, root: Path | str, **overrides: Any) -> Settings:
        """The standard directory layout below *root*."""
        root = Path(root)
        paths = {
            "latest_obs_file": root / "data" / "latest" / "latest-all.csv",
            "feed_dir": root / "data" / "latest",
            "hist_dir": root / "data" / "hist",
            "heatmap_dir": root / "databackup",
            "output_dir": root / "www" / "output",
            "log_dir": root / "data" / "logs",
        }
        paths.update(overrides)
        return cls(**paths)


@dataclass(frozen=True)
class StationContext:
    station: StationConfig
    run_time: datetime  # tz-aware wall clock of the run
    settings: Settings


@dataclass
class RunSummary:
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)  # station id → reason
    results: dict[str, StationResult] = field(default_factory=dict)


def current_date(station: StationConfig, now: datetime) -> date:
    """Today's calendar date at the station."""
    if now.tzinfo is None or now.utcoffset() is None:
        raise DateAlignmentError(
            f"{station.id}: run time {now.isoformat()} has no timezone; cannot place it in {station.timezone}"
        )
    return now.astimezone(station_zone(station.timezone)).date()


def load_current(ctx: StationContext) -> CurrentObservation:
    """Half-hourly feed if the collector left one, otherwise the shared latest CSV."""
    feed_path = ctx.settings.feed_dir / f"{ctx.station.id}.json"
    if feed_path.exists():
        readings = load_feed_readings(feed_path, ctx.station.timezone)
        return summarise_readings(ctx.station.id, readings)
    return load_current_obs(ctx.settings.latest_obs_file, ctx.station.id)


def build_plot_context(
    station: StationConfig,
    run_date: date,
    window: list[HistoricalObservation],
    current: CurrentObservation,
    result_percentiles: dict[str, dict[str, float]],
    window_days: int,
) -> dict[str, Any]:
    """Series for the distribution and time-series charts; today is appended here only."""
    series = [
        {"date": obs.date.isoformat(), "tavg": obs.tavg}
        for obs in window
    ]
    if current.tavg is not None:
        series.append({"date": run_date.isoformat(), "tavg": current.tavg, "today": True})

    same_day = [
        {"year": obs.year, "tavg": obs.tavg}
        for obs in window
        if (obs.month, obs.day) == (run_date.month, run_date.day)
    ]
    return {
        "station": station.id,
        "label": station.label,
        "date": run_date.isoformat(),
        "record_start": station.record_start,
        "window_days": window_days,
        "today": {"tmax": current.tmax, "tmin": current.tmin, "tavg": current.tavg},
        "percentiles": result_percentiles,
        "trend_c_per_century": warming_trend(window),
        "series": series,
        "same_day": same_day,
    }


def compute_station(ctx: StationContext, store: HeatmapStore) -> StationResult:
    """Steps 1–5: everything in memory, nothing written."""
    station = ctx.station
    hist_path = ctx.settings.hist_dir / f"{station.id}.csv"
    if not hist_path.exists():
        raise InsufficientData(f"no historical record at {hist_path}")
    record = load_historical_obs(hist_path)
    current = load_current(ctx)
    run_date = current.obs_date or current_date(station, ctx.run_time)

    window = select_window(record, run_date, ctx.settings.window_days)
    percentiles = calc_hist_percentiles(window)

    tavg = current.tavg
    try:
        category = classify(tavg, percentiles)
    except MissingCurrentObservation:
        logger.warning(
            "%s (%s): no current max/min for %s; publishing missing markers",
            station.id, station.label, run_date.isoformat(),
        )
        category = None
    percent = average_percent(sample(record, "Tavg"), tavg)

    if category is not None:
        logger.info(
            "%s (%s) %s: Tavg=%.1f vs %s → %s, warmer than %s%% of the record",
            station.id, station.label, run_date.isoformat(), tavg,
            " ~ ".join(f"{v:.1f}" for v in percentiles.column("Tavg")),
            category.code, percent,
        )

    existing = store.read(station.id, run_date.year)
    rows = reconcile(existing, HeatmapRow(date=run_date, percentile=percent))

    return StationResult(
        station=station,
        run_date=run_date,
        category=category,
        maximum=current.tmax,
        minimum=current.tmin,
        current_average=tavg,
        average_percent=percent,
        percentiles=percentiles,
        heatmap_rows=rows,
        heatmap_grid=grid_to_json(build_grid(rows, run_date.year), run_date.year),
        plot_context=build_plot_context(
            station, run_date, window, current, percentiles.to_dict(), ctx.settings.window_days,
        ),
        heatmap_changed=rows != existing,
    )


def publish_station(result: StationResult, store: HeatmapStore, settings: Settings) -> list[Path]:
    """
    Step 6, all or nothing.

    The store is reconciled again under its lock in case another run got
    there first. The output documents are staged and renamed while that lock
    is held; if any of that fails the store update is rolled back.
    """
    year = result.run_date.year
    written: list[Path] = []

    def _write_outputs(stored: list[HeatmapRow]) -> None:
        if stored != result.heatmap_rows:
            logger.info("%s: heatmap store changed underneath this run; regridding", result.station.id)
            result.heatmap_rows = stored
            result.heatmap_grid = grid_to_json(build_grid(stored, year), year)
        staged = stage_station_outputs(result, settings.output_dir)
        written.extend(staged.commit())

    store.update(
        result.station.id, year,
        HeatmapRow(date=result.run_date, percentile=result.average_percent),
        on_commit=_write_outputs,
    )
    return written


class StationProcessor:
    """Runs the pipeline for every station, isolating failures per station."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()
        self._store = HeatmapStore(self._settings.heatmap_dir)

    def process_station(self, ctx: StationContext) -> StationResult:
        result = compute_station(ctx, self._store)
        publish_station(result, self._store, ctx.settings)
        log_service.log_station_result(result, base_dir=ctx.settings.log_dir)
        return result

    async def run_all(self, stations: list[StationConfig], run_time: datetime) -> RunSummary:
        """Process every station; at most settings.max_concurrent at once."""
        semaphore = asyncio.Semaphore(max(1, self._settings.max_concurrent))

        async def _run_one(station: StationConfig) -> StationResult:
            ctx = StationContext(station=station, run_time=run_time, settings=self._settings)
            async with semaphore:
                logger.info("Beginning analysis: %s (%s)", station.label, station.id)
                return await asyncio.to_thread(self.process_station, ctx)

        results = await asyncio.gather(
            *(_run_one(station) for station in stations),
            return_exceptions=True,
        )

        summary = RunSummary()
        for station, result in zip(stations, results):
            if isinstance(result, Exception):
                logger.error(
                    "Station %s (%s) skipped: %s: %s",
                    station.id, station.label, type(result).__name__, result,
                )
                log_service.log_station_failure(station, result, base_dir=self._settings.log_dir)
                summary.failed[station.id] = f"{type(result).__name__}: {result}"
                continue
            summary.succeeded.append(station.id)
            summary.results[station.id] = result

        logger.info(
            "Run complete: %d stations ok, %d failed",
            len(summary.succeeded), len(summary.failed),
        )
        return summary
