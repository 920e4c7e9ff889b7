"""
Local climatology for "today" at a station.

Builds the comparison baseline from the station's own daily history:

  - a ±WINDOW_DAYS calendar window around today, pooled across every year
  - linear-interpolation quantiles (numpy "linear", Hyndman & Fan type 7)
  - the empirical CDF of today's Tavg against the full record
  - the least-squares Tavg trend over the window, in °C per century

Missing values are dropped from every sample; they are never zero-filled.
"""
from __future__ import annotations

import logging
import math
from datetime import date
from typing import Iterable

import numpy as np
from scipy import stats

import config
from models.climatology import PercentileTable
from models.errors import InsufficientData
from models.observation import HistoricalObservation, is_missing

logger = logging.getLogger("isithot.climatology")

MIN_SAMPLES = 2


# ── Window selection ──────────────────────────────────────────────────────────


def _anniversary(target: date, year: int) -> date:
    """Target's calendar day in *year*; Feb 29 falls back to Feb 28."""
    try:
        return target.replace(year=year)
    except ValueError:
        return date(year, 2, 28)


def days_from_anniversary(day: date, target: date) -> int:
    """
    Calendar distance between *day* and the nearest anniversary of *target*.

    The previous and next years' anniversaries are considered as well so the
    window wraps across New Year.
    """
    return min(
        abs((day - _anniversary(target, year)).days)
        for year in (day.year - 1, day.year, day.year + 1)
    )


def select_window(
    record: Iterable[HistoricalObservation],
    target: date,
    window: int = config.WINDOW_DAYS,
) -> list[HistoricalObservation]:
    """Every historical day within *window* days of target's calendar day, any year."""
    selected = [obs for obs in record if days_from_anniversary(obs.date, target) <= window]
    if not selected:
        raise InsufficientData(
            f"no historical days within ±{window} days of {target:%d %B}"
        )
    logger.debug(
        "Window ±%d around %s: %d days from %d years",
        window, target.isoformat(), len(selected), len({obs.year for obs in selected}),
    )
    return selected


# ── Percentiles ───────────────────────────────────────────────────────────────


def sample(observations: Iterable[HistoricalObservation], variable: str) -> np.ndarray:
    """Non-missing values of one variable as a float array."""
    values = [obs.value(variable) for obs in observations]
    return np.array([v for v in values if not is_missing(v)], dtype=np.float64)


def variable_percentiles(values: np.ndarray, variable: str) -> list[float]:
    """Cutpoints for config.QUANTILES, linear interpolation between order statistics."""
    if values.size < MIN_SAMPLES:
        raise InsufficientData(
            f"{variable}: {values.size} usable samples, need at least {MIN_SAMPLES}",
            variable=variable,
        )
    cutpoints = np.percentile(
        values,
        [q * 100.0 for q in config.QUANTILES],
        method="linear",
    )
    return [float(c) for c in cutpoints]


def calc_hist_percentiles(observations: list[HistoricalObservation]) -> PercentileTable:
    """Quantile table for Tmax, Tmin and Tavg over the windowed sample."""
    columns = {
        variable: variable_percentiles(sample(observations, variable), variable)
        for variable in config.VARIABLES
    }
    cutpoints = {
        label: {variable: columns[variable][i] for variable in config.VARIABLES}
        for i, label in enumerate(config.QUANTILE_LABELS)
    }
    return PercentileTable(cutpoints=cutpoints, sample_size=len(observations))


# ── Empirical CDF ─────────────────────────────────────────────────────────────


def average_percent(tavg_sample: np.ndarray, tavg: float | None) -> int | None:
    """
    Percentage of historical Tavg values at or below today's, as a whole number.

    Rounded half-up. Returns None when today's Tavg is missing.
    """
    if is_missing(tavg):
        return None
    if tavg_sample.size == 0:
        raise InsufficientData("no historical Tavg values for the empirical CDF", variable="Tavg")
    percent = stats.percentileofscore(tavg_sample, tavg, kind="weak")
    return int(math.floor(percent + 0.5))


# ── Trend ─────────────────────────────────────────────────────────────────────


def warming_trend(observations: Iterable[HistoricalObservation]) -> float | None:
    """Least-squares Tavg slope against date, °C per century. None if it can't be fit."""
    points = [(obs.date.toordinal(), obs.tavg) for obs in observations if obs.tavg is not None]
    if len(points) < MIN_SAMPLES or len({x for x, _ in points}) < MIN_SAMPLES:
        return None
    x, y = zip(*points)
    fit = stats.linregress(np.array(x, dtype=np.float64), np.array(y, dtype=np.float64))
    return float(fit.slope) * 365.0 * 100.0
