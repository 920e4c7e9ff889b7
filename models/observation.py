"""
Typed observation records.

Missing temperatures are ``None`` on the single-value records and ``NaN`` once
they land in numpy arrays; they are never coerced to zero.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime


def is_missing(value: float | None) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def mean_of_extremes(tmax: float | None, tmin: float | None) -> float | None:
    """Daily average as the mean of max and min (not a time-integrated mean)."""
    if is_missing(tmax) or is_missing(tmin):
        return None
    return (tmax + tmin) / 2.0


@dataclass(frozen=True)
class Reading:
    """A single sub-daily feed reading."""

    timestamp: datetime  # tz-aware, station local time
    air_temp: float | None


@dataclass(frozen=True)
class CurrentObservation:
    """Today's max/min for a station, either reported directly or summarised from readings."""

    station_id: str
    tmax: float | None = None
    tmin: float | None = None
    obs_date: date | None = None

    @property
    def tavg(self) -> float | None:
        return mean_of_extremes(self.tmax, self.tmin)


@dataclass(frozen=True)
class HistoricalObservation:
    """One day of a station's historical daily record."""

    year: int
    month: int
    day: int
    tmax: float | None
    tmin: float | None

    @property
    def date(self) -> date:
        return date(self.year, self.month, self.day)

    @property
    def tavg(self) -> float | None:
        return mean_of_extremes(self.tmax, self.tmin)

    def value(self, variable: str) -> float | None:
        if variable == "Tmax":
            return self.tmax
        if variable == "Tmin":
            return self.tmin
        if variable == "Tavg":
            return self.tavg
        raise KeyError(variable)
