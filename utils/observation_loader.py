"""
Parsers for the file-shaped inputs deposited by the collectors.

  - station list        www/locations.json
  - latest max/min      data/latest/latest-all.csv   (id,tmax,tmin[,date])
  - half-hourly feed    data/latest/<id>.json        (BOM observations JSON)
  - historical record   data/hist/<id>.csv           (Year,Month,Day,Tmax,Tmin)

Blank, "NA" and "NaN" cells load as missing (None).
"""
from __future__ import annotations

import csv
import json
import logging
import math
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import config
from models.errors import DateAlignmentError, MalformedStore
from models.observation import CurrentObservation, HistoricalObservation, Reading
from models.station import StationConfig

logger = logging.getLogger("isithot.loader")

_MISSING_TOKENS = {"", "na", "nan", "null", "none", "-"}

# Historical CSV header aliases → canonical column
_HIST_COLUMNS = {
    "year": "year",
    "month": "month",
    "day": "day",
    "tmax": "tmax",
    "maximum temperature (degree c)": "tmax",
    "tmin": "tmin",
    "minimum temperature (degree c)": "tmin",
}


def parse_temp(raw: Any) -> float | None:
    """Parse a temperature cell; missing markers become None."""
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
        return None if math.isnan(value) else value
    text = str(raw).strip()
    if text.lower() in _MISSING_TOKENS:
        return None
    value = float(text)
    return None if math.isnan(value) else value


def station_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise DateAlignmentError(f"unknown timezone {tz_name!r}") from exc


# ── Station list ──────────────────────────────────────────────────────────────


def load_stations(path: Path | str) -> list[StationConfig]:
    """Read the station list, preserving file order."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as exc:
        raise MalformedStore(f"invalid JSON: {exc}", path) from exc

    entries: Iterable[Any] = raw.values() if isinstance(raw, dict) else raw
    stations = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise MalformedStore("station entries must be objects", path)
        try:
            stations.append(
                StationConfig(
                    id=str(entry["id"]),
                    label=str(entry["label"]),
                    timezone=str(entry.get("timezone") or entry["tz"]),
                    record_start=_optional_str(entry.get("record_start")),
                    record_end=_optional_str(entry.get("record_end")),
                    name=str(entry.get("name") or ""),
                )
            )
        except KeyError as exc:
            raise MalformedStore(f"station entry missing {exc.args[0]!r}", path) from exc

    logger.info("Loaded %d stations from %s", len(stations), path)
    return stations


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


# ── Current observations ─────────────────────────────────────────────────────


def load_current_obs(path: Path | str, station_id: str) -> CurrentObservation:
    """
    Today's max/min for one station from the shared "latest" CSV.

    An absent file or station row is not an error: the observation comes back
    with missing values and the caller decides how to degrade.
    """
    path = Path(path)
    if not path.exists():
        logger.warning("No latest observations file at %s", path)
        return CurrentObservation(station_id=station_id)

    with open(path, "r", newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None or not {"id", "tmax", "tmin"} <= {
            name.strip().lower() for name in reader.fieldnames
        }:
            raise MalformedStore("expected columns id,tmax,tmin", path)
        for row in reader:
            row = {k.strip().lower(): v for k, v in row.items() if k is not None}
            if str(row["id"]).strip() != station_id:
                continue
            try:
                obs_date = date.fromisoformat(row["date"].strip()) if row.get("date") else None
                return CurrentObservation(
                    station_id=station_id,
                    tmax=parse_temp(row["tmax"]),
                    tmin=parse_temp(row["tmin"]),
                    obs_date=obs_date,
                )
            except ValueError as exc:
                raise MalformedStore(f"bad row for {station_id}: {exc}", path) from exc

    logger.warning("Station %s not present in %s", station_id, path)
    return CurrentObservation(station_id=station_id)


def load_feed_readings(path: Path | str, tz_name: str) -> list[Reading]:
    """
    Parse a half-hourly BOM observations feed into readings in station time.

    Prefers the UTC stamp (aifstime_utc) when present; a local-only stamp that
    falls in a DST fold or gap cannot be placed and raises DateAlignmentError.
    """
    path = Path(path)
    tz = station_zone(tz_name)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        rows = raw["observations"]["data"]
    except (json.JSONDecodeError, KeyError, TypeError) as exc:
        raise MalformedStore(f"not a BOM observations feed: {exc}", path) from exc

    readings = []
    for row in rows:
        try:
            if row.get("aifstime_utc"):
                ts = datetime.strptime(row["aifstime_utc"], "%Y%m%d%H%M%S")
                ts = ts.replace(tzinfo=timezone.utc).astimezone(tz)
            else:
                ts = _localize(datetime.strptime(row["local_date_time_full"], "%Y%m%d%H%M%S"), tz)
            readings.append(Reading(timestamp=ts, air_temp=parse_temp(row.get("air_temp"))))
        except (KeyError, ValueError) as exc:
            raise MalformedStore(f"bad feed row {row!r}: {exc}", path) from exc
    return readings


def _localize(naive: datetime, tz: ZoneInfo) -> datetime:
    early = naive.replace(tzinfo=tz, fold=0)
    late = naive.replace(tzinfo=tz, fold=1)
    if early.utcoffset() != late.utcoffset():
        raise DateAlignmentError(f"local time {naive.isoformat()} is ambiguous in {tz.key}")
    return early


def summarise_readings(
    station_id: str,
    readings: list[Reading],
    hours: int = config.FEED_SUMMARY_HOURS,
) -> CurrentObservation:
    """
    Max and min over the last *hours* of readings.

    The observation date is the local date FEED_DATE_LAG_HOURS before the most
    recent reading, i.e. the middle of the summarised period.
    """
    if not readings:
        return CurrentObservation(station_id=station_id)

    latest = max(r.timestamp for r in readings)
    cutoff = latest - timedelta(hours=hours)
    temps = [
        r.air_temp
        for r in readings
        if r.timestamp > cutoff and r.air_temp is not None
    ]
    obs_date = (latest - timedelta(hours=config.FEED_DATE_LAG_HOURS)).date()
    if not temps:
        return CurrentObservation(station_id=station_id, obs_date=obs_date)
    return CurrentObservation(
        station_id=station_id,
        tmax=max(temps),
        tmin=min(temps),
        obs_date=obs_date,
    )


# ── Historical record ────────────────────────────────────────────────────────


def load_historical_obs(path: Path | str) -> list[HistoricalObservation]:
    """Read a station's daily history. Every row must be a real calendar date (no Feb 30)."""
    path = Path(path)
    with open(path, "r", newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            raise MalformedStore("empty historical file", path)
        columns = {
            name: _HIST_COLUMNS[name.strip().lower()]
            for name in reader.fieldnames
            if name is not None and name.strip().lower() in _HIST_COLUMNS
        }
        missing = {"year", "month", "day", "tmax", "tmin"} - set(columns.values())
        if missing:
            raise MalformedStore(f"missing columns {sorted(missing)}", path)

        observations = []
        for line_no, row in enumerate(reader, start=2):
            values = {canonical: row[name] for name, canonical in columns.items()}
            try:
                day = date(int(values["year"]), int(values["month"]), int(values["day"]))
                obs = HistoricalObservation(
                    year=day.year,
                    month=day.month,
                    day=day.day,
                    tmax=parse_temp(values["tmax"]),
                    tmin=parse_temp(values["tmin"]),
                )
            except (TypeError, ValueError) as exc:
                raise MalformedStore(f"line {line_no}: {exc}", path) from exc
            observations.append(obs)

    logger.debug("Loaded %d historical days from %s", len(observations), path)
    return observations
