#!/usr/bin/env python3
"""
Integration tests for the full station pipeline.
Builds a throwaway data tree (history, latest obs, feeds, heatmap stores),
runs the batch over it and inspects what lands on disk.
Runs under pytest, or directly: python test_integration.py
"""
import asyncio
import json
import sys
import tempfile
import traceback
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp

from main import parse_args
from models.station import StationConfig
from services import output_writer
from services.station_processor import Settings, StationContext, StationProcessor
from utils.bom_client import BOMFeedClient, feed_url

SYDNEY = StationConfig(
    id="IDN60901.94768", label="Sydney", timezone="Australia/Sydney",
    record_start="1990", record_end="2019", name="Sydney Observatory Hill",
)
# 2024-01-15 14:00 in Sydney
RUN_TIME = datetime(2024, 1, 15, 3, 0, tzinfo=timezone.utc)


def _write_history(settings: Settings, station_id: str) -> None:
    """Every January day 1990-2019: Tmax 25..29 by day-of-month, Tmin 15, so Tavg 20..22."""
    lines = ["Year,Month,Day,Tmax,Tmin"]
    for year in range(1990, 2020):
        for day in range(1, 32):
            lines.append(f"{year},1,{day},{25 + day % 5},15")
    path = settings.hist_dir / f"{station_id}.csv"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n")


def _write_latest(settings: Settings, rows: dict[str, tuple]) -> None:
    settings.latest_obs_file.parent.mkdir(parents=True, exist_ok=True)
    body = "".join(f"{sid},{tmax},{tmin}\n" for sid, (tmax, tmin) in rows.items())
    settings.latest_obs_file.write_text("id,tmax,tmin\n" + body)


def _read_json(path: Path) -> dict:
    return json.loads(path.read_text())


def _run(settings: Settings, stations: list[StationConfig], run_time: datetime = RUN_TIME):
    return asyncio.run(StationProcessor(settings).run_all(stations, run_time))


# ═══════════════════════════════════════════════════════════════════════════════
# 1. Full pipeline
# ═══════════════════════════════════════════════════════════════════════════════


def test_hot_day_end_to_end():
    with tempfile.TemporaryDirectory() as tmp:
        settings = Settings.under(tmp)
        _write_history(settings, SYDNEY.id)
        _write_latest(settings, {SYDNEY.id: (35.0, 25.0)})

        summary = _run(settings, [SYDNEY])
        assert summary.succeeded == [SYDNEY.id] and not summary.failed

        out = settings.output_dir / SYDNEY.id
        stats = _read_json(out / "stats.json")
        assert stats["isit_answer"] == "Hell yeah!"
        assert stats["isit_comment"] == "It's bloody hot!"
        assert stats["isit_current"] == 30.0
        assert stats["isit_average"] == 100
        assert stats["isit_maximum"] == 35.0 and stats["isit_minimum"] == 25.0
        assert stats["isit_name"] == "Sydney Observatory Hill"
        assert stats["isit_span"] == "1990–2019"

        heatmap = _read_json(out / "heatmap.json")
        assert heatmap["station"] == SYDNEY.id and heatmap["year"] == 2024
        assert heatmap["values"][14][0] == 100
        assert sum(v is not None for day in heatmap["values"] for v in day) == 1

        plot = _read_json(out / "plot_context.json")
        assert plot["date"] == "2024-01-15"
        assert plot["series"][-1] == {"date": "2024-01-15", "tavg": 30.0, "today": True}
        assert len(plot["same_day"]) == 30
        assert set(plot["percentiles"]) == {"5%", "10%", "40%", "50%", "60%", "90%", "95%"}

        store = settings.heatmap_dir / f"{SYDNEY.id}-2024.csv"
        assert store.read_text() == "date,percentile\n2024-01-15,100\n"


def test_rerun_updates_row_in_place():
    with tempfile.TemporaryDirectory() as tmp:
        settings = Settings.under(tmp)
        _write_history(settings, SYDNEY.id)
        _write_latest(settings, {SYDNEY.id: (35.0, 25.0)})
        _run(settings, [SYDNEY])

        # Tavg 20.0: 6 of every 31 January days sit at or below it → 19%
        _write_latest(settings, {SYDNEY.id: (20.0, 20.0)})
        _run(settings, [SYDNEY])
        _run(settings, [SYDNEY])

        store = settings.heatmap_dir / f"{SYDNEY.id}-2024.csv"
        assert store.read_text() == "date,percentile\n2024-01-15,19\n"
        stats = _read_json(settings.output_dir / SYDNEY.id / "stats.json")
        assert stats["isit_average"] == 19


def test_failures_are_isolated():
    no_history = StationConfig(id="NOHIST", label="Nowhere", timezone="Australia/Perth")
    bad_zone = StationConfig(id="BADTZ", label="Atlantis", timezone="Atlantis/Capital")
    with tempfile.TemporaryDirectory() as tmp:
        settings = Settings.under(tmp)
        _write_history(settings, SYDNEY.id)
        _write_history(settings, bad_zone.id)
        _write_latest(settings, {SYDNEY.id: (35.0, 25.0), bad_zone.id: (30.0, 20.0)})

        summary = _run(settings, [no_history, SYDNEY, bad_zone])
        assert summary.succeeded == [SYDNEY.id]
        assert set(summary.failed) == {"NOHIST", "BADTZ"}
        assert summary.failed["NOHIST"].startswith("InsufficientData")
        assert summary.failed["BADTZ"].startswith("DateAlignmentError")

        assert (settings.output_dir / SYDNEY.id / "stats.json").exists()
        assert not (settings.output_dir / "NOHIST").exists()
        assert not (settings.output_dir / "BADTZ").exists()

        logs = list((settings.log_dir / "runs").glob("*.jsonl"))
        assert len(logs) == 1
        records = [json.loads(line) for line in logs[0].read_text().splitlines()]
        assert sorted(r["status"] for r in records) == ["failed", "failed", "ok"]


def test_naive_run_time_fails_the_station():
    with tempfile.TemporaryDirectory() as tmp:
        settings = Settings.under(tmp)
        _write_history(settings, SYDNEY.id)
        _write_latest(settings, {SYDNEY.id: (35.0, 25.0)})
        summary = _run(settings, [SYDNEY], run_time=datetime(2024, 1, 15, 14, 0))
        assert summary.failed[SYDNEY.id].startswith("DateAlignmentError")
        assert not (settings.heatmap_dir / f"{SYDNEY.id}-2024.csv").exists()


def test_unwritable_output_leaves_store_untouched():
    with tempfile.TemporaryDirectory() as tmp:
        blocked = Path(tmp) / "output-is-a-file"
        blocked.write_text("not a directory\n")
        settings = Settings.under(tmp, output_dir=blocked)
        _write_history(settings, SYDNEY.id)
        _write_latest(settings, {SYDNEY.id: (35.0, 25.0)})

        summary = _run(settings, [SYDNEY])
        assert SYDNEY.id in summary.failed
        assert not (settings.heatmap_dir / f"{SYDNEY.id}-2024.csv").exists()
        assert blocked.read_text() == "not a directory\n"


def test_failed_publish_rolls_back_store_and_outputs():
    with tempfile.TemporaryDirectory() as tmp:
        settings = Settings.under(tmp)
        _write_history(settings, SYDNEY.id)
        _write_latest(settings, {SYDNEY.id: (35.0, 25.0)})
        _run(settings, [SYDNEY])
        store = settings.heatmap_dir / f"{SYDNEY.id}-2024.csv"
        out = settings.output_dir / SYDNEY.id
        before = {p.name: p.read_text() for p in out.iterdir()}

        # a cooler day whose last document cannot be staged
        real_stage = output_writer.stage_text

        def _stage(target, text):
            if target.name == "plot_context.json":
                raise OSError("disk full")
            return real_stage(target, text)

        _write_latest(settings, {SYDNEY.id: (20.0, 20.0)})
        with patch("services.output_writer.stage_text", side_effect=_stage):
            summary = _run(settings, [SYDNEY])

        assert summary.failed[SYDNEY.id].startswith("OSError")
        assert store.read_text() == "date,percentile\n2024-01-15,100\n"
        assert {p.name: p.read_text() for p in out.iterdir()} == before
        assert not list(out.glob(".*.tmp"))


# ═══════════════════════════════════════════════════════════════════════════════
# 2. Missing current observation
# ═══════════════════════════════════════════════════════════════════════════════


def test_missing_observation_publishes_markers():
    with tempfile.TemporaryDirectory() as tmp:
        settings = Settings.under(tmp)
        _write_history(settings, SYDNEY.id)
        _write_latest(settings, {})

        summary = _run(settings, [SYDNEY])
        assert summary.succeeded == [SYDNEY.id]

        stats = _read_json(settings.output_dir / SYDNEY.id / "stats.json")
        assert stats["isit_answer"] is None
        assert stats["isit_comment"] is None
        assert stats["isit_current"] is None
        assert stats["isit_average"] is None
        assert stats["isit_label"] == "Sydney"
        assert not (settings.heatmap_dir / f"{SYDNEY.id}-2024.csv").exists()

        heatmap = _read_json(settings.output_dir / SYDNEY.id / "heatmap.json")
        assert all(v is None for day in heatmap["values"] for v in day)


def test_missing_observation_keeps_previous_stats():
    with tempfile.TemporaryDirectory() as tmp:
        settings = Settings.under(tmp)
        _write_history(settings, SYDNEY.id)
        _write_latest(settings, {SYDNEY.id: (35.0, 25.0)})
        _run(settings, [SYDNEY])
        stats_path = settings.output_dir / SYDNEY.id / "stats.json"
        before = stats_path.read_text()

        _write_latest(settings, {SYDNEY.id: ("NA", "NA")})
        summary = _run(settings, [SYDNEY])
        assert summary.succeeded == [SYDNEY.id]
        assert stats_path.read_text() == before

        store = settings.heatmap_dir / f"{SYDNEY.id}-2024.csv"
        assert store.read_text() == "date,percentile\n2024-01-15,100\n"


# ═══════════════════════════════════════════════════════════════════════════════
# 3. Half-hourly feed
# ═══════════════════════════════════════════════════════════════════════════════


def _feed_payload() -> dict:
    rows = [
        {"aifstime_utc": f"20240114{h:02d}0000", "air_temp": 30.0 + h % 10}
        for h in range(24)
    ]
    return {"observations": {"header": [{"ID": "IDN60901"}], "data": rows}}


def test_feed_overrides_latest_csv():
    with tempfile.TemporaryDirectory() as tmp:
        settings = Settings.under(tmp)
        _write_history(settings, SYDNEY.id)
        _write_latest(settings, {SYDNEY.id: (20.0, 20.0)})
        (settings.feed_dir / f"{SYDNEY.id}.json").write_text(json.dumps(_feed_payload()))

        result = StationProcessor(settings).process_station(
            StationContext(station=SYDNEY, run_time=RUN_TIME, settings=settings)
        )
        # latest reading 2024-01-15 10:00 AEDT; the summarised day is the 14th
        assert str(result.run_date) == "2024-01-14"
        assert result.maximum == 39.0 and result.minimum == 30.0
        assert result.category.code == "bh"
        store = settings.heatmap_dir / f"{SYDNEY.id}-2024.csv"
        assert store.read_text() == "date,percentile\n2024-01-14,100\n"


# ═══════════════════════════════════════════════════════════════════════════════
# 4. Feed collector
# ═══════════════════════════════════════════════════════════════════════════════


def _mock_session(status: int = 200, payload=None) -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=payload)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.closed = False
    session.get = MagicMock(return_value=ctx)
    session.close = AsyncMock()
    return session


def test_feed_url():
    assert feed_url("IDN60901.94768") == "http://www.bom.gov.au/fwo/IDN60901/IDN60901.94768.json"


def test_fetch_writes_feed():
    with tempfile.TemporaryDirectory() as tmp:
        session = _mock_session(payload=_feed_payload())
        client = BOMFeedClient(tmp, session=session)
        assert asyncio.run(client.fetch(SYDNEY.id)) is True
        saved = json.loads((Path(tmp) / f"{SYDNEY.id}.json").read_text())
        assert len(saved["observations"]["data"]) == 24
        assert session.get.call_args[0][0] == feed_url(SYDNEY.id)

        asyncio.run(client.close())
        session.close.assert_not_awaited()


def test_fetch_rejects_bad_responses():
    with tempfile.TemporaryDirectory() as tmp:
        for session in (
            _mock_session(status=503, payload=_feed_payload()),
            _mock_session(payload={"product": "no observations"}),
        ):
            client = BOMFeedClient(tmp, session=session)
            assert asyncio.run(client.fetch(SYDNEY.id)) is False
        assert not (Path(tmp) / f"{SYDNEY.id}.json").exists()

        broken = _mock_session()
        broken.get = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        assert asyncio.run(BOMFeedClient(tmp, session=broken).fetch(SYDNEY.id)) is False


def test_fetch_all_isolates_crashes():
    with tempfile.TemporaryDirectory() as tmp:
        client = BOMFeedClient(tmp, session=_mock_session())
        with patch.object(BOMFeedClient, "fetch", AsyncMock(side_effect=[True, RuntimeError("boom")])):
            outcome = asyncio.run(client.fetch_all(["A", "B"]))
        assert outcome == {"A": True, "B": False}


# ═══════════════════════════════════════════════════════════════════════════════
# 5. Command line
# ═══════════════════════════════════════════════════════════════════════════════


def test_parse_args():
    args = parse_args(["--station", "A", "--station", "B", "--at", "2024-01-15T18:00+11:00", "--fetch"])
    assert args.station_ids == ["A", "B"]
    assert args.at.utcoffset().total_seconds() == 11 * 3600
    assert args.fetch is True
    assert args.window == 7


# ═══════════════════════════════════════════════════════════════════════════════
# Script runner
# ═══════════════════════════════════════════════════════════════════════════════


def _run_all() -> int:
    passed = failed = 0
    for name, fn in list(globals().items()):
        if not name.startswith("test_") or not callable(fn):
            continue
        try:
            fn()
            print(f"  PASS: {name}")
            passed += 1
        except Exception:
            print(f"  FAIL: {name}")
            traceback.print_exc()
            failed += 1

    print(f"\n{'='*60}")
    print(f"  RESULTS: {passed} passed, {failed} failed out of {passed + failed} tests")
    print(f"{'='*60}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(_run_all())
