#!/usr/bin/env python3
"""
Is it hot right now? Daily climatology batch.

For every configured station: compare today's average of max and min against
the local climatology for this time of year, publish the answer, and record
today's percentile rank in this year's calendar heatmap.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

import config
from services.station_processor import Settings, StationProcessor
from utils.bom_client import BOMFeedClient
from utils.observation_loader import load_stations

# ── Logging setup ─────────────────────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("isithot")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Update isithot stats and heatmaps for every station.")
    ap.add_argument("--stations-file", default=str(config.STATIONS_FILE),
                    help="Station list JSON (default: %(default)s)")
    ap.add_argument("--station", action="append", dest="station_ids", metavar="ID",
                    help="Only process this station id (repeatable)")
    ap.add_argument("--at", type=datetime.fromisoformat, default=None,
                    help="Run as of this ISO timestamp with offset, e.g. 2024-01-15T18:00+11:00")
    ap.add_argument("--fetch", action="store_true",
                    help="Download half-hourly feeds before processing")
    ap.add_argument("--window", type=int, default=config.WINDOW_DAYS,
                    help="Half-width of the climatology window in days (default: %(default)s)")
    return ap.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    stations = load_stations(args.stations_file)
    if args.station_ids:
        wanted = set(args.station_ids)
        stations = [s for s in stations if s.id in wanted]
    if not stations:
        logger.error("No stations to process")
        return 1

    settings = Settings(window_days=args.window)

    if args.fetch:
        client = BOMFeedClient(settings.feed_dir)
        try:
            fetched = await client.fetch_all([s.id for s in stations])
        finally:
            await client.close()
        logger.info("Fetched feeds for %d/%d stations", sum(fetched.values()), len(fetched))

    run_time = args.at or datetime.now(timezone.utc)
    processor = StationProcessor(settings)
    summary = await processor.run_all(stations, run_time)
    return 0 if not summary.failed else 2


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nShutdown requested via Ctrl+C")
        sys.exit(130)


if __name__ == "__main__":
    cli()
