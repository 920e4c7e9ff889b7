from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import aiohttp

import config
from utils.atomic_file import atomic_write_text

logger = logging.getLogger("isithot.bom")


def feed_url(station_id: str) -> str:
    """IDN60901.94768 → .../fwo/IDN60901/IDN60901.94768.json"""
    product = station_id.split(".", 1)[0]
    return config.BOM_FEED_URL_TEMPLATE.format(product=product, id=station_id)


class BOMFeedClient:
    """Download half-hourly observation feeds into the feed directory (no API key)."""

    def __init__(
        self,
        feed_dir: Path | str = config.FEED_DIR,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._feed_dir = Path(feed_dir)
        self._session = session
        self._owns_session = session is None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": config.FEED_USER_AGENT}
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def fetch(self, station_id: str) -> bool:
        """Fetch one station's feed and store it as <feed_dir>/<id>.json. True on success."""
        session = await self._ensure_session()
        url = feed_url(station_id)

        try:
            async with session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=config.FEED_TIMEOUT_SECONDS),
            ) as resp:
                if resp.status != 200:
                    logger.warning("Feed fetch failed for %s: HTTP %d", station_id, resp.status)
                    return False
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as exc:
            logger.warning("Feed fetch error for %s: %s", station_id, exc)
            return False

        if not isinstance(data, dict) or not isinstance(data.get("observations"), dict):
            logger.warning("Feed for %s has no observations block", station_id)
            return False

        atomic_write_text(self._feed_dir / f"{station_id}.json", json.dumps(data))
        n_rows = len(data["observations"].get("data", []) or [])
        logger.info("Fetched %d feed readings for %s", n_rows, station_id)
        return True

    async def fetch_all(self, station_ids: list[str]) -> dict[str, bool]:
        results = await asyncio.gather(
            *(self.fetch(station_id) for station_id in station_ids),
            return_exceptions=True,
        )
        outcome = {}
        for station_id, result in zip(station_ids, results):
            if isinstance(result, Exception):
                logger.error("Feed fetch crashed for %s: %s", station_id, result)
                outcome[station_id] = False
            else:
                outcome[station_id] = result
        return outcome
