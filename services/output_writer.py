"""
Per-station JSON documents for the website and the external renderer.

    <OUTPUT_DIR>/<id>/stats.json          answer, comment, temps, percent
    <OUTPUT_DIR>/<id>/heatmap.json        31 × 12 percentile grid
    <OUTPUT_DIR>/<id>/plot_context.json   window series, cutpoints, trend

Documents are staged as hidden temp files next to their targets and only
renamed into place once every one of them has been written.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from models.result import StationResult
from utils.atomic_file import discard_staged, stage_text

logger = logging.getLogger("isithot.output")


def _render(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


@dataclass
class StagedOutputs:
    """Temp files waiting to be renamed over their targets."""

    moves: list[tuple[Path, Path]] = field(default_factory=list)  # (staged, target)

    @property
    def targets(self) -> list[Path]:
        return [target for _, target in self.moves]

    def commit(self) -> list[Path]:
        """Rename every staged file into place. Returns the targets."""
        try:
            for staged, target in self.moves:
                os.replace(staged, target)
        finally:
            self.discard()
        logger.debug("Wrote %s", ", ".join(p.name for p in self.targets))
        return self.targets

    def discard(self) -> None:
        for staged, _ in self.moves:
            discard_staged(staged)


def stage_station_outputs(result: StationResult, output_dir: Path | str) -> StagedOutputs:
    """
    Stage every JSON document for one station without touching the live files.

    Without a current observation an existing stats.json is left alone so the
    site keeps showing the last good answer; it is only created fresh (with
    null markers) when there is nothing to fall back to.
    """
    station_dir = Path(output_dir) / result.station.id
    station_dir.mkdir(parents=True, exist_ok=True)

    documents: list[tuple[Path, dict[str, Any]]] = []
    stats_path = station_dir / "stats.json"
    if result.has_current_observation or not stats_path.exists():
        documents.append((stats_path, result.stats()))
    else:
        logger.warning(
            "%s (%s): no current observation, keeping previous stats.json",
            result.station.id, result.station.label,
        )
    documents.append((station_dir / "heatmap.json", {"station": result.station.id, **result.heatmap_grid}))
    documents.append((station_dir / "plot_context.json", result.plot_context))

    staged = StagedOutputs()
    try:
        for target, payload in documents:
            staged.moves.append((stage_text(target, _render(payload)), target))
    except BaseException:
        staged.discard()
        raise
    return staged
