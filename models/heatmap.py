from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class HeatmapRow:
    """Today's percentile rank for one calendar date; ``None`` when unknown."""

    date: date
    percentile: int | None

    def with_percentile(self, percentile: int | None) -> HeatmapRow:
        return HeatmapRow(date=self.date, percentile=percentile)
