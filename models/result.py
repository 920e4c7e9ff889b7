from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from models.category import Category
from models.climatology import PercentileTable
from models.heatmap import HeatmapRow
from models.station import StationConfig


@dataclass
class StationResult:
    """Everything one station's run produces, before anything is written to disk."""

    station: StationConfig
    run_date: date
    category: Category | None
    maximum: float | None
    minimum: float | None
    current_average: float | None
    average_percent: int | None
    percentiles: PercentileTable
    heatmap_rows: list[HeatmapRow] = field(default_factory=list)
    heatmap_grid: dict[str, Any] = field(default_factory=dict)  # grid_to_json() form
    plot_context: dict[str, Any] = field(default_factory=dict)
    heatmap_changed: bool = False

    @property
    def answer(self) -> str | None:
        return self.category.answer if self.category is not None else None

    @property
    def comment(self) -> str | None:
        return self.category.comment if self.category is not None else None

    @property
    def has_current_observation(self) -> bool:
        return self.current_average is not None

    def stats(self) -> dict[str, Any]:
        """The public stats record; ``None`` marks anything unavailable."""
        return {
            "isit_answer": self.answer,
            "isit_comment": self.comment,
            "isit_maximum": self.maximum,
            "isit_minimum": self.minimum,
            "isit_current": self.current_average,
            "isit_average": self.average_percent,
            "isit_name": self.station.display_name,
            "isit_label": self.station.label,
            "isit_span": self.station.record_span,
        }
