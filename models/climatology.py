from __future__ import annotations

from dataclasses import dataclass, field

import config


@dataclass(frozen=True)
class PercentileTable:
    """Historical cutpoints: quantile label ("5%") → variable ("Tavg") → value."""

    cutpoints: dict[str, dict[str, float]]
    sample_size: int = 0
    labels: list[str] = field(default_factory=lambda: list(config.QUANTILE_LABELS))

    def get(self, label: str, variable: str) -> float:
        return self.cutpoints[label][variable]

    def column(self, variable: str) -> list[float]:
        """Cutpoints for one variable in quantile order."""
        return [self.cutpoints[label][variable] for label in self.labels]

    def breaks(self, variable: str = "Tavg") -> list[float]:
        """Category breaks: sentinels around every cutpoint except the median."""
        inner = [
            self.cutpoints[label][variable]
            for label in self.labels
            if label != config.EXCLUDED_BREAK
        ]
        return [config.CATEGORY_FLOOR, *inner, config.CATEGORY_CEILING]

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {label: dict(self.cutpoints[label]) for label in self.labels}
