from __future__ import annotations

import logging

import numpy as np

import config
from models.category import Category
from models.climatology import PercentileTable
from models.errors import MissingCurrentObservation
from models.observation import is_missing

logger = logging.getLogger("isithot.classifier")

# Sentinels plus every quantile except the median: one more break than bins.
_N_BREAKS = len(config.QUANTILE_LABELS) - 1 + 2
if _N_BREAKS - 1 != len(Category):
    raise RuntimeError(
        f"{_N_BREAKS} category breaks make {_N_BREAKS - 1} bins but Category has {len(Category)} members"
    )


def bin_index(value: float, breaks: list[float]) -> int:
    """
    Index of the half-open bin [breaks[i], breaks[i+1]) holding *value*.

    Values on a break belong to the bin starting there. The outermost bins
    absorb anything beyond the sentinels, so every real value gets a bin.
    """
    idx = int(np.searchsorted(np.asarray(breaks, dtype=np.float64), value, side="right")) - 1
    return min(max(idx, 0), len(breaks) - 2)


def classify(tavg: float | None, table: PercentileTable) -> Category:
    """Category of today's Tavg against the windowed Tavg cutpoints."""
    if is_missing(tavg):
        raise MissingCurrentObservation("no current Tavg to classify")
    breaks = table.breaks("Tavg")
    category = Category.from_index(bin_index(tavg, breaks))
    logger.debug(
        "Tavg %.1f vs breaks %s → %s",
        tavg, " ~ ".join(f"{b:.1f}" for b in breaks), category.code,
    )
    return category
