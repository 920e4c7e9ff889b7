from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StationConfig:
    """One entry of the station list (www/locations.json)."""

    id: str  # BOM station identifier, also the output directory name
    label: str  # display label, e.g. "Sydney"
    timezone: str  # IANA zone used to decide "today"
    record_start: str | None = None  # first year of the historical record, display only
    record_end: str | None = None
    name: str = ""  # long name; falls back to id

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def record_span(self) -> str | None:
        if self.record_start is None or self.record_end is None:
            return None
        return f"{self.record_start}–{self.record_end}"
