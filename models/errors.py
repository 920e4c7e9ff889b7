from __future__ import annotations


class IsItHotError(Exception):
    """Base class for every failure the batch engine raises on purpose."""


class InsufficientData(IsItHotError):
    """Historical window or a variable's sample is too small to summarise."""

    def __init__(self, message: str, variable: str | None = None) -> None:
        super().__init__(message)
        self.variable = variable


class MissingCurrentObservation(IsItHotError):
    """Today's max/min (and so Tavg) is unavailable."""


class MalformedStore(IsItHotError):
    """A historical, station or heatmap store does not have the expected shape."""

    def __init__(self, message: str, path: object | None = None) -> None:
        super().__init__(f"{path}: {message}" if path is not None else message)
        self.path = path


class DateAlignmentError(IsItHotError):
    """The station-local calendar date cannot be determined unambiguously."""
