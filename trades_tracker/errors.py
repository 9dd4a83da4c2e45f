"""Exception types raised by the client layer."""
from __future__ import annotations


class TrackerError(Exception):
    """Base class for tracker errors."""


class MalformedResponseError(TrackerError):
    """Response body could not be decoded into the exchange envelope."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class UnknownPositionSideError(TrackerError, ValueError):
    """A wire value has no entry in the endpoint's position-side table."""

    def __init__(self, table: str, value: object) -> None:
        super().__init__(f"Unknown position side {value!r} for {table}")
        self.table = table
        self.value = value
