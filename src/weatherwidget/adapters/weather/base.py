from __future__ import annotations

from typing import Protocol


class WeatherTransportError(RuntimeError):
    """Raised when the upstream weather API cannot be reached at all."""

    retryable = True

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class WeatherTransport(Protocol):
    def fetch(self, lat: float, lon: float) -> tuple[int, str]:
        """Issue one upstream request and return its HTTP status and body text."""
