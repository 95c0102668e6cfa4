from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from ..domain.errors import ErrorKind, WeatherError, create_weather_error, parse_geolocation_error
from ..domain.models import Coordinates
from ..weather.config import DefaultLocation

LOGGER = logging.getLogger(__name__)

DEFAULT_GEOLOCATION_TIMEOUT_SECONDS = 10.0

GEOLOCATION_MESSAGES = {
    1: "Location access denied by user",
    2: "Location information unavailable",
    3: "Location request timed out",
}


class GeolocationError(Exception):
    """Position lookup failure, using the browser geolocation error codes."""

    def __init__(self, code: int, message: str = "") -> None:
        self.code = code
        self.message = message or GEOLOCATION_MESSAGES.get(
            code, "An unknown error occurred while retrieving location"
        )
        super().__init__(self.message)


class PositionSource(Protocol):
    async def current_position(self) -> Coordinates:
        """Return the device position or raise :class:`GeolocationError`."""


@dataclass(frozen=True, slots=True)
class LocationResolution:
    coordinates: Coordinates
    error: WeatherError | None = None
    used_default: bool = False


async def resolve_location(
    source: PositionSource | None,
    default: DefaultLocation,
    *,
    timeout: float = DEFAULT_GEOLOCATION_TIMEOUT_SECONDS,
) -> LocationResolution:
    """Return the device position, or the configured default when it is unavailable."""
    fallback = Coordinates(lat=default.lat, lon=default.lon)

    if source is None:
        error = create_weather_error(ErrorKind.GEOLOCATION_UNSUPPORTED)
        LOGGER.info("Geolocation unsupported, using default location '%s'", default.name)
        return LocationResolution(coordinates=fallback, error=error, used_default=True)

    try:
        coordinates = await asyncio.wait_for(source.current_position(), timeout=timeout)
    except asyncio.TimeoutError:
        error = create_weather_error(ErrorKind.GEOLOCATION_TIMEOUT, {"timeout": timeout})
    except GeolocationError as exc:
        error = parse_geolocation_error(exc.code, exc.message)
    else:
        return LocationResolution(coordinates=coordinates)

    LOGGER.warning(
        "Geolocation failed (%s), using default location '%s'",
        error.kind.value,
        default.name,
    )
    return LocationResolution(coordinates=fallback, error=error, used_default=True)
