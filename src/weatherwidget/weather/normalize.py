from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from ..domain.errors import ErrorKind, WeatherError
from ..domain.models import Coordinates, WeatherSnapshot

LOGGER = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "main.temp",
    "weather.0.main",
    "weather.0.description",
    "weather.0.icon",
    "main.humidity",
)
UNKNOWN_LOCATION = "Unknown Location"
MALFORMED_DATA_MESSAGE = "Invalid weather data received from service"


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half away from zero, so 22.5 becomes 23 and -2.5 becomes -3."""
    exponent = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def _lookup(data: Any, path: str) -> Any:
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return None
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return None
    return number if math.isfinite(number) else None


def _optional_number(data: Any, path: str) -> float:
    number = _number(_lookup(data, path))
    return 0.0 if number is None else number


def _malformed(payload: Any, reason: str, field: str) -> WeatherError:
    LOGGER.error("Failed to format weather data: %s (payload=%r)", reason, payload)
    return WeatherError(
        ErrorKind.DATA_PARSING_ERROR,
        MALFORMED_DATA_MESSAGE,
        retryable=False,
        details={"field": field, "reason": reason},
    )


def normalize_weather_payload(payload: Any, *, now: datetime | None = None) -> WeatherSnapshot:
    """Map an OpenWeather current-conditions body onto a :class:`WeatherSnapshot`.

    Required fields must be present and non-null; optional ones fall back to
    documented defaults. A missing required field is never defaulted.
    """
    if not isinstance(payload, dict):
        raise _malformed(payload, "payload is not a JSON object", "$")

    for field in REQUIRED_FIELDS:
        if _lookup(payload, field) is None:
            raise _malformed(payload, f"Missing required field: {field}", field)

    temperature = _number(_lookup(payload, "main.temp"))
    if temperature is None:
        raise _malformed(payload, "main.temp is not numeric", "main.temp")
    humidity = _number(_lookup(payload, "main.humidity"))
    if humidity is None:
        raise _malformed(payload, "main.humidity is not numeric", "main.humidity")

    name = payload.get("name")
    location = name.strip() if isinstance(name, str) and name.strip() else UNKNOWN_LOCATION

    return WeatherSnapshot(
        location=location,
        temperature_c=int(round_half_up(temperature)),
        condition=str(_lookup(payload, "weather.0.main")),
        description=str(_lookup(payload, "weather.0.description")),
        icon=str(_lookup(payload, "weather.0.icon")),
        humidity_percent=int(round_half_up(humidity)),
        wind_speed_ms=round_half_up(_optional_number(payload, "wind.speed"), 1),
        last_updated=now or datetime.now(timezone.utc),
        coordinates=Coordinates(
            lat=_optional_number(payload, "coord.lat"),
            lon=_optional_number(payload, "coord.lon"),
        ),
    )
