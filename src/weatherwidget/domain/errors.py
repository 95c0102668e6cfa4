"""Error taxonomy shared by the weather service and the widget client.

Every failure in the pipeline is a :class:`WeatherError` whose ``kind`` is a
member of the closed :class:`ErrorKind` enum. Whether a failure may be
retried is carried by the ``retryable`` attribute, so retry loops never
inspect message text.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class ErrorKind(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    CONNECTION_TIMEOUT = "CONNECTION_TIMEOUT"

    API_KEY_INVALID = "API_KEY_INVALID"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    LOCATION_NOT_FOUND = "LOCATION_NOT_FOUND"
    INVALID_COORDINATES = "INVALID_COORDINATES"
    GEOLOCATION_DENIED = "GEOLOCATION_DENIED"
    GEOLOCATION_UNAVAILABLE = "GEOLOCATION_UNAVAILABLE"
    GEOLOCATION_TIMEOUT = "GEOLOCATION_TIMEOUT"
    GEOLOCATION_UNSUPPORTED = "GEOLOCATION_UNSUPPORTED"

    INVALID_RESPONSE = "INVALID_RESPONSE"
    DATA_PARSING_ERROR = "DATA_PARSING_ERROR"

    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True, slots=True)
class ErrorTemplate:
    message: str
    user_message: str
    retryable: bool


ERROR_MESSAGES: Mapping[ErrorKind, ErrorTemplate] = MappingProxyType(
    {
        ErrorKind.NETWORK_ERROR: ErrorTemplate(
            "Network connection failed",
            "Unable to connect to weather service. Please check your internet connection.",
            True,
        ),
        ErrorKind.CONNECTION_TIMEOUT: ErrorTemplate(
            "Request timed out",
            "Weather service is taking too long to respond. Please try again.",
            True,
        ),
        ErrorKind.API_KEY_INVALID: ErrorTemplate(
            "Invalid API key",
            "Weather service is not properly configured. Please contact support.",
            False,
        ),
        ErrorKind.RATE_LIMIT_EXCEEDED: ErrorTemplate(
            "API rate limit exceeded",
            "Weather service is temporarily unavailable due to high demand. "
            "Please try again in a few minutes.",
            True,
        ),
        ErrorKind.SERVICE_UNAVAILABLE: ErrorTemplate(
            "Weather service unavailable",
            "Weather service is currently unavailable. Please try again later.",
            True,
        ),
        ErrorKind.LOCATION_NOT_FOUND: ErrorTemplate(
            "Location not found",
            "Unable to find weather data for this location.",
            False,
        ),
        ErrorKind.INVALID_COORDINATES: ErrorTemplate(
            "Invalid coordinates provided",
            "Invalid location coordinates. Using default location instead.",
            False,
        ),
        ErrorKind.GEOLOCATION_DENIED: ErrorTemplate(
            "Geolocation permission denied",
            "Location access denied. Showing weather for default location.",
            False,
        ),
        ErrorKind.GEOLOCATION_UNAVAILABLE: ErrorTemplate(
            "Geolocation unavailable",
            "Unable to determine your location. Showing weather for default location.",
            True,
        ),
        ErrorKind.GEOLOCATION_TIMEOUT: ErrorTemplate(
            "Geolocation request timed out",
            "Location request timed out. Showing weather for default location.",
            True,
        ),
        ErrorKind.GEOLOCATION_UNSUPPORTED: ErrorTemplate(
            "Geolocation not supported",
            "Location services are not supported by your browser. "
            "Showing weather for default location.",
            False,
        ),
        ErrorKind.INVALID_RESPONSE: ErrorTemplate(
            "Invalid response from weather service",
            "Received invalid data from weather service. Please try again.",
            True,
        ),
        ErrorKind.DATA_PARSING_ERROR: ErrorTemplate(
            "Failed to parse weather data",
            "Unable to process weather data. Please try again.",
            True,
        ),
        ErrorKind.UNKNOWN_ERROR: ErrorTemplate(
            "Unknown error occurred",
            "An unexpected error occurred. Please try again.",
            True,
        ),
    }
)

GEOLOCATION_PERMISSION_DENIED = 1
GEOLOCATION_POSITION_UNAVAILABLE = 2
GEOLOCATION_TIMEOUT = 3


class WeatherError(RuntimeError):
    """A classified weather pipeline failure.

    ``retryable`` defaults to the catalogue value for ``kind``; the server
    overrides it where its policy differs (an upstream 429 or a malformed
    upstream payload is final on the server, retryable in the client).
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str | None = None,
        *,
        retryable: bool | None = None,
        details: Mapping[str, Any] | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        template = ERROR_MESSAGES[kind]
        self._kind = kind
        self._message = message or template.message
        self._user_message = template.user_message
        self._retryable = template.retryable if retryable is None else retryable
        self._details = MappingProxyType(dict(details or {}))
        self._timestamp = timestamp or datetime.now(timezone.utc)
        super().__init__(self._message)

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def message(self) -> str:
        return self._message

    @property
    def user_message(self) -> str:
        return self._user_message

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def details(self) -> Mapping[str, Any]:
        return self._details

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self._kind.value,
            "message": self._message,
            "userMessage": self._user_message,
            "retryable": self._retryable,
            "details": dict(self._details),
            "timestamp": self._timestamp.isoformat(),
        }

    def __repr__(self) -> str:
        return f"WeatherError({self._kind.value}, {self._message!r}, retryable={self._retryable})"


def create_weather_error(
    kind: ErrorKind,
    details: Mapping[str, Any] | None = None,
    custom_message: str | None = None,
) -> WeatherError:
    return WeatherError(kind, custom_message, details=details)


def parse_http_error(status: int, body: Any = None) -> WeatherError:
    details = {"status": status, "response_body": body}
    if status == 400:
        return create_weather_error(ErrorKind.INVALID_COORDINATES, details)
    if status == 401:
        return create_weather_error(ErrorKind.API_KEY_INVALID, details)
    if status == 404:
        return create_weather_error(ErrorKind.LOCATION_NOT_FOUND, details)
    if status == 429:
        return create_weather_error(ErrorKind.RATE_LIMIT_EXCEEDED, details)
    if status >= 500:
        return create_weather_error(ErrorKind.SERVICE_UNAVAILABLE, details)
    return create_weather_error(ErrorKind.UNKNOWN_ERROR, details)


def parse_geolocation_error(code: int, message: str = "") -> WeatherError:
    details = {"code": code, "message": message}
    if code == GEOLOCATION_PERMISSION_DENIED:
        return create_weather_error(ErrorKind.GEOLOCATION_DENIED, details)
    if code == GEOLOCATION_POSITION_UNAVAILABLE:
        return create_weather_error(ErrorKind.GEOLOCATION_UNAVAILABLE, details)
    if code == GEOLOCATION_TIMEOUT:
        return create_weather_error(ErrorKind.GEOLOCATION_TIMEOUT, details)
    return create_weather_error(ErrorKind.UNKNOWN_ERROR, details)


def parse_network_error(error: BaseException) -> WeatherError:
    details = {"name": type(error).__name__, "message": str(error)}
    text = str(error).lower()
    if isinstance(error, TimeoutError) or "timeout" in text or "timed out" in text:
        return create_weather_error(ErrorKind.CONNECTION_TIMEOUT, details)
    if isinstance(error, ConnectionError) or "network" in text or "fetch" in text:
        return create_weather_error(ErrorKind.NETWORK_ERROR, details)
    return create_weather_error(ErrorKind.UNKNOWN_ERROR, details)
