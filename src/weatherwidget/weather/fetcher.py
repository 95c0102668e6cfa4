from __future__ import annotations

import json
import logging
import time
from typing import Callable

from ..adapters.weather import WeatherTransport, WeatherTransportError
from ..domain.errors import ErrorKind, WeatherError
from ..domain.models import WeatherSnapshot
from ..retry import RetryPolicy, call_with_retry
from .config import WeatherConfig
from .normalize import normalize_weather_payload

LOGGER = logging.getLogger(__name__)

BODY_LOG_LIMIT = 500
EXHAUSTED_MESSAGE = "Weather service temporarily unavailable. Please try again later."

TERMINAL_STATUSES = {
    401: (ErrorKind.API_KEY_INVALID, "Weather service configuration error"),
    404: (ErrorKind.LOCATION_NOT_FOUND, "Location not found"),
    429: (
        ErrorKind.RATE_LIMIT_EXCEEDED,
        "Weather service temporarily unavailable due to rate limiting",
    ),
}


def validate_coordinates(lat: float, lon: float) -> None:
    if not -90 <= lat <= 90:
        raise WeatherError(
            ErrorKind.INVALID_COORDINATES,
            "Invalid latitude. Must be between -90 and 90.",
            retryable=False,
            details={"lat": lat},
        )
    if not -180 <= lon <= 180:
        raise WeatherError(
            ErrorKind.INVALID_COORDINATES,
            "Invalid longitude. Must be between -180 and 180.",
            retryable=False,
            details={"lon": lon},
        )


def server_retry_policy(config: WeatherConfig) -> RetryPolicy:
    return RetryPolicy(max_attempts=config.retry_attempts, base_delay=1.0, multiplier=2.0, jitter=1.0)


def _elapsed_ms(started: float) -> float:
    return round((time.monotonic() - started) * 1000, 2)


def classify_status(status: int, body: str) -> WeatherError:
    """Classify a non-2xx upstream response. 401, 404 and 429 are final."""
    details = {"status": status, "response_body": body[:BODY_LOG_LIMIT]}
    terminal = TERMINAL_STATUSES.get(status)
    if terminal is not None:
        kind, message = terminal
        return WeatherError(kind, message, retryable=False, details=details)
    return WeatherError(
        ErrorKind.SERVICE_UNAVAILABLE,
        f"HTTP {status}",
        retryable=True,
        details=details,
    )


class WeatherFetcher:
    """Drives the upstream client through the server retry policy."""

    def __init__(
        self,
        client: WeatherTransport,
        config: WeatherConfig,
        *,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._client = client
        self._policy = server_retry_policy(config)
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def fetch_with_retry(self, lat: float, lon: float) -> WeatherSnapshot:
        validate_coordinates(lat, lon)
        started = time.monotonic()
        LOGGER.info(
            "Starting weather API request for (%s, %s), max_attempts=%s",
            lat,
            lon,
            self._policy.max_attempts,
        )

        def on_retry(attempt: int, delay: float, error: BaseException) -> None:
            LOGGER.info(
                "Retrying weather API request for (%s, %s) in %.3fs (next_attempt=%s, error=%s)",
                lat,
                lon,
                delay,
                attempt + 1,
                error,
            )

        try:
            return call_with_retry(
                lambda attempt: self._attempt(lat, lon, attempt),
                self._policy,
                sleep=self._sleep or time.sleep,
                on_retry=on_retry,
            )
        except WeatherError as exc:
            if not exc.retryable:
                LOGGER.error(
                    "Weather API non-retryable error for (%s, %s): %s (kind=%s, duration_ms=%s)",
                    lat,
                    lon,
                    exc.message,
                    exc.kind.value,
                    _elapsed_ms(started),
                )
                raise
            LOGGER.error(
                "Weather API requests exhausted for (%s, %s) after %s attempts "
                "(total_duration_ms=%s, last_error=%s, last_kind=%s)",
                lat,
                lon,
                self._policy.max_attempts,
                _elapsed_ms(started),
                exc.message,
                exc.kind.value,
            )
            raise WeatherError(
                ErrorKind.SERVICE_UNAVAILABLE,
                EXHAUSTED_MESSAGE,
                retryable=True,
                details={
                    "attempts": self._policy.max_attempts,
                    "last_error": exc.message,
                    "last_kind": exc.kind.value,
                },
            ) from exc

    def _attempt(self, lat: float, lon: float, attempt: int) -> WeatherSnapshot:
        started = time.monotonic()
        LOGGER.debug(
            "Weather API attempt %s/%s for (%s, %s)", attempt, self._policy.max_attempts, lat, lon
        )
        try:
            status, body = self._client.fetch(lat, lon)
        except WeatherTransportError as exc:
            kind = ErrorKind.CONNECTION_TIMEOUT if exc.timed_out else ErrorKind.NETWORK_ERROR
            LOGGER.warning(
                "Weather API request failed for (%s, %s) on attempt %s/%s: %s (duration_ms=%s)",
                lat,
                lon,
                attempt,
                self._policy.max_attempts,
                exc,
                _elapsed_ms(started),
            )
            raise WeatherError(kind, str(exc), retryable=True, details={"attempt": attempt}) from exc

        if 200 <= status < 300:
            LOGGER.info(
                "Weather API request successful for (%s, %s) on attempt %s "
                "(duration_ms=%s, response_size=%s)",
                lat,
                lon,
                attempt,
                _elapsed_ms(started),
                len(body),
            )
            return normalize_weather_payload(self._decode(body))

        LOGGER.warning(
            "Weather API returned status %s for (%s, %s) on attempt %s/%s "
            "(duration_ms=%s, body=%r)",
            status,
            lat,
            lon,
            attempt,
            self._policy.max_attempts,
            _elapsed_ms(started),
            body[:BODY_LOG_LIMIT],
        )
        raise classify_status(status, body)

    @staticmethod
    def _decode(body: str) -> object:
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as exc:
            LOGGER.error("Weather API returned a body that is not JSON: %r", body[:BODY_LOG_LIMIT])
            raise WeatherError(
                ErrorKind.INVALID_RESPONSE,
                "Invalid response format from weather API",
                retryable=False,
                details={"response_body": body[:BODY_LOG_LIMIT]},
            ) from exc
        if not isinstance(payload, dict):
            LOGGER.error("Weather API returned a non-object JSON body: %r", body[:BODY_LOG_LIMIT])
            raise WeatherError(
                ErrorKind.INVALID_RESPONSE,
                "Invalid response format from weather API",
                retryable=False,
                details={"response_body": body[:BODY_LOG_LIMIT]},
            )
        return payload
