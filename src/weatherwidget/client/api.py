"""Async client for the widget's local HTTP API."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from ..domain.errors import ErrorKind, WeatherError, create_weather_error, parse_http_error
from ..domain.models import Coordinates, WeatherSnapshot
from ..weather.config import PublicWeatherConfig

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
REQUIRED_FIELDS = ("location", "temperature", "condition", "description", "icon")


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class LocalWeatherApi:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> LocalWeatherApi:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_weather(self, coordinates: Coordinates) -> WeatherSnapshot:
        payload = await self._get_json("/api/weather", params=coordinates.as_query())
        missing = [field for field in REQUIRED_FIELDS if field not in payload]
        if missing:
            LOGGER.error("Weather response is missing fields %s: %r", missing, payload)
            raise create_weather_error(
                ErrorKind.DATA_PARSING_ERROR,
                {"missing_fields": missing, "received_data": payload},
            )
        try:
            return WeatherSnapshot.model_validate(payload)
        except ValidationError as exc:
            LOGGER.error("Weather response failed validation: %s", exc)
            raise create_weather_error(
                ErrorKind.DATA_PARSING_ERROR,
                {"received_data": payload, "reason": str(exc)},
            ) from exc

    async def get_config(self) -> PublicWeatherConfig:
        payload = await self._get_json("/api/weather/config")
        try:
            return PublicWeatherConfig.model_validate(payload)
        except ValidationError as exc:
            LOGGER.error("Weather config response failed validation: %s", exc)
            raise create_weather_error(
                ErrorKind.INVALID_RESPONSE,
                {"received_data": payload, "reason": str(exc)},
            ) from exc

    async def _get_json(self, path: str, *, params: dict[str, str] | None = None) -> dict[str, Any]:
        started = time.monotonic()
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as exc:
            LOGGER.warning("GET %s timed out after %.0fms", path, (time.monotonic() - started) * 1000)
            raise create_weather_error(ErrorKind.CONNECTION_TIMEOUT, {"path": path}, str(exc)) from exc
        except httpx.TransportError as exc:
            LOGGER.warning("GET %s failed: %s", path, exc)
            raise create_weather_error(ErrorKind.NETWORK_ERROR, {"path": path}, str(exc)) from exc

        duration_ms = round((time.monotonic() - started) * 1000, 2)
        if response.is_error:
            body = _error_body(response)
            LOGGER.warning(
                "GET %s returned %s in %sms (body=%r)", path, response.status_code, duration_ms, body
            )
            raise parse_http_error(response.status_code, body)

        try:
            payload = response.json()
        except ValueError as exc:
            raise create_weather_error(
                ErrorKind.INVALID_RESPONSE, {"received_data": response.text}
            ) from exc
        if not isinstance(payload, dict):
            raise create_weather_error(ErrorKind.INVALID_RESPONSE, {"received_data": payload})

        LOGGER.debug("GET %s succeeded in %sms", path, duration_ms)
        return payload
