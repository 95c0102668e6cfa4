from __future__ import annotations

import logging
import socket
from http.client import HTTPException
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from ...weather.config import WeatherConfig
from .base import WeatherTransportError

LOGGER = logging.getLogger(__name__)

USER_AGENT = "weather-widget/0.1"


def _read_text(stream) -> str:
    if stream is None:
        return ""
    return stream.read().decode("utf-8", errors="replace")


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (TimeoutError, socket.timeout)):
        return True
    reason = getattr(exc, "reason", None)
    return isinstance(reason, (TimeoutError, socket.timeout))


class OpenWeatherClient:
    """Single-shot client for the OpenWeather current conditions endpoint."""

    def __init__(self, config: WeatherConfig, *, units: str = "metric") -> None:
        self._api_url = config.api_url.rstrip("/")
        self._api_key = config.api_key
        self._timeout = config.request_timeout_seconds
        self._units = units

    def build_url(self, lat: float, lon: float) -> str:
        params = {
            "lat": lat,
            "lon": lon,
            "appid": self._api_key,
            "units": self._units,
        }
        return f"{self._api_url}/weather?{urlencode(params)}"

    def fetch(self, lat: float, lon: float) -> tuple[int, str]:
        request = Request(
            self.build_url(lat, lon),
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
        )
        LOGGER.debug("Requesting %s/weather for (%s, %s)", self._api_url, lat, lon)
        try:
            with urlopen(request, timeout=self._timeout) as response:
                return response.status, _read_text(response)
        except HTTPError as exc:
            with exc:
                return exc.code, _read_text(exc.fp)
        except (URLError, TimeoutError, OSError, HTTPException) as exc:
            timed_out = _is_timeout(exc)
            raise WeatherTransportError(
                f"Failed to reach weather API at {self._api_url}: {exc}",
                timed_out=timed_out,
            ) from exc
