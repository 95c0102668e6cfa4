"""Shared fixtures for the weather widget tests."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from weatherwidget.adapters.weather import WeatherTransportError
from weatherwidget.storage.cache import SqliteCacheStore
from weatherwidget.weather.config import validate_weather_config


class FakeTransport:
    """Scripted upstream: replays (status, body) pairs or raises queued errors."""

    def __init__(self, responses=None, *, default=None, gate: threading.Event | None = None):
        self._responses = list(responses or [])
        self._default = default
        self._gate = gate
        self._lock = threading.Lock()
        self.calls: list[tuple[float, float]] = []

    def fetch(self, lat: float, lon: float) -> tuple[int, str]:
        with self._lock:
            self.calls.append((lat, lon))
            response = self._responses.pop(0) if self._responses else self._default
        if self._gate is not None:
            self._gate.wait(timeout=5)
        if isinstance(response, BaseException):
            raise response
        if response is None:
            raise AssertionError("FakeTransport ran out of scripted responses")
        status, body = response
        if not isinstance(body, str):
            body = json.dumps(body)
        return status, body


@pytest.fixture
def sample_payload():
    """OpenWeather current conditions body for New York."""
    return {
        "coord": {"lon": -74.006, "lat": 40.7128},
        "weather": [{"id": 800, "main": "Clear", "description": "clear sky", "icon": "01d"}],
        "base": "stations",
        "main": {"temp": 22.5, "feels_like": 22.1, "pressure": 1015, "humidity": 65},
        "visibility": 10000,
        "wind": {"speed": 3.57, "deg": 200},
        "dt": 1727000000,
        "name": "New York",
        "cod": 200,
    }


@pytest.fixture
def raw_config():
    """A complete, valid raw configuration bag."""
    return {
        "api_key": "test-key",
        "api_url": "https://api.openweathermap.org/data/2.5",
        "default_location": {"lat": 40.7128, "lon": -74.0060, "name": "New York, NY"},
        "widget": {
            "enabled": True,
            "auto_refresh_interval": 1800,
            "show_detailed_info": True,
            "temperature_unit": "celsius",
        },
        "cache_ttl": 900,
        "retry_attempts": 3,
        "request_timeout": 10,
        "rate_limiting": {
            "enabled": True,
            "max_requests_per_minute": 60,
            "max_requests_per_hour": 1000,
        },
    }


@pytest.fixture
def weather_config(raw_config):
    return validate_weather_config(raw_config)


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "weather.db"


@pytest.fixture
def cache_store(db_path):
    return SqliteCacheStore(db_path)


@pytest.fixture
def fake_transport():
    """Factory for scripted upstream transports."""
    return FakeTransport


@pytest.fixture
def transport_error():
    """Factory for upstream transport failures."""

    def build(message="connection refused", *, timed_out=False):
        return WeatherTransportError(message, timed_out=timed_out)

    return build


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays instead of waiting."""
    delays: list[float] = []

    def sleep(delay: float) -> None:
        delays.append(delay)

    sleep.delays = delays
    return sleep
