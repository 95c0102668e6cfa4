from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .adapters.weather import OpenWeatherClient, WeatherTransport
from .domain.errors import ErrorKind, WeatherError
from .logging_setup import setup_logging
from .scheduler import build_scheduler
from .settings import AppSettings, load_settings
from .storage.cache import SqliteCacheStore, list_keys
from .storage.db import initialize_database
from .weather.config import WeatherConfig, WeatherConfigError, validate_weather_config
from .weather.fetcher import WeatherFetcher
from .weather.rate_limit import RequestRateLimiter
from .weather.service import CACHE_KEY_PREFIX, WeatherService

LOGGER = logging.getLogger(__name__)

INVALID_COORDINATES_MESSAGE = "Invalid coordinates provided"
UNAVAILABLE_MESSAGE = "Weather data is currently unavailable. Please try again later."
HIGH_DEMAND_MESSAGE = "Weather service temporarily unavailable due to high demand"
NOT_CONFIGURED_MESSAGE = "Weather service is not properly configured"
LOCATION_NOT_FOUND_MESSAGE = "Location not found"
CONFIG_UNAVAILABLE_MESSAGE = "Weather configuration is not available"
WIDGET_DISABLED_MESSAGE = "Weather widget is disabled"

COORDINATE_LABELS = {
    "lat": ("Latitude", 90),
    "lon": ("Longitude", 180),
}

ERROR_RESPONSES: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.LOCATION_NOT_FOUND: (404, LOCATION_NOT_FOUND_MESSAGE),
    ErrorKind.RATE_LIMIT_EXCEEDED: (429, HIGH_DEMAND_MESSAGE),
    ErrorKind.API_KEY_INVALID: (503, NOT_CONFIGURED_MESSAGE),
}


def _error_response(status_code: int, message: str, details: dict[str, Any] | None = None) -> JSONResponse:
    body: dict[str, Any] = {"error": message}
    if details:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


def _parse_coordinate(field: str, raw_value: str | None) -> tuple[float | None, str | None]:
    label, bound = COORDINATE_LABELS[field]
    if raw_value is None or not raw_value.strip():
        return None, f"{label} is required"
    try:
        value = float(raw_value)
    except ValueError:
        return None, f"{label} must be a valid number"
    if not math.isfinite(value):
        return None, f"{label} must be a valid number"
    if not -bound <= value <= bound:
        return None, f"{label} must be between -{bound} and {bound} degrees"
    return value, None


def _client_id(request: Request) -> str:
    if request.client is None:
        return "unknown"
    return request.client.host


def _build_pipeline(
    config: WeatherConfig,
    settings: AppSettings,
    transport: WeatherTransport | None,
    sleep: Callable[[float], None] | None,
) -> WeatherService:
    client = transport if transport is not None else OpenWeatherClient(config)
    fetcher = WeatherFetcher(client, config, sleep=sleep)
    return WeatherService(config, SqliteCacheStore(settings.db_path), fetcher)


def create_app(
    settings: AppSettings | None = None,
    *,
    transport: WeatherTransport | None = None,
    sleep: Callable[[float], None] | None = None,
    start_scheduler: bool = True,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(application: FastAPI):
        app_settings = settings if settings is not None else load_settings()
        setup_logging(app_settings.env.weather_log_level, app_settings.log_file)
        initialize_database(app_settings.db_path)

        config: WeatherConfig | None = None
        service: WeatherService | None = None
        limiter: RequestRateLimiter | None = None
        try:
            config = validate_weather_config(app_settings.weather)
        except WeatherConfigError as exc:
            LOGGER.error("Weather configuration is invalid, weather API disabled: %s", exc)
        else:
            service = _build_pipeline(config, app_settings, transport, sleep)
            limiter = RequestRateLimiter(config.rate_limiting)

        scheduler = None
        if start_scheduler and service is not None and config.widget.enabled:
            scheduler = build_scheduler(service, config, app_settings.db_path)
            scheduler.start()

        application.state.settings = app_settings
        application.state.weather_config = config
        application.state.weather_service = service
        application.state.rate_limiter = limiter
        application.state.scheduler = scheduler
        application.state.started_at_utc = datetime.now(timezone.utc)

        try:
            yield
        finally:
            if scheduler is not None and scheduler.running:
                scheduler.shutdown(wait=False)

    application = FastAPI(title="Weather Widget API", version="0.1.0", lifespan=lifespan)

    @application.get("/api/weather")
    def get_weather(request: Request, lat: str | None = None, lon: str | None = None) -> JSONResponse:
        parsed_lat, lat_error = _parse_coordinate("lat", lat)
        parsed_lon, lon_error = _parse_coordinate("lon", lon)
        if lat_error or lon_error:
            details = {}
            if lat_error:
                details["lat"] = [lat_error]
            if lon_error:
                details["lon"] = [lon_error]
            LOGGER.warning("Rejected weather request with invalid coordinates: %s", details)
            return _error_response(400, INVALID_COORDINATES_MESSAGE, details)

        service: WeatherService | None = request.app.state.weather_service
        if service is None:
            LOGGER.error("Weather request for (%s, %s) refused: configuration is invalid", lat, lon)
            return _error_response(503, UNAVAILABLE_MESSAGE)

        limiter: RequestRateLimiter = request.app.state.rate_limiter
        client_id = _client_id(request)
        if not limiter.allow(client_id):
            return _error_response(429, HIGH_DEMAND_MESSAGE)

        try:
            snapshot = service.get(parsed_lat, parsed_lon)
        except WeatherError as exc:
            status_code, message = ERROR_RESPONSES.get(exc.kind, (503, UNAVAILABLE_MESSAGE))
            LOGGER.error(
                "Weather request failed for (%s, %s) from %s: %s (kind=%s, status=%s)",
                parsed_lat,
                parsed_lon,
                client_id,
                exc.message,
                exc.kind.value,
                status_code,
            )
            return _error_response(status_code, message)
        except Exception:
            LOGGER.exception("Unexpected error while serving weather for (%s, %s)", parsed_lat, parsed_lon)
            return _error_response(503, UNAVAILABLE_MESSAGE)

        return JSONResponse(snapshot.to_payload())

    @application.get("/api/weather/config")
    def get_weather_config(request: Request) -> JSONResponse:
        config: WeatherConfig | None = request.app.state.weather_config
        if config is None:
            return _error_response(503, CONFIG_UNAVAILABLE_MESSAGE)
        if not config.widget.enabled:
            return _error_response(503, WIDGET_DISABLED_MESSAGE)
        return JSONResponse(config.public_view().model_dump(mode="json"))

    @application.get("/health", response_class=JSONResponse)
    async def health(request: Request) -> JSONResponse:
        app_settings: AppSettings = request.app.state.settings
        config: WeatherConfig | None = request.app.state.weather_config
        scheduler = request.app.state.scheduler

        return JSONResponse(
            {
                "status": "ok" if config is not None else "degraded",
                "service": "weather-widget",
                "environment": app_settings.env.weather_env,
                "weather_configured": config is not None,
                "widget_enabled": bool(config and config.widget.enabled),
                "scheduler_running": bool(scheduler and scheduler.running),
                "cached_locations": len(list_keys(app_settings.db_path, prefix=CACHE_KEY_PREFIX)),
                "started_at_utc": request.app.state.started_at_utc.isoformat(),
                "timestamp_utc": datetime.now(timezone.utc).isoformat(),
            }
        )

    return application


app = create_app()
