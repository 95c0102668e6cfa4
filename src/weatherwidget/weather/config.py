from __future__ import annotations

import logging
import math
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

LOGGER = logging.getLogger(__name__)

FALLBACK_LATITUDE = 40.7128
FALLBACK_LONGITUDE = -74.0060
FALLBACK_LOCATION_NAME = "New York, NY"
MIN_AUTO_REFRESH_INTERVAL_SECONDS = 300
MIN_CACHE_TTL_SECONDS = 60
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10
DEFAULT_MAX_REQUESTS_PER_MINUTE = 60
DEFAULT_MAX_REQUESTS_PER_HOUR = 1000
TEMPERATURE_UNITS = ("celsius", "fahrenheit")


class WeatherConfigError(ValueError):
    """Raised when the weather configuration cannot be used at all."""


class DefaultLocation(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    name: str = Field(min_length=1)


class WidgetConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    enabled: bool = True
    auto_refresh_interval_seconds: int = Field(ge=MIN_AUTO_REFRESH_INTERVAL_SECONDS)
    show_detailed_info: bool = True
    temperature_unit: Literal["celsius", "fahrenheit"] = "celsius"


class RateLimitConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    enabled: bool = True
    max_requests_per_minute: int = Field(default=DEFAULT_MAX_REQUESTS_PER_MINUTE, ge=1)
    max_requests_per_hour: int = Field(default=DEFAULT_MAX_REQUESTS_PER_HOUR, ge=1)


class PublicWidgetConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    auto_refresh_interval: int
    show_detailed_info: bool
    temperature_unit: Literal["celsius", "fahrenheit"]


class PublicWeatherConfig(BaseModel):
    """The part of the configuration the widget client is allowed to see."""

    model_config = ConfigDict(extra="ignore")

    default_location: DefaultLocation
    widget: PublicWidgetConfig


class WeatherConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    api_key: str = Field(min_length=1)
    api_url: str = Field(min_length=1)
    default_location: DefaultLocation
    widget: WidgetConfig
    cache_ttl_seconds: int = Field(ge=MIN_CACHE_TTL_SECONDS)
    retry_attempts: int = Field(ge=1, le=10)
    request_timeout_seconds: int = Field(ge=1, le=60)
    rate_limiting: RateLimitConfig = Field(default_factory=RateLimitConfig)

    def public_view(self) -> PublicWeatherConfig:
        return PublicWeatherConfig(
            default_location=self.default_location,
            widget=PublicWidgetConfig(
                auto_refresh_interval=self.widget.auto_refresh_interval_seconds,
                show_detailed_info=self.widget.show_detailed_info,
                temperature_unit=self.widget.temperature_unit,
            ),
        )


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _as_flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off", ""):
            return False
        return default
    return bool(value)


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = raw.get(key)
    if isinstance(value, Mapping):
        return value
    return {}


def _required_text(raw: Mapping[str, Any], key: str, label: str) -> str:
    value = raw.get(key)
    text = str(value).strip() if value is not None else ""
    if not text:
        raise WeatherConfigError(f"OpenWeather {label} is required but not configured")
    return text


def _bounded_number(
    value: Any,
    *,
    minimum: float | None,
    maximum: float | None,
    fallback: float,
    message: str,
    context_key: str,
) -> float:
    number = _as_number(value)
    out_of_range = number is None or (
        (minimum is not None and number < minimum) or (maximum is not None and number > maximum)
    )
    if out_of_range:
        LOGGER.warning("%s (%s=%r)", message, context_key, value)
        return fallback
    return number


def validate_weather_config(raw: Mapping[str, Any]) -> WeatherConfig:
    """Return a bounded copy of the raw weather configuration bag.

    Missing API credentials raise :class:`WeatherConfigError`. Every other
    invalid or missing value is replaced by its documented default and the
    replacement is logged with the offending value.
    """
    if not isinstance(raw, Mapping):
        raise WeatherConfigError("Weather configuration must be a mapping")

    api_key = _required_text(raw, "api_key", "API key")
    api_url = _required_text(raw, "api_url", "API URL")

    location = _section(raw, "default_location")
    lat = _bounded_number(
        location.get("lat"),
        minimum=-90,
        maximum=90,
        fallback=FALLBACK_LATITUDE,
        message="Invalid default latitude in weather config, using fallback",
        context_key="configured_lat",
    )
    lon = _bounded_number(
        location.get("lon"),
        minimum=-180,
        maximum=180,
        fallback=FALLBACK_LONGITUDE,
        message="Invalid default longitude in weather config, using fallback",
        context_key="configured_lon",
    )
    raw_name = location.get("name")
    name = raw_name.strip() if isinstance(raw_name, str) else ""
    if not name:
        LOGGER.warning(
            "Empty default location name in weather config, using fallback (configured_name=%r)",
            raw_name,
        )
        name = FALLBACK_LOCATION_NAME

    widget = _section(raw, "widget")
    refresh_interval = _bounded_number(
        widget.get("auto_refresh_interval"),
        minimum=MIN_AUTO_REFRESH_INTERVAL_SECONDS,
        maximum=None,
        fallback=MIN_AUTO_REFRESH_INTERVAL_SECONDS,
        message="Invalid auto refresh interval in weather config, using minimum 5 minutes",
        context_key="configured_interval",
    )
    temperature_unit = widget.get("temperature_unit")
    if temperature_unit not in TEMPERATURE_UNITS:
        LOGGER.warning(
            "Invalid temperature unit in weather config, using celsius (configured_unit=%r)",
            temperature_unit,
        )
        temperature_unit = "celsius"

    cache_ttl = _bounded_number(
        raw.get("cache_ttl"),
        minimum=MIN_CACHE_TTL_SECONDS,
        maximum=None,
        fallback=MIN_CACHE_TTL_SECONDS,
        message="Invalid cache TTL in weather config, using minimum 1 minute",
        context_key="configured_ttl",
    )
    retry_attempts = _bounded_number(
        raw.get("retry_attempts"),
        minimum=1,
        maximum=10,
        fallback=DEFAULT_RETRY_ATTEMPTS,
        message="Invalid retry attempts in weather config, using default 3",
        context_key="configured_attempts",
    )
    request_timeout = _bounded_number(
        raw.get("request_timeout"),
        minimum=1,
        maximum=60,
        fallback=DEFAULT_REQUEST_TIMEOUT_SECONDS,
        message="Invalid request timeout in weather config, using default 10 seconds",
        context_key="configured_timeout",
    )

    rate_limiting = _section(raw, "rate_limiting")
    per_minute = _bounded_number(
        rate_limiting.get("max_requests_per_minute"),
        minimum=1,
        maximum=None,
        fallback=DEFAULT_MAX_REQUESTS_PER_MINUTE,
        message="Invalid max requests per minute in weather config, using default 60",
        context_key="configured_max",
    )
    per_hour = _bounded_number(
        rate_limiting.get("max_requests_per_hour"),
        minimum=1,
        maximum=None,
        fallback=DEFAULT_MAX_REQUESTS_PER_HOUR,
        message="Invalid max requests per hour in weather config, using default 1000",
        context_key="configured_max",
    )

    return WeatherConfig(
        api_key=api_key,
        api_url=api_url,
        default_location=DefaultLocation(lat=lat, lon=lon, name=name),
        widget=WidgetConfig(
            enabled=_as_flag(widget.get("enabled"), True),
            auto_refresh_interval_seconds=int(refresh_interval),
            show_detailed_info=_as_flag(widget.get("show_detailed_info"), True),
            temperature_unit=temperature_unit,
        ),
        cache_ttl_seconds=int(cache_ttl),
        retry_attempts=int(retry_attempts),
        request_timeout_seconds=int(request_timeout),
        rate_limiting=RateLimitConfig(
            enabled=_as_flag(rate_limiting.get("enabled"), True),
            max_requests_per_minute=int(per_minute),
            max_requests_per_hour=int(per_hour),
        ),
    )


def is_widget_enabled(raw: Mapping[str, Any]) -> bool:
    try:
        config = validate_weather_config(raw)
    except WeatherConfigError as exc:
        LOGGER.error("Weather widget disabled due to configuration error: %s", exc)
        return False
    return config.widget.enabled
