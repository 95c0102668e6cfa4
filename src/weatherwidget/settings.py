from __future__ import annotations

import copy
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[2]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    weather_env: Literal["dev", "test", "prod"] = "dev"
    weather_config_path: Path = Path("config/weather.yaml")
    weather_db_path: Path = Path("data/weather.db")
    weather_log_level: str = "INFO"
    weather_log_file: Path | None = None

    openweather_api_key: str | None = None
    openweather_api_url: str | None = None
    weather_default_lat: str | None = None
    weather_default_lon: str | None = None
    weather_default_location: str | None = None

    @field_validator("weather_log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator(
        "openweather_api_key",
        "openweather_api_url",
        "weather_default_lat",
        "weather_default_lon",
        "weather_default_location",
    )
    @classmethod
    def blank_as_unset(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip()
        return text or None


class AppSettings(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    env: EnvSettings
    weather: dict[str, Any]
    project_root: Path
    config_path: Path
    db_path: Path
    log_file: Path | None = None


def _resolve_project_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return (PROJECT_ROOT / path).resolve()


def _load_yaml_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Weather config file not found: {path}")

    raw_config = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError("Weather config must be a YAML mapping/object at the top level")
    return raw_config


def merge_env_overrides(raw: dict[str, Any], env: EnvSettings) -> dict[str, Any]:
    """Layer the OPENWEATHER_* / WEATHER_DEFAULT_* variables over the YAML bag.

    Values stay raw; bounds and fallbacks are applied by the config validator.
    """
    merged = copy.deepcopy(raw)
    if env.openweather_api_key is not None:
        merged["api_key"] = env.openweather_api_key
    if env.openweather_api_url is not None:
        merged["api_url"] = env.openweather_api_url

    location_overrides = {
        "lat": env.weather_default_lat,
        "lon": env.weather_default_lon,
        "name": env.weather_default_location,
    }
    if any(value is not None for value in location_overrides.values()):
        location = merged.get("default_location")
        location = dict(location) if isinstance(location, dict) else {}
        for key, value in location_overrides.items():
            if value is not None:
                location[key] = value
        merged["default_location"] = location
    return merged


def build_settings(env: EnvSettings) -> AppSettings:
    config_path = _resolve_project_path(env.weather_config_path)
    db_path = _resolve_project_path(env.weather_db_path)
    log_file = _resolve_project_path(env.weather_log_file) if env.weather_log_file else None
    weather = merge_env_overrides(_load_yaml_config(config_path), env)
    return AppSettings(
        env=env,
        weather=weather,
        project_root=PROJECT_ROOT,
        config_path=config_path,
        db_path=db_path,
        log_file=log_file,
    )


@lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    return build_settings(EnvSettings())
