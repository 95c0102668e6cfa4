from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler

from .domain.errors import WeatherError
from .storage.cache import prune_expired
from .weather.config import WeatherConfig
from .weather.service import WeatherService

LOGGER = logging.getLogger(__name__)

CACHE_PRUNE_INTERVAL_MINUTES = 60


def run_default_location_refresh_job(service: WeatherService, config: WeatherConfig) -> bool:
    location = config.default_location
    service.invalidate(location.lat, location.lon)
    try:
        snapshot = service.get(location.lat, location.lon)
    except WeatherError as exc:
        LOGGER.error(
            "Default location refresh failed for '%s' (%s, %s): %s (kind=%s)",
            location.name,
            location.lat,
            location.lon,
            exc.message,
            exc.kind.value,
        )
        return False
    except Exception:  # pragma: no cover - defensive fallback
        LOGGER.exception("Default location refresh failed for '%s'", location.name)
        return False

    LOGGER.info(
        "Default location refresh cached '%s' at %s (temperature=%s)",
        snapshot.location,
        snapshot.last_updated.isoformat(),
        snapshot.temperature_c,
    )
    return True


def run_cache_prune_job(db_path: Path) -> int:
    try:
        deleted = prune_expired(db_path)
    except Exception:  # pragma: no cover - defensive fallback
        LOGGER.exception("Cache prune job failed")
        return 0
    LOGGER.info("Cache prune job removed %s expired entries", deleted)
    return deleted


def build_scheduler(
    service: WeatherService,
    config: WeatherConfig,
    db_path: Path,
) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=timezone.utc)
    scheduler.add_job(
        run_default_location_refresh_job,
        "interval",
        kwargs={"service": service, "config": config},
        seconds=config.widget.auto_refresh_interval_seconds,
        next_run_time=datetime.now(timezone.utc),
        id="default_location_refresh_job",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=120,
    )
    scheduler.add_job(
        run_cache_prune_job,
        "interval",
        kwargs={"db_path": db_path},
        minutes=CACHE_PRUNE_INTERVAL_MINUTES,
        id="cache_prune_job",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=300,
    )
    return scheduler
