from __future__ import annotations

import logging
import threading
from concurrent.futures import Future

from pydantic import ValidationError

from ..domain.models import WeatherSnapshot
from ..storage.cache import CacheStore
from .config import WeatherConfig
from .fetcher import WeatherFetcher, validate_coordinates

LOGGER = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "weather_data_"


def _fixed_point(value: float) -> str:
    text = f"{value:.4f}"
    if text == "-0.0000":
        return "0.0000"
    return text


def weather_cache_key(lat: float, lon: float) -> str:
    """Cache key for a coordinate pair, stable under sub-1e-4 degree noise."""
    return f"{CACHE_KEY_PREFIX}{_fixed_point(lat)}_{_fixed_point(lon)}"


class WeatherService:
    """Keyed cache in front of :class:`WeatherFetcher`.

    Concurrent misses for the same key are coalesced: the first caller
    fetches upstream, later callers wait for its snapshot or its error.
    """

    def __init__(
        self,
        config: WeatherConfig,
        store: CacheStore,
        fetcher: WeatherFetcher,
    ) -> None:
        self._ttl_seconds = config.cache_ttl_seconds
        self._store = store
        self._fetcher = fetcher
        self._lock = threading.Lock()
        self._inflight: dict[str, Future[WeatherSnapshot]] = {}

    def get(self, lat: float, lon: float) -> WeatherSnapshot:
        validate_coordinates(lat, lon)
        key = weather_cache_key(lat, lon)

        cached = self._cached_snapshot(key)
        if cached is not None:
            LOGGER.info("Weather data retrieved from cache for (%s, %s) key=%s", lat, lon, key)
            return cached

        with self._lock:
            pending = self._inflight.get(key)
            if pending is None:
                pending = Future()
                self._inflight[key] = pending
                leader = True
            else:
                leader = False

        if not leader:
            LOGGER.debug("Joining in-flight weather fetch for key=%s", key)
            return pending.result()

        try:
            # A previous leader may have stored the entry since the first lookup.
            snapshot = self._cached_snapshot(key)
            fetched = snapshot is None
            if fetched:
                snapshot = self._fetcher.fetch_with_retry(lat, lon)
                self._store.put(key, snapshot.to_payload(), self._ttl_seconds)
        except BaseException as exc:
            pending.set_exception(exc)
            raise
        else:
            pending.set_result(snapshot)
        finally:
            with self._lock:
                self._inflight.pop(key, None)

        if not fetched:
            LOGGER.info("Weather data retrieved from cache for (%s, %s) key=%s", lat, lon, key)
            return snapshot

        LOGGER.info(
            "Weather data fetched and cached for (%s, %s) key=%s ttl=%ss",
            lat,
            lon,
            key,
            self._ttl_seconds,
        )
        return snapshot

    def invalidate(self, lat: float, lon: float) -> bool:
        key = weather_cache_key(lat, lon)
        removed = self._store.forget(key)
        LOGGER.info("Weather cache entry %s for key=%s", "cleared" if removed else "not present", key)
        return removed

    def _cached_snapshot(self, key: str) -> WeatherSnapshot | None:
        payload = self._store.get(key)
        if payload is None:
            return None
        try:
            return WeatherSnapshot.model_validate(payload)
        except ValidationError:
            LOGGER.warning("Discarding unreadable cache entry for key=%s", key)
            self._store.forget(key)
            return None
