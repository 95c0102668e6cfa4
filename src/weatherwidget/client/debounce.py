from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
from dataclasses import dataclass

from ..domain.models import Coordinates
from .hook import FetchState, WeatherDataHook, WeatherDataState

LOGGER = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371000


def haversine_distance(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in meters between two coordinates."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_phi = math.radians(b.lat - a.lat)
    delta_lambda = math.radians(b.lon - a.lon)

    h = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


@dataclass(frozen=True, slots=True)
class DebounceConfig:
    debounce_delay: float = 1.0
    min_distance_threshold: float = 1000.0


class DebouncedWeatherData:
    """Forwards coordinate changes to a hook after a quiet period.

    A coordinate is forwarded only once no newer one has arrived for
    ``debounce_delay`` seconds and it lies at least ``min_distance_threshold``
    meters from the last forwarded coordinate.
    """

    def __init__(self, hook: WeatherDataHook, config: DebounceConfig | None = None) -> None:
        self._hook = hook
        self._config = config or DebounceConfig()
        self._timer: asyncio.Task[None] | None = None
        self._latest: Coordinates | None = None
        self._last_forwarded: Coordinates | None = None
        self._closed = False

    @property
    def hook(self) -> WeatherDataHook:
        return self._hook

    @property
    def state(self) -> WeatherDataState:
        state = self._hook.state
        if self._timer is not None and not self._timer.done():
            return dataclasses.replace(state, status=FetchState.DEBOUNCING)
        return state

    def update_coordinates(self, coordinates: Coordinates | None) -> None:
        if self._closed:
            raise RuntimeError("DebouncedWeatherData is closed")
        self._cancel_timer()
        self._latest = coordinates

        if coordinates is None:
            self._last_forwarded = None
            self._hook.set_coordinates(None)
            return

        LOGGER.debug(
            "Debouncing coordinate change to (%s, %s) for %ss",
            coordinates.lat,
            coordinates.lon,
            self._config.debounce_delay,
        )
        self._timer = asyncio.create_task(self._forward_after_quiet_period(coordinates))

    def refetch(self) -> asyncio.Task[None] | None:
        if self._closed:
            raise RuntimeError("DebouncedWeatherData is closed")
        self._cancel_timer()
        target = self._latest or self._hook.state.coordinates
        if target is None:
            LOGGER.warning("Refetch requested but no coordinates available")
            return None
        LOGGER.info("Manual refetch requested, bypassing debounce")
        self._last_forwarded = target
        return self._hook.refetch(target)

    async def wait_for_idle(self) -> None:
        timer = self._timer
        if timer is not None and not timer.done():
            await asyncio.wait({timer})
        await self._hook.wait_for_idle()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        timer = self._timer
        self._cancel_timer()
        if timer is not None:
            await asyncio.gather(timer, return_exceptions=True)
        await self._hook.aclose()

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _forward_after_quiet_period(self, coordinates: Coordinates) -> None:
        await asyncio.sleep(self._config.debounce_delay)
        self._timer = None

        if self._last_forwarded is not None:
            distance = haversine_distance(self._last_forwarded, coordinates)
            if distance < self._config.min_distance_threshold:
                LOGGER.debug(
                    "Coordinate change of %.0fm is below the %.0fm threshold, skipping update",
                    distance,
                    self._config.min_distance_threshold,
                )
                return

        LOGGER.info("Applying debounced coordinates (%s, %s)", coordinates.lat, coordinates.lon)
        self._last_forwarded = coordinates
        self._hook.set_coordinates(coordinates)
