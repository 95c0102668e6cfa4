"""Coordinate-driven weather fetching for the widget client.

:class:`WeatherDataHook` owns at most one fetch task at a time. Starting a
new fetch cancels the previous one, and a cancelled fetch never touches the
published state.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Protocol

from ..domain.errors import WeatherError, parse_network_error
from ..domain.models import Coordinates, WeatherSnapshot
from ..retry import RetryPolicy, acall_with_retry

LOGGER = logging.getLogger(__name__)


class WeatherApi(Protocol):
    async def get_weather(self, coordinates: Coordinates) -> WeatherSnapshot:
        """Fetch one snapshot, raising :class:`WeatherError` on failure."""


class FetchState(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FETCHING = "fetching"
    RETRY_WAIT = "retry_wait"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class HookConfig:
    auto_refresh_interval: float | None = 30 * 60
    max_retry_attempts: int = 3
    retry_delay: float = 1.0
    retry_multiplier: float = 2.0
    max_retry_delay: float = 30.0
    retry_jitter: float = 1.0

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retry_attempts,
            base_delay=self.retry_delay,
            multiplier=self.retry_multiplier,
            max_delay=self.max_retry_delay,
            jitter=self.retry_jitter,
        )


@dataclass(frozen=True, slots=True)
class WeatherDataState:
    data: WeatherSnapshot | None = None
    loading: bool = False
    error: WeatherError | None = None
    retry_count: int = 0
    is_retrying: bool = False
    status: FetchState = FetchState.IDLE
    coordinates: Coordinates | None = None


StateListener = Callable[[WeatherDataState], None]


class WeatherDataHook:
    def __init__(
        self,
        api: WeatherApi,
        config: HookConfig | None = None,
        on_change: StateListener | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api = api
        self._config = config or HookConfig()
        self._policy = self._config.retry_policy()
        self._on_change = on_change
        self._sleep = sleep
        self._state = WeatherDataState()
        self._fetch_task: asyncio.Task[None] | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def state(self) -> WeatherDataState:
        return self._state

    @property
    def config(self) -> HookConfig:
        return self._config

    def set_coordinates(self, coordinates: Coordinates | None) -> asyncio.Task[None] | None:
        self._ensure_open()
        if coordinates is not None and coordinates == self._state.coordinates:
            return None

        if coordinates is None:
            LOGGER.debug("Coordinates cleared, resetting state")
            self._cancel_pending()
            self._publish(WeatherDataState())
            return None

        LOGGER.info("Coordinates changed to (%s, %s), fetching weather data", coordinates.lat, coordinates.lon)
        return self._start_fetch(coordinates)

    def refetch(self, coordinates: Coordinates | None = None) -> asyncio.Task[None] | None:
        self._ensure_open()
        target = coordinates or self._state.coordinates
        if target is None:
            LOGGER.warning("Refetch requested but no coordinates available")
            return None
        LOGGER.info("Manual refetch requested for (%s, %s)", target.lat, target.lon)
        return self._start_fetch(target)

    async def wait_for_idle(self) -> None:
        while True:
            task = self._fetch_task
            if task is None or task.done():
                return
            await asyncio.wait({task})

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        pending = [task for task in (self._fetch_task, self._refresh_task) if task is not None]
        self._cancel_pending()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        LOGGER.debug("Weather data hook closed")

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("WeatherDataHook is closed")

    def _publish(self, state: WeatherDataState) -> None:
        self._state = state
        if self._on_change is not None:
            self._on_change(state)

    def _update(self, **changes) -> None:
        self._publish(dataclasses.replace(self._state, **changes))

    def _cancel_pending(self) -> None:
        current = asyncio.current_task()
        for task in (self._fetch_task, self._refresh_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._fetch_task = None
        self._refresh_task = None

    def _start_fetch(self, coordinates: Coordinates) -> asyncio.Task[None]:
        self._cancel_pending()
        self._update(
            coordinates=coordinates,
            loading=True,
            error=None,
            retry_count=0,
            is_retrying=False,
            status=FetchState.FETCHING,
        )
        task = asyncio.create_task(self._run_fetch(coordinates))
        self._fetch_task = task
        return task

    async def _attempt(self, coordinates: Coordinates, attempt: int) -> WeatherSnapshot:
        if attempt > 1:
            self._update(status=FetchState.FETCHING)
        LOGGER.info(
            "Starting weather data fetch for (%s, %s) (attempt=%s/%s)",
            coordinates.lat,
            coordinates.lon,
            attempt,
            self._policy.max_attempts,
        )
        try:
            return await self._api.get_weather(coordinates)
        except WeatherError:
            raise
        except Exception as exc:
            raise parse_network_error(exc) from exc

    async def _run_fetch(self, coordinates: Coordinates) -> None:
        started = time.monotonic()

        def on_retry(attempt: int, delay: float, error: BaseException) -> None:
            LOGGER.warning(
                "Retrying weather request for (%s, %s) in %.0fms (attempt=%s/%s, error=%s)",
                coordinates.lat,
                coordinates.lon,
                delay * 1000,
                attempt,
                self._policy.max_attempts,
                error,
            )
            self._update(retry_count=attempt, is_retrying=True, status=FetchState.RETRY_WAIT)

        try:
            snapshot = await acall_with_retry(
                lambda attempt: self._attempt(coordinates, attempt),
                self._policy,
                sleep=self._sleep,
                on_retry=on_retry,
            )
        except asyncio.CancelledError:
            LOGGER.debug("Weather request for (%s, %s) cancelled", coordinates.lat, coordinates.lon)
            raise
        except WeatherError as exc:
            LOGGER.error(
                "Weather request for (%s, %s) failed: %s (kind=%s, retryable=%s, duration_ms=%.0f)",
                coordinates.lat,
                coordinates.lon,
                exc.message,
                exc.kind.value,
                exc.retryable,
                (time.monotonic() - started) * 1000,
            )
            self._update(loading=False, error=exc, is_retrying=False, status=FetchState.FAILED)
            return

        LOGGER.info(
            "Weather data fetched for '%s' (temperature=%s, duration_ms=%.0f)",
            snapshot.location,
            snapshot.temperature_c,
            (time.monotonic() - started) * 1000,
        )
        self._update(
            data=snapshot,
            loading=False,
            error=None,
            retry_count=0,
            is_retrying=False,
            status=FetchState.IDLE,
        )
        self._schedule_refresh(coordinates)

    def _schedule_refresh(self, coordinates: Coordinates) -> None:
        interval = self._config.auto_refresh_interval
        if not interval or interval <= 0:
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        LOGGER.debug("Scheduling auto-refresh in %ss", interval)
        self._refresh_task = asyncio.create_task(self._auto_refresh(coordinates, interval))

    async def _auto_refresh(self, coordinates: Coordinates, interval: float) -> None:
        await asyncio.sleep(interval)
        if self._closed:
            return
        LOGGER.info("Auto-refreshing weather data for (%s, %s)", coordinates.lat, coordinates.lon)
        self._start_fetch(coordinates)
