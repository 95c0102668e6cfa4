from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Callable

from .config import RateLimitConfig

LOGGER = logging.getLogger(__name__)

MINUTE_SECONDS = 60.0
HOUR_SECONDS = 3600.0


class RequestRateLimiter:
    """Per-client sliding-window limits over the last minute and hour."""

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: dict[str, deque[float]] = {}
        self._last_sweep: float | None = None

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._requests)

    def allow(self, client_id: str) -> bool:
        if not self._config.enabled:
            return True

        now = self._clock()
        with self._lock:
            if self._last_sweep is None or now - self._last_sweep >= MINUTE_SECONDS:
                self._sweep(now)
            history = self._requests.setdefault(client_id, deque())
            while history and now - history[0] >= HOUR_SECONDS:
                history.popleft()

            last_minute = sum(1 for stamp in history if now - stamp < MINUTE_SECONDS)
            if last_minute >= self._config.max_requests_per_minute:
                LOGGER.warning(
                    "Rate limit exceeded for %s: %s requests in the last minute (max=%s)",
                    client_id,
                    last_minute,
                    self._config.max_requests_per_minute,
                )
                return False
            if len(history) >= self._config.max_requests_per_hour:
                LOGGER.warning(
                    "Rate limit exceeded for %s: %s requests in the last hour (max=%s)",
                    client_id,
                    len(history),
                    self._config.max_requests_per_hour,
                )
                return False

            history.append(now)
            return True

    def reset(self, client_id: str | None = None) -> None:
        with self._lock:
            if client_id is None:
                self._requests.clear()
            else:
                self._requests.pop(client_id, None)

    def _sweep(self, now: float) -> None:
        # Caller holds the lock.
        stale = [
            key
            for key, history in self._requests.items()
            if not history or now - history[-1] >= HOUR_SECONDS
        ]
        for key in stale:
            del self._requests[key]
        self._last_sweep = now
        if stale:
            LOGGER.debug("Dropped rate limit history for %s idle clients", len(stale))
