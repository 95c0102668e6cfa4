from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")

RetryCallback = Callable[[int, float, BaseException], None]


def is_retryable(error: BaseException) -> bool:
    return bool(getattr(error, "retryable", False))


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Bounded exponential backoff with additive jitter.

    ``max_attempts`` counts every attempt, the first one included. The delay
    after attempt ``n`` is ``base_delay * multiplier ** (n - 1)`` plus up to
    ``jitter`` seconds, capped at ``max_delay`` when one is set.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float | None = None
    jitter: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.jitter < 0:
            raise ValueError("base_delay and jitter must be >= 0")

    def delay_for(self, attempt: int, *, rng: Callable[[], float] = random.random) -> float:
        delay = self.base_delay * self.multiplier ** (attempt - 1) + rng() * self.jitter
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        return attempt < self.max_attempts and is_retryable(error)


def call_with_retry(
    operation: Callable[[int], T],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: RetryCallback | None = None,
) -> T:
    """Run ``operation(attempt)`` until it succeeds or fails for good.

    The last error is re-raised unchanged; callers tell exhaustion apart from
    a terminal failure by its ``retryable`` attribute.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation(attempt)
        except Exception as exc:
            if not policy.should_retry(exc, attempt):
                raise
            delay = policy.delay_for(attempt)
            if on_retry is not None:
                on_retry(attempt, delay, exc)
            sleep(delay)


async def acall_with_retry(
    operation: Callable[[int], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: RetryCallback | None = None,
) -> T:
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation(attempt)
        except Exception as exc:
            if not policy.should_retry(exc, attempt):
                raise
            delay = policy.delay_for(attempt)
            if on_retry is not None:
                on_retry(attempt, delay, exc)
            await sleep(delay)
