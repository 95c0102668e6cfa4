import pytest

from weatherwidget.domain.errors import ErrorKind, WeatherError
from weatherwidget.retry import RetryPolicy, acall_with_retry, call_with_retry, is_retryable


class Flaky:
    def __init__(self, failures):
        self.failures = list(failures)
        self.attempts = []

    def __call__(self, attempt):
        self.attempts.append(attempt)
        if self.failures:
            raise self.failures.pop(0)
        return "ok"


def test_delay_grows_exponentially_without_jitter():
    policy = RetryPolicy(max_attempts=5, base_delay=1.0, multiplier=2.0, jitter=0.0)

    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]


def test_delay_adds_jitter_and_respects_cap():
    policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=30.0, jitter=1.0)

    assert policy.delay_for(1, rng=lambda: 0.5) == 1.5
    assert policy.delay_for(10, rng=lambda: 0.99) == 30.0


def test_should_retry_needs_attempts_and_retryable_error():
    policy = RetryPolicy(max_attempts=3)
    transient = WeatherError(ErrorKind.NETWORK_ERROR)
    final = WeatherError(ErrorKind.LOCATION_NOT_FOUND)

    assert policy.should_retry(transient, 1) is True
    assert policy.should_retry(transient, 3) is False
    assert policy.should_retry(final, 1) is False
    assert is_retryable(ValueError("plain")) is False


def test_invalid_policy_rejected():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_call_with_retry_recovers():
    operation = Flaky([WeatherError(ErrorKind.SERVICE_UNAVAILABLE)] * 2)
    delays = []
    retries = []

    result = call_with_retry(
        operation,
        RetryPolicy(max_attempts=3, jitter=0.0),
        sleep=delays.append,
        on_retry=lambda attempt, delay, error: retries.append(attempt),
    )

    assert result == "ok"
    assert operation.attempts == [1, 2, 3]
    assert delays == [1.0, 2.0]
    assert retries == [1, 2]


def test_call_with_retry_reraises_last_error_unchanged():
    last = WeatherError(ErrorKind.CONNECTION_TIMEOUT, "third")
    operation = Flaky(
        [WeatherError(ErrorKind.CONNECTION_TIMEOUT), WeatherError(ErrorKind.CONNECTION_TIMEOUT), last]
    )

    with pytest.raises(WeatherError) as excinfo:
        call_with_retry(operation, RetryPolicy(max_attempts=3), sleep=lambda _: None)

    assert excinfo.value is last


def test_call_with_retry_stops_on_non_retryable():
    operation = Flaky([WeatherError(ErrorKind.API_KEY_INVALID)])

    with pytest.raises(WeatherError):
        call_with_retry(operation, RetryPolicy(max_attempts=3), sleep=lambda _: None)

    assert operation.attempts == [1]


@pytest.mark.asyncio
async def test_acall_with_retry_recovers():
    failures = [WeatherError(ErrorKind.NETWORK_ERROR)]
    attempts = []
    delays = []

    async def operation(attempt):
        attempts.append(attempt)
        if failures:
            raise failures.pop(0)
        return attempt

    async def sleep(delay):
        delays.append(delay)

    result = await acall_with_retry(operation, RetryPolicy(max_attempts=3, jitter=0.0), sleep=sleep)

    assert result == 2
    assert attempts == [1, 2]
    assert delays == [1.0]
