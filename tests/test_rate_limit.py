from weatherwidget.weather.config import RateLimitConfig
from weatherwidget.weather.rate_limit import RequestRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_minute_window():
    clock = FakeClock()
    limiter = RequestRateLimiter(
        RateLimitConfig(max_requests_per_minute=2, max_requests_per_hour=100), clock=clock
    )

    assert limiter.allow("a") is True
    assert limiter.allow("a") is True
    assert limiter.allow("a") is False
    assert limiter.allow("b") is True

    clock.now += 60
    assert limiter.allow("a") is True


def test_hour_window():
    clock = FakeClock()
    limiter = RequestRateLimiter(
        RateLimitConfig(max_requests_per_minute=10, max_requests_per_hour=3), clock=clock
    )

    for _ in range(3):
        assert limiter.allow("a") is True
        clock.now += 61
    assert limiter.allow("a") is False

    clock.now += 3600
    assert limiter.allow("a") is True


def test_rejected_requests_are_not_counted():
    clock = FakeClock()
    limiter = RequestRateLimiter(
        RateLimitConfig(max_requests_per_minute=1, max_requests_per_hour=2), clock=clock
    )

    assert limiter.allow("a") is True
    assert limiter.allow("a") is False
    assert limiter.allow("a") is False
    clock.now += 60
    assert limiter.allow("a") is True


def test_disabled_limiter_always_allows():
    limiter = RequestRateLimiter(
        RateLimitConfig(enabled=False, max_requests_per_minute=1, max_requests_per_hour=1)
    )

    assert all(limiter.allow("a") for _ in range(10))


def test_reset():
    limiter = RequestRateLimiter(RateLimitConfig(max_requests_per_minute=1, max_requests_per_hour=10))
    limiter.allow("a")

    limiter.reset("a")

    assert limiter.allow("a") is True


def test_idle_clients_are_forgotten():
    clock = FakeClock()
    limiter = RequestRateLimiter(
        RateLimitConfig(max_requests_per_minute=10, max_requests_per_hour=100), clock=clock
    )
    for index in range(1000):
        assert limiter.allow(f"10.0.{index // 256}.{index % 256}") is True
    assert limiter.tracked_clients == 1000

    clock.now += 7200
    assert limiter.allow("192.168.0.1") is True

    assert limiter.tracked_clients == 1


def test_active_clients_survive_sweep():
    clock = FakeClock()
    limiter = RequestRateLimiter(
        RateLimitConfig(max_requests_per_minute=1, max_requests_per_hour=100), clock=clock
    )
    assert limiter.allow("a") is True

    clock.now += 1800
    assert limiter.allow("b") is True
    assert limiter.tracked_clients == 2
    assert limiter.allow("a") is True
    assert limiter.allow("a") is False
