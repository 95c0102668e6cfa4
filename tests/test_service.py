import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from weatherwidget.domain.errors import ErrorKind, WeatherError
from weatherwidget.weather.fetcher import WeatherFetcher
from weatherwidget.weather.service import WeatherService, weather_cache_key


@pytest.fixture
def make_service(weather_config, cache_store, no_sleep):
    def build(transport):
        fetcher = WeatherFetcher(transport, weather_config, sleep=no_sleep)
        return WeatherService(weather_config, cache_store, fetcher)

    return build


def _wait_for_calls(transport, count, timeout=5.0):
    deadline = time.monotonic() + timeout
    while len(transport.calls) < count:
        if time.monotonic() > deadline:
            raise AssertionError("upstream was never called")
        time.sleep(0.01)


def test_cache_key_rounds_to_four_decimals():
    assert weather_cache_key(40.712812, -74.006015) == "weather_data_40.7128_-74.0060"
    assert weather_cache_key(40.7128, -74.0060) == "weather_data_40.7128_-74.0060"


def test_cache_key_normalizes_negative_zero():
    assert weather_cache_key(-0.00001, -0.0) == "weather_data_0.0000_0.0000"


def test_miss_fetches_and_stores(make_service, fake_transport, sample_payload, cache_store):
    transport = fake_transport([(200, sample_payload)])
    service = make_service(transport)

    snapshot = service.get(40.7128, -74.006)

    assert snapshot.temperature_c == 23
    stored = cache_store.get("weather_data_40.7128_-74.0060")
    assert stored["temperature"] == 23
    assert stored["location"] == "New York"


def test_hit_skips_upstream(make_service, fake_transport, sample_payload):
    transport = fake_transport([(200, sample_payload)])
    service = make_service(transport)

    first = service.get(40.7128, -74.006)
    second = service.get(40.712812, -74.006015)

    assert second == first
    assert len(transport.calls) == 1


def test_unreadable_cache_entry_is_treated_as_miss(make_service, fake_transport, sample_payload, cache_store):
    key = weather_cache_key(40.7128, -74.006)
    cache_store.put(key, {"unexpected": "shape"}, 900)
    transport = fake_transport([(200, sample_payload)])

    snapshot = make_service(transport).get(40.7128, -74.006)

    assert snapshot.location == "New York"
    assert len(transport.calls) == 1
    assert cache_store.get(key)["location"] == "New York"


def test_failures_are_not_cached(make_service, fake_transport, sample_payload):
    transport = fake_transport([(404, "{}"), (200, sample_payload)])
    service = make_service(transport)

    with pytest.raises(WeatherError):
        service.get(1.0, 2.0)
    service.get(1.0, 2.0)

    assert len(transport.calls) == 2


def test_invalidate_removes_only_that_entry(make_service, fake_transport, sample_payload, cache_store):
    transport = fake_transport(default=(200, sample_payload))
    service = make_service(transport)
    service.get(1.0, 2.0)
    service.get(3.0, 4.0)

    assert service.invalidate(1.0, 2.0) is True
    assert service.invalidate(1.0, 2.0) is False
    assert cache_store.get(weather_cache_key(1.0, 2.0)) is None
    assert cache_store.get(weather_cache_key(3.0, 4.0)) is not None


def test_invalid_coordinates_rejected_before_cache(make_service, fake_transport):
    transport = fake_transport()

    with pytest.raises(WeatherError) as excinfo:
        make_service(transport).get(95.0, 0.0)

    assert excinfo.value.kind is ErrorKind.INVALID_COORDINATES
    assert transport.calls == []


def test_concurrent_misses_share_one_upstream_call(make_service, fake_transport, sample_payload):
    gate = threading.Event()
    transport = fake_transport(default=(200, sample_payload), gate=gate)
    service = make_service(transport)

    with ThreadPoolExecutor(max_workers=2) as pool:
        leader = pool.submit(service.get, 40.7128, -74.006)
        _wait_for_calls(transport, 1)
        follower = pool.submit(service.get, 40.7128, -74.006)
        time.sleep(0.1)
        gate.set()

        assert leader.result(timeout=5) == follower.result(timeout=5)

    assert len(transport.calls) == 1


def test_concurrent_followers_receive_leader_error(make_service, fake_transport):
    gate = threading.Event()
    transport = fake_transport([(404, "{}")], default=(500, ""), gate=gate)
    service = make_service(transport)

    with ThreadPoolExecutor(max_workers=2) as pool:
        leader = pool.submit(service.get, 1.0, 2.0)
        _wait_for_calls(transport, 1)
        follower = pool.submit(service.get, 1.0, 2.0)
        time.sleep(0.1)
        gate.set()

        for future in (leader, follower):
            with pytest.raises(WeatherError) as excinfo:
                future.result(timeout=5)
            assert excinfo.value.kind is ErrorKind.LOCATION_NOT_FOUND

    assert len(transport.calls) == 1


class LateCacheStore:
    """Wraps a store so the first lookup misses, as if another leader stored the entry just after."""

    def __init__(self, store):
        self._store = store
        self.lookups = 0

    def get(self, key):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return self._store.get(key)

    def put(self, key, value, ttl_seconds):
        self._store.put(key, value, ttl_seconds)

    def forget(self, key):
        return self._store.forget(key)


def test_new_leader_rechecks_cache_before_fetching(
    make_service, fake_transport, sample_payload, weather_config, cache_store, no_sleep
):
    transport = fake_transport([(200, sample_payload)])
    first = make_service(transport).get(40.7128, -74.006)

    late_store = LateCacheStore(cache_store)
    fetcher = WeatherFetcher(transport, weather_config, sleep=no_sleep)
    service = WeatherService(weather_config, late_store, fetcher)

    assert service.get(40.7128, -74.006) == first
    assert late_store.lookups == 2
    assert len(transport.calls) == 1
