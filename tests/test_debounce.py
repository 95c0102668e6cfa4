import asyncio
from datetime import datetime, timezone

import pytest

from weatherwidget.client.debounce import DebounceConfig, DebouncedWeatherData, haversine_distance
from weatherwidget.client.hook import FetchState, HookConfig, WeatherDataHook
from weatherwidget.domain.models import Coordinates, WeatherSnapshot

NEW_YORK = Coordinates(lat=40.7128, lon=-74.006)
NEW_YORK_JITTER = Coordinates(lat=40.7130, lon=-74.0062)
MIDTOWN = Coordinates(lat=40.758, lon=-73.9855)
LONDON = Coordinates(lat=51.5074, lon=-0.1278)


class RecordingApi:
    def __init__(self):
        self.calls = []

    async def get_weather(self, coordinates):
        self.calls.append(coordinates)
        return WeatherSnapshot(
            location="Somewhere",
            temperature=18,
            condition="Clouds",
            description="few clouds",
            icon="02d",
            humidity=70,
            lastUpdated=datetime(2025, 9, 23, tzinfo=timezone.utc),
            coordinates=coordinates,
        )


@pytest.fixture
def api():
    return RecordingApi()


@pytest.fixture
def debounced(api):
    hook = WeatherDataHook(api, HookConfig(auto_refresh_interval=None))
    return DebouncedWeatherData(hook, DebounceConfig(debounce_delay=0.1, min_distance_threshold=1000))


def test_haversine_distance():
    assert haversine_distance(NEW_YORK, NEW_YORK) == 0
    assert haversine_distance(NEW_YORK, LONDON) == pytest.approx(5_570_000, rel=0.01)
    assert haversine_distance(NEW_YORK, NEW_YORK_JITTER) < 100


@pytest.mark.asyncio
async def test_rapid_updates_forward_only_the_last(debounced, api):
    debounced.update_coordinates(NEW_YORK)
    await asyncio.sleep(0.05)
    debounced.update_coordinates(NEW_YORK_JITTER)
    assert debounced.state.status is FetchState.DEBOUNCING

    await debounced.wait_for_idle()

    assert api.calls == [NEW_YORK_JITTER]
    assert debounced.state.data.coordinates == NEW_YORK_JITTER
    await debounced.aclose()


@pytest.mark.asyncio
async def test_small_moves_are_not_forwarded(debounced, api):
    debounced.update_coordinates(NEW_YORK)
    await debounced.wait_for_idle()

    debounced.update_coordinates(NEW_YORK_JITTER)
    await debounced.wait_for_idle()
    assert api.calls == [NEW_YORK]

    debounced.update_coordinates(MIDTOWN)
    await debounced.wait_for_idle()
    assert api.calls == [NEW_YORK, MIDTOWN]
    await debounced.aclose()


@pytest.mark.asyncio
async def test_refetch_bypasses_distance_check(debounced, api):
    debounced.update_coordinates(NEW_YORK)
    await debounced.wait_for_idle()

    debounced.refetch()
    await debounced.wait_for_idle()

    assert api.calls == [NEW_YORK, NEW_YORK]
    await debounced.aclose()


@pytest.mark.asyncio
async def test_refetch_cancels_pending_timer(debounced, api):
    debounced.update_coordinates(LONDON)

    debounced.refetch()
    await debounced.wait_for_idle()
    await asyncio.sleep(0.15)

    assert api.calls == [LONDON]
    await debounced.aclose()


@pytest.mark.asyncio
async def test_clearing_coordinates_resets(debounced, api):
    debounced.update_coordinates(NEW_YORK)
    await debounced.wait_for_idle()

    debounced.update_coordinates(None)

    assert debounced.state.data is None
    debounced.update_coordinates(NEW_YORK_JITTER)
    await debounced.wait_for_idle()
    assert api.calls == [NEW_YORK, NEW_YORK_JITTER]
    await debounced.aclose()


@pytest.mark.asyncio
async def test_aclose_cancels_timer(debounced, api):
    debounced.update_coordinates(NEW_YORK)

    await debounced.aclose()
    await asyncio.sleep(0.15)

    assert api.calls == []
    with pytest.raises(RuntimeError):
        debounced.update_coordinates(LONDON)
