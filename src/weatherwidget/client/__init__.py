from .api import LocalWeatherApi
from .debounce import DebounceConfig, DebouncedWeatherData, haversine_distance
from .geolocation import GeolocationError, LocationResolution, PositionSource, resolve_location
from .hook import FetchState, HookConfig, WeatherDataHook, WeatherDataState

__all__ = [
    "DebounceConfig",
    "DebouncedWeatherData",
    "FetchState",
    "GeolocationError",
    "HookConfig",
    "LocalWeatherApi",
    "LocationResolution",
    "PositionSource",
    "WeatherDataHook",
    "WeatherDataState",
    "haversine_distance",
    "resolve_location",
]
