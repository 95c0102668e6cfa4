from .base import WeatherTransport, WeatherTransportError
from .openweather import OpenWeatherClient

__all__ = ["OpenWeatherClient", "WeatherTransport", "WeatherTransportError"]
