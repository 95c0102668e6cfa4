from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    lat: float
    lon: float

    def as_query(self) -> dict[str, str]:
        return {"lat": repr(self.lat), "lon": repr(self.lon)}


class WeatherSnapshot(BaseModel):
    """Normalized current conditions for one coordinate pair.

    Attributes are snake_case; the JSON form uses the widget's wire keys
    (``temperature``, ``humidity``, ``windSpeed``, ``lastUpdated``).
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    location: str
    temperature_c: int = Field(alias="temperature")
    condition: str
    description: str
    icon: str
    humidity_percent: int = Field(alias="humidity")
    wind_speed_ms: float = Field(default=0.0, alias="windSpeed")
    last_updated: datetime = Field(alias="lastUpdated")
    coordinates: Coordinates = Field(default_factory=lambda: Coordinates(lat=0.0, lon=0.0))

    @field_validator("location", "condition", "description", "icon")
    @classmethod
    def validate_text(cls, value: str) -> str:
        return value.strip()

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
