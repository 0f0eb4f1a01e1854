"""Livability score schemas for data exchange and API responses."""

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, Dict, Any


class CamelModel(BaseModel):
    """Base schema serialised with camelCase keys for the report UI."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Coordinates(CamelModel):
    """A WGS84 point."""
    latitude: float
    longitude: float


class GeocodeResult(CamelModel):
    """Outcome of geocoding an address."""
    coordinates: Coordinates
    is_approximate: bool = False
    display_name: Optional[str] = None
    matched_query: Optional[str] = None


class NoiseData(CamelModel):
    """Noise proxies around an address."""
    level: float = Field(ge=0, le=80)  # estimated Leq in dB
    nearby_temples: int = Field(ge=0)
    major_roads: int = Field(ge=0)
    traffic_intensity: float = Field(ge=0, le=50)


class AirQualityData(CamelModel):
    """Readings from the nearest air quality station."""
    pm25: float = Field(ge=0)
    aqi: int = Field(ge=0)
    status: str = "Unknown"
    station: Optional[str] = None
    station_distance: Optional[float] = None  # metres
    dengue_risk: bool = False
    historical_dengue_cases: int = Field(default=0, ge=0)


class SafetyData(CamelModel):
    """Safety heuristics around an address."""
    accident_hotspots: int = Field(ge=0)
    crime_rate: float = Field(ge=0, le=1)
    pedestrian_safety: float = Field(ge=0, le=100)


class ConvenienceData(CamelModel):
    """Transit and public amenity access."""
    youbike_stations: int = Field(ge=0)
    nearest_youbike_distance: float = Field(ge=0)  # metres
    nearest_youbike_name: Optional[str] = None
    mrt_stations: int = Field(default=0, ge=0)
    bus_stops: int = Field(default=0, ge=0)
    trash_collection_points: int = Field(default=0, ge=0)
    water_points: int = Field(default=0, ge=0)
    public_transport_score: float = Field(ge=0, le=100)


class ZoningData(CamelModel):
    """Land use risk indicators."""
    adjacent_industrial: bool
    adjacent_high_intensity_commercial: bool
    future_development_risk: float = Field(ge=0, le=5)


class RawData(CamelModel):
    """Every metric behind a score breakdown."""
    noise: NoiseData
    air_quality: AirQualityData
    safety: SafetyData
    convenience: ConvenienceData
    zoning: ZoningData


class Scores(CamelModel):
    """The five sub-scores and the weighted overall score, each 0-100."""
    overall: float
    noise: float
    air_quality: float
    safety: float
    convenience: float
    zoning_risk: float


class ScoreBreakdown(Scores):
    """Scores together with the raw data they were computed from."""
    raw_data: RawData

    def scores(self) -> Scores:
        return Scores(**self.model_dump(exclude={"raw_data"}))


class ScoreResponse(CamelModel):
    """Response for a scored address."""
    address: Optional[str] = None
    coordinates: Coordinates
    is_approximate: bool = False
    scores: Scores
    detailed_data: Dict[str, Any]


class RecalculateRequest(CamelModel):
    """Body of POST /api/score/recalculate."""
    latitude: float
    longitude: float

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def reject_non_numbers(cls, v):
        """Only JSON numbers are accepted, not numeric strings."""
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("Both latitude and longitude must be numbers.")
        return v


class ProgressRequest(CamelModel):
    """Body of POST /api/score/progress."""
    address: str = Field(min_length=1)


class ReportResponse(ScoreResponse):
    """Premium report for an address."""
    premium: bool = True
    report_id: int


class LivabilitySummary(CamelModel):
    """Quick summary: noise score, nearest AQI station and nearest YouBike."""
    noise_score: float
    air_quality: Dict[str, Any]
    transport: Dict[str, Any]
