"""Pydantic schemas for request/response validation."""

from app.schemas.score import (
    Coordinates,
    GeocodeResult,
    NoiseData,
    AirQualityData,
    SafetyData,
    ConvenienceData,
    ZoningData,
    RawData,
    Scores,
    ScoreBreakdown,
    ScoreResponse,
    RecalculateRequest,
    ProgressRequest,
    ReportResponse,
    LivabilitySummary,
)
from app.schemas.geocode import (
    AddressSuggestion,
    SuggestionComponents,
    SuggestionsResponse,
)
from app.schemas.seo import SEOData, SEOMeta

__all__ = [
    "Coordinates",
    "GeocodeResult",
    "NoiseData",
    "AirQualityData",
    "SafetyData",
    "ConvenienceData",
    "ZoningData",
    "RawData",
    "Scores",
    "ScoreBreakdown",
    "ScoreResponse",
    "RecalculateRequest",
    "ProgressRequest",
    "ReportResponse",
    "LivabilitySummary",
    "AddressSuggestion",
    "SuggestionComponents",
    "SuggestionsResponse",
    "SEOData",
    "SEOMeta",
]
