"""
Livability score calculation.

Every sub-score is 0-100 where higher is better; the overall score is a
fixed weighted sum of the five.
"""

from typing import Dict

from app.schemas.score import (
    AirQualityData,
    ConvenienceData,
    NoiseData,
    RawData,
    SafetyData,
    ScoreBreakdown,
    ZoningData,
)

WEIGHTS: Dict[str, float] = {
    "noise": 0.25,
    "air_quality": 0.25,
    "safety": 0.20,
    "convenience": 0.15,
    "zoning_risk": 0.15,
}


def _clamp(score: float) -> float:
    return max(0.0, min(100.0, score))


def calculate_noise_score(data: NoiseData) -> float:
    """Noise score (higher = quieter)."""
    score = 100.0

    # Estimated Leq
    if data.level > 70:
        score -= 30
    elif data.level > 65:
        score -= 20
    elif data.level > 60:
        score -= 10
    elif data.level > 55:
        score -= 5

    # Temple festivals, firecrackers
    score -= data.nearby_temples * 5
    score -= data.major_roads * 3
    score -= data.traffic_intensity * 2

    return _clamp(score)


def calculate_air_quality_score(data: AirQualityData) -> float:
    """Air quality score (higher = better)."""
    score = 100.0

    # Taiwan PM2.5 bands: <15 good, 15-35 moderate, >35 unhealthy
    if data.pm25 > 35:
        score -= 40
    elif data.pm25 > 25:
        score -= 25
    elif data.pm25 > 15:
        score -= 10

    if data.aqi > 150:
        score -= 30
    elif data.aqi > 100:
        score -= 15
    elif data.aqi > 50:
        score -= 5

    if data.dengue_risk:
        score -= 20
    if data.historical_dengue_cases > 10:
        score -= 10

    return _clamp(score)


def calculate_safety_score(data: SafetyData) -> float:
    """Safety score (higher = safer)."""
    score = 100.0
    score -= data.accident_hotspots * 10
    score -= data.crime_rate * 30  # crime rate is normalized to 0-1
    score -= (100 - data.pedestrian_safety) * 0.3
    return _clamp(score)


def calculate_convenience_score(data: ConvenienceData) -> float:
    """Convenience score (higher = more convenient)."""
    score = 0.0

    # Nearest YouBike, up to 30 points
    if data.nearest_youbike_distance < 200:
        score += 30
    elif data.nearest_youbike_distance < 500:
        score += 20
    elif data.nearest_youbike_distance < 1000:
        score += 10

    score += min(20, data.youbike_stations * 5)
    score += min(15, data.trash_collection_points * 3)
    score += min(10, data.water_points * 2)
    score += data.public_transport_score * 0.25

    return _clamp(score)


def calculate_zoning_risk_score(data: ZoningData) -> float:
    """Zoning risk score (higher = lower risk)."""
    score = 100.0
    if data.adjacent_industrial:
        score -= 40
    if data.adjacent_high_intensity_commercial:
        score -= 20
    score -= data.future_development_risk * 10
    return _clamp(score)


def calculate_overall_score(
    noise: float,
    air_quality: float,
    safety: float,
    convenience: float,
    zoning_risk: float,
) -> float:
    """Weighted average of the sub-scores, rounded to 2 decimals."""
    overall = (
        noise * WEIGHTS["noise"]
        + air_quality * WEIGHTS["air_quality"]
        + safety * WEIGHTS["safety"]
        + convenience * WEIGHTS["convenience"]
        + zoning_risk * WEIGHTS["zoning_risk"]
    )
    return round(overall, 2)


def calculate_all_scores(
    noise_data: NoiseData,
    air_quality_data: AirQualityData,
    safety_data: SafetyData,
    convenience_data: ConvenienceData,
    zoning_data: ZoningData,
) -> ScoreBreakdown:
    """Compute every sub-score and the overall score, keeping the raw data."""
    noise = calculate_noise_score(noise_data)
    air_quality = calculate_air_quality_score(air_quality_data)
    safety = calculate_safety_score(safety_data)
    convenience = calculate_convenience_score(convenience_data)
    zoning_risk = calculate_zoning_risk_score(zoning_data)

    return ScoreBreakdown(
        overall=calculate_overall_score(noise, air_quality, safety, convenience, zoning_risk),
        noise=noise,
        air_quality=air_quality,
        safety=safety,
        convenience=convenience,
        zoning_risk=zoning_risk,
        raw_data=RawData(
            noise=noise_data,
            air_quality=air_quality_data,
            safety=safety_data,
            convenience=convenience_data,
            zoning=zoning_data,
        ),
    )
