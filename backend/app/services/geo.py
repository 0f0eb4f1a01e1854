"""Geographic helpers."""

import math

EARTH_RADIUS_M = 6371e3

# Bounding box for Taiwan proper plus the outlying islands
TAIWAN_LAT_RANGE = (21.0, 26.0)
TAIWAN_LON_RANGE = (119.0, 123.0)


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in metres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def is_within_taiwan(latitude: float, longitude: float) -> bool:
    return (
        TAIWAN_LAT_RANGE[0] <= latitude <= TAIWAN_LAT_RANGE[1]
        and TAIWAN_LON_RANGE[0] <= longitude <= TAIWAN_LON_RANGE[1]
    )
