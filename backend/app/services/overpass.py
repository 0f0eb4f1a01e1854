"""
Overpass API client with instance fallback.

Public Overpass instances are frequently overloaded, so queries go to each
configured instance in turn until one answers.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import OverpassUnavailableError, UpstreamServiceError
from app.services.geo import haversine_distance
from app.services.http import RateLimiter, request_with_retry

logger = logging.getLogger(__name__)


def build_neighbourhood_query(latitude: float, longitude: float, radius: int, timeout: int = 25) -> str:
    """
    One query returning every OSM feature the livability heuristics use.

    Ways and relations come back with their bounding box so distances can be
    computed locally.
    """
    around = f"(around:{radius},{latitude},{longitude})"
    return f"""[out:json][timeout:{timeout}];
(
  nwr["amenity"="place_of_worship"]["religion"~"buddhist|taoist|folk|chinese_folk"]{around};
  way["highway"~"^(motorway|trunk|primary|secondary|tertiary|residential|unclassified)$"]{around};
  node["highway"="traffic_signals"]{around};
  node["highway"="crossing"]{around};
  nwr["amenity"~"^(bar|nightclub|pub)$"]{around};
  nwr["amenity"~"^(waste_disposal|recycling|waste_basket)$"]{around};
  nwr["amenity"~"^(drinking_water|water_point)$"]{around};
  nwr["landuse"~"^(industrial|commercial|retail|construction|brownfield|greenfield)$"]{around};
  nwr["building"="construction"]{around};
  nwr["shop"~"^(mall|department_store)$"]{around};
);
out tags bb;"""


def element_distance(element: Dict[str, Any], latitude: float, longitude: float) -> Optional[float]:
    """
    Distance in metres from a point to an element.

    Nodes use their position; ways and relations use the nearest point of
    their bounding box, so the distance is 0 inside it.
    """
    if "lat" in element and "lon" in element:
        return haversine_distance(latitude, longitude, element["lat"], element["lon"])

    bounds = element.get("bounds")
    if bounds:
        nearest_lat = min(max(latitude, bounds["minlat"]), bounds["maxlat"])
        nearest_lon = min(max(longitude, bounds["minlon"]), bounds["maxlon"])
        return haversine_distance(latitude, longitude, nearest_lat, nearest_lon)

    center = element.get("center")
    if center:
        return haversine_distance(latitude, longitude, center["lat"], center["lon"])
    return None


class OverpassClient:
    """Rate-limited Overpass client that falls back across instances."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        instances: Optional[List[str]] = None,
        limiter: Optional[RateLimiter] = None,
        retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
    ):
        self._client = client
        self.instances = list(instances or settings.OVERPASS_INSTANCES)
        self.limiter = limiter or RateLimiter(settings.OVERPASS_MIN_INTERVAL)
        self.retries = retries
        self.backoff_base = backoff_base

    async def query(self, ql: str) -> List[Dict[str, Any]]:
        """
        Run an Overpass QL query and return its elements.

        Each instance gets its own retries for 429/504 responses; any other
        failure moves on to the next instance.

        Raises:
            OverpassUnavailableError: every instance failed
        """
        errors = []
        for instance in self.instances:
            try:
                response = await request_with_retry(
                    self._client,
                    "POST",
                    instance,
                    service=f"Overpass {instance}",
                    retries=self.retries,
                    backoff_base=self.backoff_base,
                    limiter=self.limiter,
                    data={"data": ql},
                )
                payload = response.json()
            except (UpstreamServiceError, ValueError) as e:
                logger.warning(f"Instance {instance} failed: {e}", extra={"service": "Overpass"})
                errors.append(f"{instance}: {e}")
                continue

            elements = payload.get("elements", [])
            logger.debug(f"Overpass instance {instance} returned {len(elements)} elements")
            return elements

        raise OverpassUnavailableError(errors)
