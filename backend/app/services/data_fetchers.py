"""
Data fetchers for the livability pipeline.

Pulls geocoding from Nominatim, neighbourhood features from OpenStreetMap
(Overpass), air quality from MOENV and transit from TDX, and reduces them to
the metrics the score calculator consumes.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx

from app.core.cache import coordinate_key, get_cached_json, set_cached_json
from app.core.config import settings
from app.core.exceptions import (
    ConfigurationError,
    GeocodingError,
    UpstreamServiceError,
)
from app.schemas.geocode import AddressSuggestion, SuggestionComponents
from app.schemas.score import (
    AirQualityData,
    ConvenienceData,
    Coordinates,
    GeocodeResult,
    LivabilitySummary,
    NoiseData,
    SafetyData,
    ZoningData,
)
from app.services.address_normalizer import (
    generate_geocoding_candidates,
    normalize_taiwan_address,
)
from app.services.geo import haversine_distance
from app.services.http import RateLimiter, json_body, request_with_retry
from app.services.overpass import OverpassClient, build_neighbourhood_query, element_distance
from app.services.score_calculator import calculate_noise_score
from app.services.tdx_auth import TDXTokenProvider

logger = logging.getLogger(__name__)

MAJOR_HIGHWAYS = {"motorway", "trunk", "primary", "secondary"}
MINOR_HIGHWAYS = {"tertiary", "residential", "unclassified"}
NIGHTLIFE = {"bar", "nightclub", "pub"}
WASTE_AMENITIES = {"waste_disposal", "recycling", "waste_basket"}
WATER_AMENITIES = {"drinking_water", "water_point"}
COMMERCIAL_LANDUSE = {"commercial", "retail"}
UNDEVELOPED_LANDUSE = {"brownfield", "greenfield"}
LARGE_RETAIL = {"mall", "department_store"}

TEMPLE_RADIUS = 300
MAJOR_ROAD_RADIUS = 200
TRAFFIC_RADIUS = 500
JUNCTION_RADIUS = 200
WALKING_RADIUS = 300
AMENITY_RADIUS = 500
ZONING_RADIUS = 500

YOUBIKE_RADIUS = 1000
MRT_RADIUS = 800
BUS_RADIUS = 500
NO_STATION_DISTANCE = 3000.0

# Dengue outbreaks concentrate in Tainan, Kaohsiung and Pingtung
DENGUE_RISK_LATITUDE = 23.5

# Nominatim result types precise enough to count as an exact match
PRECISE_ADDRESS_TYPES = {"house", "building"}


@dataclass
class NeighbourhoodFeatures:
    """Counts of OSM features around a point, grouped by heuristic."""
    temples: int = 0
    major_roads_near: Set[str] = field(default_factory=set)
    major_roads_area: Set[str] = field(default_factory=set)
    minor_roads_area: Set[str] = field(default_factory=set)
    traffic_signals: int = 0
    crossings: int = 0
    nightlife: int = 0
    trash_points: int = 0
    water_points: int = 0
    industrial: int = 0
    commercial: int = 0
    large_retail: int = 0
    construction: int = 0
    undeveloped: int = 0


def _road_key(element: Dict[str, Any]) -> str:
    # Roads are split into many ways; count them by name where possible
    tags = element.get("tags", {})
    return tags.get("name") or tags.get("ref") or f"way/{element.get('id')}"


def summarize_features(elements: List[Dict[str, Any]], latitude: float, longitude: float) -> NeighbourhoodFeatures:
    """Bucket Overpass elements by what they say about the neighbourhood."""
    features = NeighbourhoodFeatures()

    for element in elements:
        distance = element_distance(element, latitude, longitude)
        if distance is None:
            continue
        tags = element.get("tags", {})
        amenity = tags.get("amenity")
        highway = tags.get("highway")
        landuse = tags.get("landuse")

        if amenity == "place_of_worship":
            if distance <= TEMPLE_RADIUS:
                features.temples += 1
        elif amenity in NIGHTLIFE:
            if distance <= WALKING_RADIUS:
                features.nightlife += 1
        elif amenity in WASTE_AMENITIES:
            if distance <= AMENITY_RADIUS:
                features.trash_points += 1
        elif amenity in WATER_AMENITIES:
            if distance <= AMENITY_RADIUS:
                features.water_points += 1

        if highway in MAJOR_HIGHWAYS:
            if distance <= MAJOR_ROAD_RADIUS:
                features.major_roads_near.add(_road_key(element))
            if distance <= TRAFFIC_RADIUS:
                features.major_roads_area.add(_road_key(element))
        elif highway in MINOR_HIGHWAYS:
            if distance <= TRAFFIC_RADIUS:
                features.minor_roads_area.add(_road_key(element))
        elif highway == "traffic_signals":
            if distance <= JUNCTION_RADIUS:
                features.traffic_signals += 1
        elif highway == "crossing":
            if distance <= WALKING_RADIUS:
                features.crossings += 1

        if distance <= ZONING_RADIUS:
            if landuse == "industrial":
                features.industrial += 1
            elif landuse in COMMERCIAL_LANDUSE:
                features.commercial += 1
            elif landuse == "construction":
                features.construction += 1
            elif landuse in UNDEVELOPED_LANDUSE:
                features.undeveloped += 1
            if tags.get("building") == "construction":
                features.construction += 1
            if tags.get("shop") in LARGE_RETAIL:
                features.large_retail += 1

    return features


def noise_from_features(features: NeighbourhoodFeatures) -> NoiseData:
    """Estimate noise exposure from temples and road traffic."""
    major_roads = len(features.major_roads_near)
    traffic_intensity = min(
        50.0, 10 * len(features.major_roads_area) + 2 * len(features.minor_roads_area)
    )
    level = min(80.0, 45 + 5 * major_roads + 2 * features.temples + 0.2 * traffic_intensity)
    return NoiseData(
        level=round(level, 1),
        nearby_temples=features.temples,
        major_roads=major_roads,
        traffic_intensity=round(traffic_intensity, 1),
    )


def safety_from_features(features: NeighbourhoodFeatures) -> SafetyData:
    """Road safety and nightlife heuristics."""
    major_roads = len(features.major_roads_near)
    accident_hotspots = min(5, features.traffic_signals // 3)
    crime_rate = min(1.0, 0.05 * features.nightlife + 0.02 * major_roads)
    pedestrian_safety = 60 + 5 * min(features.crossings, 8) - 5 * major_roads
    return SafetyData(
        accident_hotspots=accident_hotspots,
        crime_rate=round(crime_rate, 2),
        pedestrian_safety=max(0, min(100, pedestrian_safety)),
    )


def zoning_from_features(features: NeighbourhoodFeatures) -> ZoningData:
    """Land use risks within the zoning radius."""
    risk = features.construction + 0.5 * features.undeveloped
    return ZoningData(
        adjacent_industrial=features.industrial > 0,
        adjacent_high_intensity_commercial=features.commercial >= 3 or features.large_retail > 0,
        future_development_risk=round(min(5.0, risk), 1),
    )


def public_transport_score(mrt_stations: int, bus_stops: int) -> float:
    return float(min(100, 30 * min(mrt_stations, 2) + 4 * min(bus_stops, 10)))


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def nearest_station(
    records: List[Dict[str, Any]], latitude: float, longitude: float
) -> Tuple[Optional[Dict[str, Any]], float]:
    """Nearest MOENV station record and its distance in metres."""
    nearest = None
    min_distance = float("inf")
    for record in records:
        lat = _to_float(record.get("latitude"))
        lon = _to_float(record.get("longitude"))
        if lat is None or lon is None:
            continue
        distance = haversine_distance(latitude, longitude, lat, lon)
        if distance < min_distance:
            min_distance = distance
            nearest = record
    return nearest, min_distance


def _tdx_position(item: Dict[str, Any]) -> Optional[Tuple[float, float]]:
    position = item.get("StationPosition") or item.get("StopPosition") or {}
    lat = _to_float(position.get("PositionLat"))
    lon = _to_float(position.get("PositionLon"))
    if lat is None or lon is None:
        return None
    return lat, lon


def _tdx_name(item: Dict[str, Any]) -> str:
    name = item.get("StationName") or item.get("StopName") or {}
    return name.get("Zh_tw") or name.get("En") or ""


def nearest_transit(
    items: List[Dict[str, Any]], latitude: float, longitude: float
) -> Tuple[Optional[str], float]:
    """Name of and distance to the nearest TDX station or stop."""
    nearest_name = None
    min_distance = float("inf")
    for item in items:
        position = _tdx_position(item)
        if position is None:
            continue
        distance = haversine_distance(latitude, longitude, position[0], position[1])
        if distance < min_distance:
            min_distance = distance
            nearest_name = _tdx_name(item)
    return nearest_name, min_distance


def _distinct_names(items: List[Dict[str, Any]]) -> int:
    # MRT stations repeat per line and bus stops per direction
    return len({_tdx_name(item) or str(id(item)) for item in items if _tdx_position(item)})


class LivabilityDataFetcher:
    """
    Fetch and normalize every data source for a location.

    One instance is shared per process so the HTTP connection pool, rate
    limiters and the TDX token are reused across requests.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        overpass: Optional[OverpassClient] = None,
        tdx: Optional[TDXTokenProvider] = None,
        nominatim_limiter: Optional[RateLimiter] = None,
        moenv_api_key: Optional[str] = None,
        retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=settings.HTTP_TIMEOUT,
            headers={"User-Agent": settings.USER_AGENT},
            follow_redirects=True,
        )
        self.retries = retries
        self.backoff_base = backoff_base
        self.overpass = overpass or OverpassClient(self.client, retries=retries, backoff_base=backoff_base)
        self.tdx = tdx or TDXTokenProvider(self.client)
        self.nominatim_limiter = nominatim_limiter or RateLimiter(settings.NOMINATIM_MIN_INTERVAL)
        self.moenv_api_key = settings.MOENV_API_KEY if moenv_api_key is None else moenv_api_key
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # ------------------------------------------------------------------
    # Geocoding (Nominatim)
    # ------------------------------------------------------------------

    async def _nominatim_search(self, query: str, limit: int = 1, address_details: bool = False) -> List[Dict[str, Any]]:
        params = {
            "q": query,
            "format": "jsonv2",
            "limit": limit,
            "countrycodes": "tw",
            "accept-language": "zh-TW,en",
        }
        if address_details:
            params["addressdetails"] = 1

        response = await request_with_retry(
            self.client,
            "GET",
            settings.NOMINATIM_URL,
            service="Nominatim",
            retries=self.retries,
            backoff_base=self.backoff_base,
            limiter=self.nominatim_limiter,
            params=params,
            headers={"User-Agent": settings.USER_AGENT},
        )
        data = json_body(response, "Nominatim")
        return data if isinstance(data, list) else []

    async def geocode_address(self, address: str) -> GeocodeResult:
        """
        Geocode a Taiwan address.

        Candidates from the address normalizer are tried from most to least
        specific. The result is approximate when a fallback candidate matched
        or Nominatim only resolved a street or area.

        Raises:
            GeocodingError: no candidate could be located
        """
        cache_key = f"geocode:{address.strip()}"
        cached = get_cached_json(cache_key)
        if cached is not None:
            return GeocodeResult.model_validate(cached)

        candidates = generate_geocoding_candidates(address)
        for index, candidate in enumerate(candidates):
            results = await self._nominatim_search(candidate)
            if not results:
                logger.debug(f"No geocoding match for candidate {candidate!r}")
                continue

            best = results[0]
            address_type = best.get("addresstype") or best.get("type")
            result = GeocodeResult(
                coordinates=Coordinates(latitude=float(best["lat"]), longitude=float(best["lon"])),
                is_approximate=index > 0 or address_type not in PRECISE_ADDRESS_TYPES,
                display_name=best.get("display_name"),
                matched_query=candidate,
            )
            logger.info(
                f"Geocoded {address!r} via {candidate!r} -> "
                f"({result.coordinates.latitude}, {result.coordinates.longitude}), "
                f"approximate={result.is_approximate}"
            )
            set_cached_json(cache_key, result.model_dump(), settings.CACHE_TTL)
            return result

        raise GeocodingError(address)

    async def suggest_addresses(self, query: str, limit: int = 5) -> List[AddressSuggestion]:
        """
        Autocomplete suggestions for a partial address.

        Failures are logged and yield no suggestions.
        """
        if not query or len(query.strip()) < 2:
            return []

        normalized = normalize_taiwan_address(query)
        try:
            results = await self._nominatim_search(normalized, limit=limit, address_details=True)
        except (UpstreamServiceError, ValueError) as e:
            logger.error(f"Geocoding suggestions error: {e}")
            return []

        suggestions = []
        for item in results:
            details = item.get("address") or {}
            try:
                suggestions.append(
                    AddressSuggestion(
                        display_name=item["display_name"],
                        address=item["display_name"],
                        latitude=float(item["lat"]),
                        longitude=float(item["lon"]),
                        place_id=item.get("place_id"),
                        components=SuggestionComponents(
                            road=details.get("road", ""),
                            house_number=details.get("house_number", ""),
                            neighbourhood=details.get("neighbourhood") or details.get("suburb", ""),
                            district=details.get("city_district") or details.get("district", ""),
                            city=details.get("city") or details.get("town", ""),
                            postcode=details.get("postcode", ""),
                        ),
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed suggestion: {item!r}")
        return suggestions

    # ------------------------------------------------------------------
    # OpenStreetMap features (Overpass)
    # ------------------------------------------------------------------

    async def fetch_osm_features(self, coords: Coordinates) -> NeighbourhoodFeatures:
        """Neighbourhood features around a point, shared by several metrics."""
        cache_key = coordinate_key("osm", coords.latitude, coords.longitude)

        async with self._lock_for(cache_key):
            elements = get_cached_json(cache_key)
            if elements is None:
                query = build_neighbourhood_query(
                    coords.latitude,
                    coords.longitude,
                    settings.OVERPASS_RADIUS,
                    timeout=settings.OVERPASS_TIMEOUT,
                )
                elements = await self.overpass.query(query)
                set_cached_json(cache_key, elements, settings.CACHE_TTL)

        return summarize_features(elements, coords.latitude, coords.longitude)

    async def fetch_noise_data(self, coords: Coordinates) -> NoiseData:
        features = await self.fetch_osm_features(coords)
        return noise_from_features(features)

    async def fetch_safety_data(self, coords: Coordinates) -> SafetyData:
        features = await self.fetch_osm_features(coords)
        return safety_from_features(features)

    async def fetch_zoning_data(self, coords: Coordinates) -> ZoningData:
        features = await self.fetch_osm_features(coords)
        return zoning_from_features(features)

    # ------------------------------------------------------------------
    # Air quality (MOENV)
    # ------------------------------------------------------------------

    async def _fetch_aqi_records(self) -> List[Dict[str, Any]]:
        if not self.moenv_api_key:
            raise ConfigurationError("MOENV_API_KEY is not configured")

        cache_key = "moenv:aqx_p_432"
        async with self._lock_for(cache_key):
            records = get_cached_json(cache_key, ttl=settings.AIR_QUALITY_CACHE_TTL)
            if records is not None:
                return records

            response = await request_with_retry(
                self.client,
                "GET",
                settings.MOENV_AQI_URL,
                service="MOENV",
                retries=self.retries,
                backoff_base=self.backoff_base,
                params={
                    "api_key": self.moenv_api_key,
                    "limit": 1000,
                    "sort": "ImportDate desc",
                    "format": "json",
                },
            )
            data = json_body(response, "MOENV")
            if isinstance(data, dict):
                data = data.get("records") or []
            records = data if isinstance(data, list) else []
            if not records:
                raise UpstreamServiceError("MOENV", "No air quality data available")

            set_cached_json(cache_key, records, settings.AIR_QUALITY_CACHE_TTL)
            return records

    async def fetch_air_quality_data(self, coords: Coordinates) -> AirQualityData:
        """Readings from the nearest MOENV station."""
        records = await self._fetch_aqi_records()
        station, distance = nearest_station(records, coords.latitude, coords.longitude)
        if station is None:
            raise UpstreamServiceError("MOENV", "No nearby station found")

        pm25 = _to_float(station.get("pm2.5")) or _to_float(station.get("pm2.5_avg")) or 0.0
        aqi = _to_float(station.get("aqi")) or 0.0

        return AirQualityData(
            pm25=round(max(pm25, 0.0), 1),
            aqi=int(max(aqi, 0)),
            status=station.get("status") or "Unknown",
            station=station.get("sitename"),
            station_distance=round(distance),
            dengue_risk=coords.latitude < DENGUE_RISK_LATITUDE,
            historical_dengue_cases=0,
        )

    # ------------------------------------------------------------------
    # Transit (TDX)
    # ------------------------------------------------------------------

    async def _tdx_nearby(self, path: str, coords: Coordinates, radius: int) -> List[Dict[str, Any]]:
        cache_key = coordinate_key(f"tdx:{path}", coords.latitude, coords.longitude)
        cached = get_cached_json(cache_key)
        if cached is not None:
            return cached

        token = await self.tdx.get_token()
        try:
            response = await request_with_retry(
                self.client,
                "GET",
                f"{settings.TDX_API_BASE}/{path}",
                service="TDX",
                retries=self.retries,
                backoff_base=self.backoff_base,
                params={
                    "$spatialFilter": f"nearby({coords.latitude}, {coords.longitude}, {radius})",
                    "$format": "JSON",
                },
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
        except UpstreamServiceError as e:
            if e.status_code == 401:
                self.tdx.invalidate()
            raise

        data = json_body(response, "TDX")
        items = data if isinstance(data, list) else []
        set_cached_json(cache_key, items, settings.CACHE_TTL)
        return items

    async def fetch_youbike_stations(self, coords: Coordinates) -> List[Dict[str, Any]]:
        return await self._tdx_nearby("Bike/Station/NearBy", coords, YOUBIKE_RADIUS)

    async def fetch_convenience_data(self, coords: Coordinates) -> ConvenienceData:
        """YouBike, MRT and bus access plus nearby public amenities."""
        bikes, metro, buses, features = await asyncio.gather(
            self.fetch_youbike_stations(coords),
            self._tdx_nearby("Rail/Metro/Station/NearBy", coords, MRT_RADIUS),
            self._tdx_nearby("Bus/Stop/NearBy", coords, BUS_RADIUS),
            self.fetch_osm_features(coords),
        )

        nearest_name, nearest_distance = nearest_transit(bikes, coords.latitude, coords.longitude)
        if nearest_name is None:
            nearest_distance = NO_STATION_DISTANCE

        mrt_stations = _distinct_names(metro)
        bus_stops = _distinct_names(buses)

        return ConvenienceData(
            youbike_stations=sum(1 for b in bikes if _tdx_position(b)),
            nearest_youbike_distance=round(nearest_distance),
            nearest_youbike_name=nearest_name,
            mrt_stations=mrt_stations,
            bus_stops=bus_stops,
            trash_collection_points=features.trash_points,
            water_points=features.water_points,
            public_transport_score=public_transport_score(mrt_stations, bus_stops),
        )

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    async def fetch_all(
        self, coords: Coordinates
    ) -> Tuple[NoiseData, AirQualityData, SafetyData, ConvenienceData, ZoningData]:
        """Fetch the five datasets concurrently."""
        return await asyncio.gather(
            self.fetch_noise_data(coords),
            self.fetch_air_quality_data(coords),
            self.fetch_safety_data(coords),
            self.fetch_convenience_data(coords),
            self.fetch_zoning_data(coords),
        )

    async def get_livability_summary(self, address: str) -> LivabilitySummary:
        """
        Quick summary for an address: noise score, nearest AQI station and
        nearest YouBike station.
        """
        geocoded = await self.geocode_address(address)
        coords = geocoded.coordinates

        noise, air_quality, bikes = await asyncio.gather(
            self.fetch_noise_data(coords),
            self.fetch_air_quality_data(coords),
            self.fetch_youbike_stations(coords),
        )

        nearest_name, distance = nearest_transit(bikes, coords.latitude, coords.longitude)
        if nearest_name is None:
            raise UpstreamServiceError("TDX", "No nearby YouBike station found")

        return LivabilitySummary(
            noise_score=calculate_noise_score(noise),
            air_quality={"aqi": air_quality.aqi, "status": air_quality.status},
            transport={"nearestYouBike": nearest_name, "distance": round(distance)},
        )


_fetcher: Optional[LivabilityDataFetcher] = None


def get_data_fetcher() -> LivabilityDataFetcher:
    """Get or create the shared data fetcher (lazy initialization)."""
    global _fetcher
    if _fetcher is None:
        _fetcher = LivabilityDataFetcher()
    return _fetcher


async def close_data_fetcher() -> None:
    global _fetcher
    if _fetcher is not None:
        await _fetcher.aclose()
        _fetcher = None
