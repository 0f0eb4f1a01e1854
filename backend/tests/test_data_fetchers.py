"""Tests for LivabilityDataFetcher against faked upstream APIs."""

from collections import Counter

import httpx
import pytest

from app.core.exceptions import ConfigurationError, GeocodingError, UpstreamServiceError
from app.schemas.score import Coordinates
from app.services.data_fetchers import (
    NO_STATION_DISTANCE,
    LivabilityDataFetcher,
    NeighbourhoodFeatures,
    noise_from_features,
    public_transport_score,
    safety_from_features,
    summarize_features,
    zoning_from_features,
)
from app.services.http import RateLimiter
from app.services.overpass import OverpassClient
from app.services.tdx_auth import TDXTokenProvider

LAT, LON = 25.033, 121.5654
COORDS = Coordinates(latitude=LAT, longitude=LON)

OSM_ELEMENTS = [
    # Temple about 100 m north
    {"type": "node", "id": 1, "lat": 25.0339, "lon": LON,
     "tags": {"amenity": "place_of_worship", "religion": "taoist"}},
    # The same primary road split into two ways, passing the point
    {"type": "way", "id": 10,
     "bounds": {"minlat": 25.032, "minlon": 121.560, "maxlat": 25.034, "maxlon": 121.565},
     "tags": {"highway": "primary", "name": "信義路五段"}},
    {"type": "way", "id": 11,
     "bounds": {"minlat": 25.032, "minlon": 121.565, "maxlat": 25.034, "maxlon": 121.570},
     "tags": {"highway": "primary", "name": "信義路五段"}},
    # Residential street about 400 m north
    {"type": "way", "id": 12,
     "bounds": {"minlat": 25.0366, "minlon": 121.560, "maxlat": 25.0370, "maxlon": 121.570},
     "tags": {"highway": "residential", "name": "松仁路100巷"}},
    # Three signalised junctions and two crossings nearby
    {"type": "node", "id": 20, "lat": 25.0335, "lon": LON, "tags": {"highway": "traffic_signals"}},
    {"type": "node", "id": 21, "lat": 25.0325, "lon": LON, "tags": {"highway": "traffic_signals"}},
    {"type": "node", "id": 22, "lat": LAT, "lon": 121.5660, "tags": {"highway": "traffic_signals"}},
    {"type": "node", "id": 23, "lat": 25.0332, "lon": LON, "tags": {"highway": "crossing"}},
    {"type": "node", "id": 24, "lat": 25.0328, "lon": LON, "tags": {"highway": "crossing"}},
    # Nightlife, recycling and a drinking fountain
    {"type": "node", "id": 30, "lat": 25.0340, "lon": LON, "tags": {"amenity": "bar"}},
    {"type": "node", "id": 31, "lat": 25.0331, "lon": LON, "tags": {"amenity": "recycling"}},
    {"type": "node", "id": 32, "lat": 25.0329, "lon": LON, "tags": {"amenity": "drinking_water"}},
    # Construction site nearby, industrial land about 1.1 km away
    {"type": "way", "id": 40,
     "bounds": {"minlat": 25.0335, "minlon": 121.566, "maxlat": 25.0340, "maxlon": 121.567},
     "tags": {"landuse": "construction"}},
    {"type": "way", "id": 41,
     "bounds": {"minlat": 25.0430, "minlon": 121.560, "maxlat": 25.0450, "maxlon": 121.570},
     "tags": {"landuse": "industrial"}},
]

AQI_RECORDS = [
    {"sitename": "松山", "latitude": "25.050000", "longitude": "121.578000",
     "pm2.5": "12", "aqi": "45", "status": "良好"},
    {"sitename": "古亭", "latitude": "25.020667", "longitude": "121.529556",
     "pm2.5": "20", "aqi": "60", "status": "普通"},
    {"sitename": "broken", "latitude": "", "longitude": ""},
]

BIKE_STATIONS = [
    {"StationName": {"Zh_tw": "YouBike2.0_捷運市政府站(3號出口)"},
     "StationPosition": {"PositionLat": 25.0335, "PositionLon": LON}},
    {"StationName": {"Zh_tw": "YouBike2.0_臺北101"},
     "StationPosition": {"PositionLat": 25.0350, "PositionLon": LON}},
]

METRO_STATIONS = [
    {"StationName": {"Zh_tw": "台北101/世貿"}, "StationPosition": {"PositionLat": 25.0330, "PositionLon": 121.5637}},
    {"StationName": {"Zh_tw": "台北101/世貿"}, "StationPosition": {"PositionLat": 25.0331, "PositionLon": 121.5638}},
]

BUS_STOPS = [
    {"StopName": {"Zh_tw": "台北101"}, "StopPosition": {"PositionLat": 25.0334, "PositionLon": 121.5650}},
    {"StopName": {"Zh_tw": "台北101"}, "StopPosition": {"PositionLat": 25.0335, "PositionLon": 121.5651}},
    {"StopName": {"Zh_tw": "信義松智路口"}, "StopPosition": {"PositionLat": 25.0340, "PositionLon": 121.5660}},
]


class FakeUpstreams:
    """Routes requests to canned Nominatim, Overpass, MOENV and TDX responses."""

    def __init__(self):
        self.calls = Counter()
        self.nominatim = {}
        self.overpass_status = 200
        self.tdx_data_status = 200
        self.moenv_records = AQI_RECORDS
        self.maintenance_hosts = set()
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        host = request.url.host
        path = request.url.path

        if host in self.maintenance_hosts and not path.endswith("/token"):
            return httpx.Response(200, text="<html>maintenance</html>")

        if host == "nominatim.openstreetmap.org":
            self.calls["nominatim"] += 1
            query = request.url.params["q"]
            result = self.nominatim.get(query)
            if isinstance(result, int):
                return httpx.Response(result)
            return httpx.Response(200, json=result or [])

        if "overpass" in host:
            self.calls["overpass"] += 1
            if self.overpass_status != 200:
                return httpx.Response(self.overpass_status)
            return httpx.Response(200, json={"elements": OSM_ELEMENTS})

        if host == "data.moenv.gov.tw":
            self.calls["moenv"] += 1
            return httpx.Response(200, json={"records": self.moenv_records})

        if path.endswith("/token"):
            self.calls["tdx_token"] += 1
            return httpx.Response(200, json={"access_token": "tdx-token", "expires_in": 86400})

        if host == "tdx.transportdata.tw":
            self.calls["tdx_data"] += 1
            if self.tdx_data_status != 200:
                return httpx.Response(self.tdx_data_status, text="unauthorized")
            if "Bike/Station" in path:
                return httpx.Response(200, json=BIKE_STATIONS)
            if "Metro/Station" in path:
                return httpx.Response(200, json=METRO_STATIONS)
            if "Bus/Stop" in path:
                return httpx.Response(200, json=BUS_STOPS)

        return httpx.Response(404)


@pytest.fixture
def upstreams():
    return FakeUpstreams()


@pytest.fixture
def fetcher(upstreams):
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstreams))
    return LivabilityDataFetcher(
        client=client,
        overpass=OverpassClient(client, limiter=RateLimiter(0), retries=0, backoff_base=0),
        tdx=TDXTokenProvider(client, client_id="id", client_secret="secret"),
        nominatim_limiter=RateLimiter(0),
        moenv_api_key="moenv-key",
        retries=0,
        backoff_base=0,
    )


def nominatim_hit(lat="25.0330", lon="121.5654", addresstype="building"):
    return [{"lat": lat, "lon": lon, "display_name": "台北101, 信義路五段, 信義區, 臺北市", "addresstype": addresstype}]


class TestGeocodeAddress:
    """Test geocode_address."""

    @pytest.mark.asyncio
    async def test_exact_match(self, fetcher, upstreams):
        upstreams.nominatim["台北市信義區信義路五段7號"] = nominatim_hit()

        result = await fetcher.geocode_address("台北市信義區信義路5段7號")

        assert result.coordinates.latitude == pytest.approx(25.033)
        assert result.coordinates.longitude == pytest.approx(121.5654)
        assert result.is_approximate is False
        assert result.matched_query == "台北市信義區信義路五段7號"

    @pytest.mark.asyncio
    async def test_fallback_candidate_is_approximate(self, fetcher, upstreams):
        upstreams.nominatim["台北市信義區信義路五段"] = nominatim_hit(addresstype="road")

        result = await fetcher.geocode_address("台北市信義區信義路五段7號")

        assert result.is_approximate is True
        assert result.matched_query == "台北市信義區信義路五段"
        assert upstreams.calls["nominatim"] == 3

    @pytest.mark.asyncio
    async def test_street_level_result_is_approximate(self, fetcher, upstreams):
        upstreams.nominatim["台北市信義區信義路五段7號"] = nominatim_hit(addresstype="road")

        result = await fetcher.geocode_address("台北市信義區信義路五段7號")

        assert result.is_approximate is True

    @pytest.mark.asyncio
    async def test_point_of_interest_is_approximate(self, fetcher, upstreams):
        upstreams.nominatim["台北市信義區信義路五段7號"] = nominatim_hit(addresstype="amenity")

        result = await fetcher.geocode_address("台北市信義區信義路五段7號")

        assert result.is_approximate is True

    @pytest.mark.asyncio
    async def test_house_is_exact(self, fetcher, upstreams):
        upstreams.nominatim["台北市信義區信義路五段7號"] = nominatim_hit(addresstype="house")

        result = await fetcher.geocode_address("台北市信義區信義路五段7號")

        assert result.is_approximate is False

    @pytest.mark.asyncio
    async def test_not_found(self, fetcher, upstreams):
        with pytest.raises(GeocodingError):
            await fetcher.geocode_address("台北市信義區不存在路999號")
        assert upstreams.calls["nominatim"] >= 2

    @pytest.mark.asyncio
    async def test_result_cached(self, fetcher, upstreams):
        upstreams.nominatim["台北市信義區信義路五段7號"] = nominatim_hit()

        await fetcher.geocode_address("台北市信義區信義路五段7號")
        await fetcher.geocode_address("台北市信義區信義路五段7號")

        assert upstreams.calls["nominatim"] == 1

    @pytest.mark.asyncio
    async def test_request_parameters(self, fetcher, upstreams):
        upstreams.nominatim["台北市信義區信義路五段7號"] = nominatim_hit()

        await fetcher.geocode_address("台北市信義區信義路五段7號")

        request = upstreams.requests[0]
        assert request.url.params["countrycodes"] == "tw"
        assert request.url.params["format"] == "jsonv2"
        assert request.headers["User-Agent"] == "TranquilTaiwan/1.0"


class TestSuggestAddresses:
    """Test suggest_addresses."""

    @pytest.mark.asyncio
    async def test_short_query(self, fetcher, upstreams):
        assert await fetcher.suggest_addresses("台") == []
        assert upstreams.calls["nominatim"] == 0

    @pytest.mark.asyncio
    async def test_formats_suggestions(self, fetcher, upstreams):
        upstreams.nominatim["台北市信義區"] = [{
            "lat": "25.0330",
            "lon": "121.5654",
            "place_id": 123,
            "display_name": "信義區, 臺北市, 臺灣",
            "address": {"city_district": "信義區", "city": "臺北市", "postcode": "110"},
        }]

        suggestions = await fetcher.suggest_addresses("臺北市 信義區")

        assert len(suggestions) == 1
        suggestion = suggestions[0]
        assert suggestion.place_id == 123
        assert suggestion.latitude == pytest.approx(25.033)
        assert suggestion.components.district == "信義區"
        assert suggestion.components.postcode == "110"
        assert upstreams.requests[0].url.params["addressdetails"] == "1"

    @pytest.mark.asyncio
    async def test_upstream_failure_yields_empty_list(self, fetcher, upstreams):
        upstreams.nominatim["台北市信義區"] = 500
        assert await fetcher.suggest_addresses("台北市信義區") == []

    @pytest.mark.asyncio
    async def test_html_page_yields_empty_list(self, fetcher, upstreams):
        upstreams.maintenance_hosts.add("nominatim.openstreetmap.org")
        assert await fetcher.suggest_addresses("台北市信義區") == []


class TestFeatureHeuristics:
    """Test the OSM feature heuristics."""

    def test_summarize_features(self):
        features = summarize_features(OSM_ELEMENTS, LAT, LON)

        assert features.temples == 1
        assert features.major_roads_near == {"信義路五段"}
        assert features.minor_roads_area == {"松仁路100巷"}
        assert features.traffic_signals == 3
        assert features.crossings == 2
        assert features.nightlife == 1
        assert features.trash_points == 1
        assert features.water_points == 1
        assert features.construction == 1
        assert features.industrial == 0

    def test_noise(self):
        noise = noise_from_features(summarize_features(OSM_ELEMENTS, LAT, LON))
        assert noise.nearby_temples == 1
        assert noise.major_roads == 1
        assert noise.traffic_intensity == 12
        # 45 + 5 + 2 + 0.2 * 12
        assert noise.level == pytest.approx(54.4)

    def test_noise_capped(self):
        features = NeighbourhoodFeatures(
            temples=10,
            major_roads_near={f"road-{i}" for i in range(6)},
            major_roads_area={f"road-{i}" for i in range(6)},
        )
        noise = noise_from_features(features)
        assert noise.level == 80
        assert noise.traffic_intensity == 50

    def test_safety(self):
        safety = safety_from_features(summarize_features(OSM_ELEMENTS, LAT, LON))
        assert safety.accident_hotspots == 1
        assert safety.crime_rate == pytest.approx(0.07)
        assert safety.pedestrian_safety == 65

    def test_safety_bounds(self):
        features = NeighbourhoodFeatures(
            traffic_signals=30,
            nightlife=40,
            major_roads_near={f"road-{i}" for i in range(20)},
        )
        safety = safety_from_features(features)
        assert safety.accident_hotspots == 5
        assert safety.crime_rate == 1
        assert safety.pedestrian_safety == 0

    def test_zoning(self):
        zoning = zoning_from_features(summarize_features(OSM_ELEMENTS, LAT, LON))
        assert zoning.adjacent_industrial is False
        assert zoning.adjacent_high_intensity_commercial is False
        assert zoning.future_development_risk == 1.0

    def test_zoning_commercial_and_risk_cap(self):
        zoning = zoning_from_features(
            NeighbourhoodFeatures(industrial=1, large_retail=1, construction=4, undeveloped=4)
        )
        assert zoning.adjacent_industrial is True
        assert zoning.adjacent_high_intensity_commercial is True
        assert zoning.future_development_risk == 5

    def test_public_transport_score(self):
        assert public_transport_score(0, 0) == 0
        assert public_transport_score(1, 2) == 38
        assert public_transport_score(5, 50) == 100


class TestFetchData:
    """Test the per-source fetchers."""

    @pytest.mark.asyncio
    async def test_air_quality_nearest_station(self, fetcher, upstreams):
        air = await fetcher.fetch_air_quality_data(COORDS)

        assert air.station == "松山"
        assert air.pm25 == 12
        assert air.aqi == 45
        assert air.status == "良好"
        assert air.dengue_risk is False
        assert air.historical_dengue_cases == 0
        assert upstreams.requests[0].url.params["api_key"] == "moenv-key"

    @pytest.mark.asyncio
    async def test_air_quality_dengue_risk_in_south(self, fetcher):
        air = await fetcher.fetch_air_quality_data(Coordinates(latitude=22.6273, longitude=120.3014))
        assert air.dengue_risk is True

    @pytest.mark.asyncio
    async def test_air_quality_station_list_cached(self, fetcher, upstreams):
        await fetcher.fetch_air_quality_data(COORDS)
        await fetcher.fetch_air_quality_data(Coordinates(latitude=24.1477, longitude=120.6736))
        assert upstreams.calls["moenv"] == 1

    @pytest.mark.asyncio
    async def test_air_quality_requires_api_key(self, fetcher):
        fetcher.moenv_api_key = ""
        with pytest.raises(ConfigurationError):
            await fetcher.fetch_air_quality_data(COORDS)

    @pytest.mark.asyncio
    async def test_air_quality_no_records(self, fetcher, upstreams):
        upstreams.moenv_records = []
        with pytest.raises(UpstreamServiceError):
            await fetcher.fetch_air_quality_data(COORDS)

    @pytest.mark.asyncio
    async def test_air_quality_html_page(self, fetcher, upstreams):
        upstreams.maintenance_hosts.add("data.moenv.gov.tw")

        with pytest.raises(UpstreamServiceError) as exc_info:
            await fetcher.fetch_air_quality_data(COORDS)

        assert exc_info.value.service == "MOENV"
        assert "invalid JSON response" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_tdx_html_page(self, fetcher, upstreams):
        upstreams.maintenance_hosts.add("tdx.transportdata.tw")

        with pytest.raises(UpstreamServiceError) as exc_info:
            await fetcher.fetch_youbike_stations(COORDS)

        assert exc_info.value.service == "TDX"

    @pytest.mark.asyncio
    async def test_convenience(self, fetcher, upstreams):
        convenience = await fetcher.fetch_convenience_data(COORDS)

        assert convenience.youbike_stations == 2
        assert convenience.nearest_youbike_name == "YouBike2.0_捷運市政府站(3號出口)"
        assert convenience.nearest_youbike_distance == pytest.approx(56)
        assert convenience.mrt_stations == 1
        assert convenience.bus_stops == 2
        assert convenience.public_transport_score == 38
        assert convenience.trash_collection_points == 1
        assert convenience.water_points == 1
        assert upstreams.calls["tdx_token"] == 1

    @pytest.mark.asyncio
    async def test_convenience_tdx_request(self, fetcher, upstreams):
        await fetcher.fetch_convenience_data(COORDS)

        bike_requests = [r for r in upstreams.requests if "Bike/Station/NearBy" in r.url.path]
        assert len(bike_requests) == 1
        request = bike_requests[0]
        assert request.headers["Authorization"] == "Bearer tdx-token"
        assert request.url.params["$spatialFilter"] == "nearby(25.033, 121.5654, 1000)"

    @pytest.mark.asyncio
    async def test_convenience_without_stations(self, fetcher, monkeypatch):
        async def no_stations(path, coords, radius):
            return []

        monkeypatch.setattr(fetcher, "_tdx_nearby", no_stations)
        convenience = await fetcher.fetch_convenience_data(COORDS)

        assert convenience.youbike_stations == 0
        assert convenience.nearest_youbike_distance == NO_STATION_DISTANCE
        assert convenience.nearest_youbike_name is None
        assert convenience.public_transport_score == 0

    @pytest.mark.asyncio
    async def test_tdx_unauthorized_invalidates_token(self, fetcher, upstreams):
        upstreams.tdx_data_status = 401

        with pytest.raises(UpstreamServiceError) as exc_info:
            await fetcher.fetch_youbike_stations(COORDS)

        assert exc_info.value.status_code == 401
        assert fetcher.tdx._token is None

    @pytest.mark.asyncio
    async def test_overpass_unavailable(self, fetcher, upstreams):
        upstreams.overpass_status = 500
        with pytest.raises(UpstreamServiceError):
            await fetcher.fetch_noise_data(COORDS)
        assert upstreams.calls["overpass"] == 3


class TestFetchAll:
    """Test fetch_all and the summary."""

    @pytest.mark.asyncio
    async def test_fetch_all_shares_one_overpass_query(self, fetcher, upstreams):
        noise, air, safety, convenience, zoning = await fetcher.fetch_all(COORDS)

        assert noise.level == pytest.approx(54.4)
        assert air.station == "松山"
        assert safety.pedestrian_safety == 65
        assert convenience.mrt_stations == 1
        assert zoning.future_development_risk == 1.0
        assert upstreams.calls["overpass"] == 1
        assert upstreams.calls["tdx_token"] == 1
        assert upstreams.calls["tdx_data"] == 3

    @pytest.mark.asyncio
    async def test_livability_summary(self, fetcher, upstreams):
        upstreams.nominatim["台北市信義區信義路五段7號"] = nominatim_hit()

        summary = await fetcher.get_livability_summary("台北市信義區信義路五段7號")

        # 100 - 5 (temple) - 3 (major road) - 2 * 12 (traffic)
        assert summary.noise_score == pytest.approx(68)
        assert summary.air_quality == {"aqi": 45, "status": "良好"}
        assert summary.transport == {"nearestYouBike": "YouBike2.0_捷運市政府站(3號出口)", "distance": 56}
