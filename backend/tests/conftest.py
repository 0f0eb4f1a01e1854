"""Shared fixtures: in-memory database, fake data fetcher and API client."""

from collections import Counter

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.cache import clear_memory_cache
from app.core.database import Base, get_db
from app.core.exceptions import GeocodingError
from app.schemas.geocode import AddressSuggestion, SuggestionComponents
from app.schemas.score import GeocodeResult
from app.services.data_fetchers import get_data_fetcher
from app.services.livability_service import LivabilityService, get_livability_service
from tests.sample_data import (
    AIR_QUALITY,
    CONVENIENCE,
    NOISE,
    SAFETY,
    TAIPEI_101,
    ZONING,
)


class FakeFetcher:
    """Stands in for LivabilityDataFetcher without any network access."""

    def __init__(self):
        self.calls = Counter()
        self.approximate = set()
        self.error = None

    def _record(self, name):
        self.calls[name] += 1
        if self.error is not None and name != "geocode":
            raise self.error

    async def geocode_address(self, address):
        self._record("geocode")
        if "nowhere" in address.lower():
            raise GeocodingError(address)
        return GeocodeResult(
            coordinates=TAIPEI_101,
            is_approximate=address in self.approximate,
            display_name="台北101",
            matched_query=address,
        )

    async def suggest_addresses(self, query, limit=5):
        self.calls["suggest"] += 1
        if len(query.strip()) < 2:
            return []
        return [
            AddressSuggestion(
                display_name="台北101, 信義路五段, 信義區, 臺北市",
                address="台北101, 信義路五段, 信義區, 臺北市",
                latitude=25.033,
                longitude=121.5654,
                place_id=1,
                components=SuggestionComponents(road="信義路五段", house_number="7", city="臺北市"),
            )
        ][:limit]

    async def fetch_noise_data(self, coords):
        self._record("noise")
        return NOISE

    async def fetch_air_quality_data(self, coords):
        self._record("air_quality")
        return AIR_QUALITY

    async def fetch_safety_data(self, coords):
        self._record("safety")
        return SAFETY

    async def fetch_convenience_data(self, coords):
        self._record("convenience")
        return CONVENIENCE

    async def fetch_zoning_data(self, coords):
        self._record("zoning")
        return ZONING

    async def fetch_all(self, coords):
        self._record("fetch_all")
        return NOISE, AIR_QUALITY, SAFETY, CONVENIENCE, ZONING


@pytest.fixture(autouse=True)
def clean_cache():
    """Every test starts with an empty response cache."""
    clear_memory_cache()
    yield
    clear_memory_cache()


@pytest.fixture
def db_session():
    """A session bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def fake_fetcher():
    return FakeFetcher()


@pytest.fixture
def service(fake_fetcher):
    return LivabilityService(fake_fetcher)


@pytest.fixture
def client(db_session, fake_fetcher):
    """API client wired to the in-memory database and the fake fetcher."""
    from app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_data_fetcher] = lambda: fake_fetcher
    app.dependency_overrides[get_livability_service] = lambda: LivabilityService(fake_fetcher)

    yield TestClient(app)

    app.dependency_overrides.clear()
