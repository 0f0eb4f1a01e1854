"""
Application configuration using Pydantic settings.
"""

from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    """Application settings."""

    # Application
    PROJECT_NAME: str = "TranquilTaiwan"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR: str = os.path.join(os.path.dirname(__file__), "../../logs")
    LOG_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT: int = 5

    # API
    API_PREFIX: str = "/api"

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:4173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./tranquil_taiwan.db")
    SCORE_MAX_AGE_HOURS: int = 24

    # Redis Cache
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    REDIS_CACHE_ENABLED: bool = os.getenv("REDIS_CACHE_ENABLED", "false").lower() == "true"
    CACHE_TTL: int = 3600  # 1 hour cache TTL
    AIR_QUALITY_CACHE_TTL: int = 600
    CACHE_MAX_ENTRIES: int = 1024

    # Outbound HTTP
    USER_AGENT: str = "TranquilTaiwan/1.0"
    HTTP_TIMEOUT: float = 20.0
    HTTP_MAX_RETRIES: int = 3
    HTTP_BACKOFF_BASE: float = 1.0

    # Nominatim geocoding
    NOMINATIM_URL: str = "https://nominatim.openstreetmap.org/search"
    NOMINATIM_MIN_INTERVAL: float = 1.0

    # Overpass (OpenStreetMap)
    OVERPASS_INSTANCES: List[str] = [
        "https://overpass-api.de/api/interpreter",
        "https://overpass.kumi.systems/api/interpreter",
        "https://overpass.private.coffee/api/interpreter",
    ]
    OVERPASS_MIN_INTERVAL: float = 3.0
    OVERPASS_TIMEOUT: int = 25
    OVERPASS_RADIUS: int = 500

    # MOENV air quality
    MOENV_API_KEY: str = os.getenv("MOENV_API_KEY", "")
    MOENV_AQI_URL: str = "https://data.moenv.gov.tw/api/v2/aqx_p_432"

    # TDX transport data
    TDX_CLIENT_ID: str = os.getenv("TDX_CLIENT_ID", "")
    TDX_CLIENT_SECRET: str = os.getenv("TDX_CLIENT_SECRET", "")
    TDX_AUTH_URL: str = (
        "https://tdx.transportdata.tw/auth/realms/TDXConnect/protocol/openid-connect/token"
    )
    TDX_API_BASE: str = "https://tdx.transportdata.tw/api/advanced/v2"
    TDX_TOKEN_SAFETY_MARGIN: int = 300  # 5 minutes

    # SEO / sharing
    SITE_NAME: str = "TranquilTaiwan"
    SITE_DESCRIPTION: str = "Check the livability of any address in Taiwan"
    SITE_URL: str = os.getenv("SITE_URL", "http://localhost:5173")

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
