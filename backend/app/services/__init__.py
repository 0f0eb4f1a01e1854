"""
Services package - Business logic and integrations.

Structure:
- app.services.address_normalizer - Taiwan address normalization and parsing
- app.services.data_fetchers - Nominatim, Overpass, MOENV and TDX data
- app.services.score_calculator - Livability sub-scores and overall score
- app.services.livability_service - Score workflow and persistence
- app.services.seo - Sharing metadata and sitemap
"""

# =============================================================================
# Primary Imports
# =============================================================================

# Address handling
from app.services.address_normalizer import (
    generate_geocoding_candidates,
    normalize_taiwan_address,
    parse_taiwan_address,
)

# Data sources
from app.services.data_fetchers import (
    LivabilityDataFetcher,
    close_data_fetcher,
    get_data_fetcher,
)
from app.services.overpass import OverpassClient
from app.services.tdx_auth import TDXTokenProvider

# Scoring
from app.services.score_calculator import calculate_all_scores
from app.services.livability_service import (
    LivabilityService,
    get_livability_service,
)

# =============================================================================
# All exports
# =============================================================================

__all__ = [
    "generate_geocoding_candidates",
    "normalize_taiwan_address",
    "parse_taiwan_address",
    "LivabilityDataFetcher",
    "close_data_fetcher",
    "get_data_fetcher",
    "OverpassClient",
    "TDXTokenProvider",
    "calculate_all_scores",
    "LivabilityService",
    "get_livability_service",
]
