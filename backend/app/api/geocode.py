"""Address autocomplete API routes."""

from fastapi import APIRouter, Depends, Query

from app.schemas.geocode import SuggestionsResponse
from app.services.data_fetchers import LivabilityDataFetcher, get_data_fetcher

router = APIRouter()


@router.get("/suggestions", response_model=SuggestionsResponse)
async def get_suggestions(
    q: str = Query("", description="Partial address (at least 2 characters)"),
    limit: int = Query(5, ge=1, le=10),
    fetcher: LivabilityDataFetcher = Depends(get_data_fetcher),
):
    """Address suggestions for autocomplete. Upstream failures yield an empty list."""
    suggestions = await fetcher.suggest_addresses(q, limit=limit)
    return SuggestionsResponse(suggestions=suggestions)
