"""Address suggestion schemas."""

from pydantic import BaseModel
from typing import List, Optional

from app.schemas.score import CamelModel


class SuggestionComponents(CamelModel):
    """Key address parts for compact display."""
    road: str = ""
    house_number: str = ""
    neighbourhood: str = ""
    district: str = ""
    city: str = ""
    postcode: str = ""


class AddressSuggestion(CamelModel):
    """A single autocomplete candidate."""
    display_name: str
    address: str
    latitude: float
    longitude: float
    place_id: Optional[int] = None
    components: SuggestionComponents


class SuggestionsResponse(BaseModel):
    suggestions: List[AddressSuggestion] = []
