# placesearch/schemas/place_search.py
"""Attribute filters for place search requests."""

from typing import List, Literal, Optional

from pydantic import Field, field_validator

from ..core.config import settings
from ._strict_base import SearchRequestModel

PlaceType = Literal["poi", "area", "region"]


def _clean_values(values: Optional[List[str]]) -> List[str]:
    """Strip, drop empties and de-duplicate while keeping the caller's order."""
    cleaned: List[str] = []
    for value in values or []:
        item = str(value).strip()
        if item and item not in cleaned:
            cleaned.append(item)
    return cleaned


class SearchFilters(SearchRequestModel):
    """Non-spatial filters; every populated filter narrows the result (AND)."""

    query: Optional[str] = Field(default=None, max_length=500)
    category: List[str] = Field(default_factory=list, description="Match any of these categories")
    tags: List[str] = Field(default_factory=list, description="Match any of these tags")
    place_type: Optional[PlaceType] = None
    city: Optional[str] = Field(default=None, max_length=200)
    country: Optional[str] = Field(default=None, max_length=200)
    creator_id: Optional[str] = None
    min_rating: Optional[float] = Field(default=None, ge=0, le=5)
    viewer_id: Optional[str] = Field(
        default=None,
        description="When set, the viewer's own non-public places are visible too",
    )
    limit: int = Field(default_factory=lambda: settings.search_default_limit, ge=1)
    offset: int = Field(default=0, ge=0)

    @field_validator("query", "city", "country", "creator_id", "viewer_id")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value or None

    @field_validator("category", "tags", mode="before")
    @classmethod
    def _normalize_values(cls, value: object) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return _clean_values([value])
        if isinstance(value, (list, tuple, set, frozenset)):
            return _clean_values(list(value))
        raise ValueError("must be a list of strings")

    @field_validator("limit")
    @classmethod
    def _cap_limit(cls, value: int) -> int:
        if value > settings.search_max_limit:
            raise ValueError(f"limit must be at most {settings.search_max_limit}")
        return value
