# placesearch/repositories/__init__.py
"""Data access for the search read path."""

from .place_search_repository import PlaceSearchRepository
from .region_boundary_repository import RegionBoundaryRepository

__all__ = ["PlaceSearchRepository", "RegionBoundaryRepository"]
