# placesearch/services/search/result_mapper.py
"""
Map place search rows into Place read models.

Geometry arrives as ST_AsGeoJSON text. A payload that cannot be decoded
leaves that geometry field empty; the row itself is still returned.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, List, Mapping, Optional

from ...schemas.place import GeoPoint, GeoPolygon, Place
from .metrics import record_geometry_decode_failure

logger = logging.getLogger(__name__)


class GeometryDecodeError(ValueError):
    """Raised when a GeoJSON payload does not have the expected shape."""


def _load_geojson(payload: Any) -> Optional[Mapping[str, Any]]:
    if payload is None:
        return None
    if isinstance(payload, Mapping):
        return payload
    if isinstance(payload, (bytes, bytearray, memoryview)):
        payload = bytes(payload).decode("utf-8")
    if isinstance(payload, str):
        if not payload.strip():
            return None
        try:
            decoded = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise GeometryDecodeError(f"invalid JSON: {exc.msg}") from exc
        if not isinstance(decoded, Mapping):
            raise GeometryDecodeError("GeoJSON payload is not an object")
        return decoded
    raise GeometryDecodeError(f"unsupported payload type {type(payload).__name__}")


def _position(value: Any) -> List[float]:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        raise GeometryDecodeError("position must have at least 2 numbers")
    try:
        return [float(value[0]), float(value[1])]
    except (TypeError, ValueError) as exc:
        raise GeometryDecodeError("position contains non-numeric values") from exc


def decode_point(payload: Any) -> Optional[GeoPoint]:
    geojson = _load_geojson(payload)
    if geojson is None:
        return None
    if geojson.get("type") != "Point":
        raise GeometryDecodeError(f"expected Point, got {geojson.get('type')!r}")
    return GeoPoint(coordinates=_position(geojson.get("coordinates")))


def decode_polygon(payload: Any) -> Optional[GeoPolygon]:
    geojson = _load_geojson(payload)
    if geojson is None:
        return None
    if geojson.get("type") != "Polygon":
        raise GeometryDecodeError(f"expected Polygon, got {geojson.get('type')!r}")
    rings = geojson.get("coordinates")
    if not isinstance(rings, (list, tuple)) or not rings:
        raise GeometryDecodeError("polygon has no rings")
    coordinates = []
    for ring in rings:
        if not isinstance(ring, (list, tuple)):
            raise GeometryDecodeError("polygon ring is not a list")
        coordinates.append([_position(position) for position in ring])
    return GeoPolygon(coordinates=coordinates)


def _as_float(value: Any) -> Optional[float]:
    """Numeric columns arrive as Decimal from psycopg2."""
    return None if value is None else float(value)


class PlaceRowMapper:
    """Decode search rows (mappings keyed by column name) into Place objects."""

    def map_row(self, row: Mapping[str, Any]) -> Place:
        place_id = row.get("id")
        return Place(
            id=place_id,
            name=row.get("name") or "",
            type=row.get("type") or "",
            description=row.get("description"),
            parent_id=row.get("parent_id"),
            location=self._decode(place_id, "location", decode_point, row.get("location")),
            bounds=self._decode(place_id, "bounds", decode_polygon, row.get("bounds")),
            street_address=row.get("street_address"),
            city=row.get("city"),
            state=row.get("state"),
            country=row.get("country"),
            postal_code=row.get("postal_code"),
            created_by=row.get("created_by"),
            category=list(row.get("category") or []),
            tags=list(row.get("tags") or []),
            average_rating=_as_float(row.get("average_rating")),
            rating_count=int(row.get("rating_count") or 0),
            privacy=row.get("privacy"),
            status=row.get("status"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            distance_m=_as_float(row.get("distance_m")),
        )

    def map_rows(self, rows: Iterable[Mapping[str, Any]]) -> List[Place]:
        return [self.map_row(row) for row in rows]

    @staticmethod
    def _decode(place_id: Any, column: str, decoder: Callable[[Any], Any], payload: Any) -> Any:
        try:
            return decoder(payload)
        except (GeometryDecodeError, UnicodeDecodeError) as exc:
            logger.warning(f"Could not decode {column} geometry for place {place_id}: {exc}")
            record_geometry_decode_failure(column)
            return None
