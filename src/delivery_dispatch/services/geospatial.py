"""Geospatial helper functions."""

from __future__ import annotations

import math
import re
import struct
from typing import Any, Mapping, Sequence

from shapely.geometry import Point, Polygon

from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0

# PostGIS EWKB point header: little-endian, type Point with SRID flag, SRID 4326.
EWKB_POINT_HEADER = "0101000020E6100000"
_EWKB_HEADER_LENGTH = 18
_WKT_POINT = re.compile(
    r"^\s*(?:SRID=\d+;)?\s*POINT\s*\(\s*([-+0-9.eE]+)\s+([-+0-9.eE]+)\s*\)\s*$",
    re.IGNORECASE,
)
_HEX = re.compile(r"^[0-9a-fA-F]+$")


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lon - a.lon)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def make_coordinate(lon: Any, lat: Any) -> Coordinate | None:
    """Build a validated coordinate, or None when the values are not usable."""
    if isinstance(lon, bool) or isinstance(lat, bool):
        return None
    try:
        lon_value = float(lon)
        lat_value = float(lat)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lon_value) and math.isfinite(lat_value)):
        return None
    if not (-180.0 <= lon_value <= 180.0 and -90.0 <= lat_value <= 90.0):
        return None
    return Coordinate(lon=lon_value, lat=lat_value)


def _from_pair(value: Sequence[Any]) -> Coordinate | None:
    if len(value) != 2:
        return None
    return make_coordinate(value[0], value[1])


def _from_ewkb_hex(value: str) -> Coordinate | None:
    payload = value[_EWKB_HEADER_LENGTH:_EWKB_HEADER_LENGTH + 32]
    if len(payload) < 32:
        return None
    try:
        lon, lat = struct.unpack("<dd", bytes.fromhex(payload))
    except (ValueError, struct.error):
        return None
    return make_coordinate(lon, lat)


def parse_coordinate(raw: Any) -> Coordinate | None:
    """Normalize GeoJSON, WKT, hex EWKB or a raw (lon, lat) pair to a Coordinate.

    Returns None for anything malformed or out of range instead of raising.
    """
    if raw is None:
        return None
    if isinstance(raw, Coordinate):
        return make_coordinate(raw.lon, raw.lat)
    if isinstance(raw, Mapping):
        if raw.get("type") not in (None, "Point"):
            return None
        coordinates = raw.get("coordinates")
        if isinstance(coordinates, (list, tuple)):
            return _from_pair(coordinates)
        return None
    if isinstance(raw, str):
        match = _WKT_POINT.match(raw)
        if match:
            return make_coordinate(match.group(1), match.group(2))
        candidate = raw.strip()
        if candidate.upper().startswith(EWKB_POINT_HEADER) and _HEX.match(candidate):
            return _from_ewkb_hex(candidate)
        return None
    if isinstance(raw, (list, tuple)):
        return _from_pair(raw)
    return None


def to_geojson(coordinate: Coordinate) -> dict:
    return {"type": "Point", "coordinates": [coordinate.lon, coordinate.lat]}


def to_wkt(coordinate: Coordinate) -> str:
    return f"POINT({coordinate.lon!r} {coordinate.lat!r})"


def to_ewkb_hex(coordinate: Coordinate) -> str:
    """Encode a coordinate the way PostGIS returns geography(Point, 4326) columns."""
    return EWKB_POINT_HEADER + struct.pack("<dd", coordinate.lon, coordinate.lat).hex().upper()


def delivery_fee_for_distance(distance_km: float) -> int:
    """Delivery fee in pesos for a supplier-to-customer distance."""
    if distance_km < 3:
        return 50
    if distance_km < 5:
        return 75
    if distance_km < 10:
        return 100
    return math.ceil(distance_km * 15)


def is_within_delivery_radius(coordinate: Coordinate, origin: Coordinate, max_distance_km: float = 10.0) -> bool:
    return haversine_km(origin, coordinate) <= max_distance_km


def point_in_polygon(coordinate: Coordinate, polygon_coords: Sequence[Coordinate]) -> bool:
    """Return True if the point is inside the polygon given as (lon, lat) vertices."""

    if len(polygon_coords) < 3:
        return False
    polygon = Polygon([(vertex.lon, vertex.lat) for vertex in polygon_coords])
    return polygon.contains(Point(coordinate.lon, coordinate.lat))


def navigation_url(origin: Coordinate, stops: Sequence[Coordinate]) -> str:
    """Google Maps turn-by-turn link visiting the stops in the given order."""
    if not stops:
        raise ValueError("At least one stop is required for navigation.")

    destination = stops[-1]
    waypoints = "|".join(f"{stop.lat},{stop.lon}" for stop in stops[:-1])
    url = (
        "https://www.google.com/maps/dir/?api=1"
        f"&origin={origin.lat},{origin.lon}"
        f"&destination={destination.lat},{destination.lon}"
    )
    if waypoints:
        url += f"&waypoints={waypoints}"
    return url + "&travelmode=driving"
