"""Delivery zone containment with a cached polygon."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from supabase import Client

from ..config import Settings, settings
from ..models.domain import Coordinate
from .geospatial import is_within_delivery_radius, make_coordinate, point_in_polygon
from .routing.cache import Clock, TTLCache

logger = logging.getLogger(__name__)

_POLYGON_KEY = "delivery-zone-polygon"


class DeliveryZoneProvider(Protocol):
    def polygon(self) -> Optional[list[Coordinate]]:
        ...

    def contains_point(self, coordinate: Coordinate) -> bool:
        ...


class SupabaseDeliveryZoneProvider:
    """Zone stored in PostGIS, queried through Supabase RPC functions."""

    def __init__(self, client: Client) -> None:
        self.client = client

    def polygon(self) -> Optional[list[Coordinate]]:
        response = self.client.rpc("get_delivery_zone_geojson").execute()
        geojson = response.data
        if not geojson or not geojson.get("coordinates"):
            return None
        ring = geojson["coordinates"][0]
        return [
            coordinate
            for coordinate in (make_coordinate(vertex[0], vertex[1]) for vertex in ring)
            if coordinate is not None
        ]

    def contains_point(self, coordinate: Coordinate) -> bool:
        response = self.client.rpc(
            "is_within_delivery_zone",
            {"check_lon": coordinate.lon, "check_lat": coordinate.lat},
        ).execute()
        return bool(response.data)


class StaticDeliveryZoneProvider:
    """Zone configured as a fixed (lon, lat) polygon, checked locally with shapely."""

    def __init__(self, vertices: Sequence[Coordinate]) -> None:
        if len(vertices) < 3:
            raise ValueError("A delivery zone polygon needs at least 3 vertices.")
        self.vertices = list(vertices)

    def polygon(self) -> Optional[list[Coordinate]]:
        return list(self.vertices)

    def contains_point(self, coordinate: Coordinate) -> bool:
        return point_in_polygon(coordinate, self.vertices)


class DeliveryZone:
    """Answers "do we deliver here?".

    The polygon is fetched once and reused for ``delivery_zone_cache_ttl``
    seconds. Without a provider, a radius around the supplier is used instead.
    """

    def __init__(
        self,
        provider: DeliveryZoneProvider | None,
        config: Settings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.provider = provider
        self.config = config or settings
        self._cache: TTLCache[list[Coordinate]] = TTLCache(self.config.delivery_zone_cache_ttl, clock)
        lon, lat = self.config.supplier_location
        self.supplier_location = Coordinate(lon=lon, lat=lat)

    def polygon(self) -> Optional[list[Coordinate]]:
        cached = self._cache.get(_POLYGON_KEY)
        if cached is not None:
            logger.debug("Using cached delivery zone polygon")
            return cached
        if self.provider is None:
            return None
        try:
            polygon = self.provider.polygon()
        except Exception as e:
            logger.error(f"Failed to fetch delivery zone polygon: {e}")
            return None
        if polygon:
            self._cache.set(_POLYGON_KEY, polygon)
            logger.info("Delivery zone polygon fetched and cached")
        return polygon

    def is_within_delivery_zone(self, coordinate: Coordinate) -> bool:
        if self.provider is None:
            return is_within_delivery_radius(coordinate, self.supplier_location, self.config.max_delivery_radius_km)
        try:
            return self.provider.contains_point(coordinate)
        except Exception as e:
            logger.warning(f"Delivery zone service failed: {e}. Checking against the cached polygon.")
        polygon = self.polygon()
        if not polygon:
            return False
        return point_in_polygon(coordinate, polygon)

    def invalidate(self) -> None:
        self._cache.clear()
