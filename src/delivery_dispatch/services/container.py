"""Process-wide service instances, wired from settings.

Each getter is cached so the API shares one route cache, one set of driver
locks and one pair of stores. Tests replace them through FastAPI's
``dependency_overrides`` or by calling ``reset_container()``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from ..config import settings
from ..db.supabase import get_supabase_client
from ..persistence.base import DriverStore, OrderStore
from ..persistence.database import SupabaseDriverStore, SupabaseOrderStore
from ..persistence.memory import InMemoryDriverStore, InMemoryOrderStore
from .dispatch.engine import DispatchEngine
from .drivers.registry import DriverRegistry
from .geospatial import make_coordinate
from .routing.cache import RouteCache
from .routing.distance import DistanceProvider
from .routing.optimizer import RouteOptimizer
from .routing.osrm_client import OSRMClient
from .zones import DeliveryZone, DeliveryZoneProvider, StaticDeliveryZoneProvider, SupabaseDeliveryZoneProvider

logger = logging.getLogger(__name__)


@lru_cache()
def get_route_cache() -> RouteCache:
    return RouteCache(settings.route_cache_ttl)


@lru_cache()
def get_osrm_client() -> Optional[OSRMClient]:
    if not settings.osrm_base_url:
        logger.warning("OSRM base URL not configured, distances fall back to straight-line estimates")
        return None
    return OSRMClient()


@lru_cache()
def get_distance_provider() -> DistanceProvider:
    return DistanceProvider(get_osrm_client(), get_route_cache(), settings)


@lru_cache()
def get_stores() -> tuple[OrderStore, DriverStore]:
    client = get_supabase_client()
    if client is None:
        logger.warning("Using in-memory order and driver stores; data is lost on restart")
        return InMemoryOrderStore(), InMemoryDriverStore()
    return SupabaseOrderStore(client), SupabaseDriverStore(client, settings)


def get_order_store() -> OrderStore:
    return get_stores()[0]


def get_driver_store() -> DriverStore:
    return get_stores()[1]


@lru_cache()
def get_registry() -> DriverRegistry:
    orders, drivers = get_stores()
    return DriverRegistry(drivers, orders)


@lru_cache()
def get_optimizer() -> RouteOptimizer:
    return RouteOptimizer(get_distance_provider(), settings)


@lru_cache()
def get_dispatch_engine() -> DispatchEngine:
    orders, drivers = get_stores()
    return DispatchEngine(get_registry(), orders, drivers, get_optimizer(), settings)


def _zone_provider() -> Optional[DeliveryZoneProvider]:
    if settings.delivery_zone_polygon:
        vertices = [make_coordinate(lon, lat) for lon, lat in settings.delivery_zone_polygon]
        if any(vertex is None for vertex in vertices):
            raise ValueError("delivery_zone_polygon contains an invalid coordinate")
        return StaticDeliveryZoneProvider(vertices)
    client = get_supabase_client()
    if client is not None:
        return SupabaseDeliveryZoneProvider(client)
    return None


@lru_cache()
def get_delivery_zone() -> DeliveryZone:
    return DeliveryZone(_zone_provider(), settings)


def reset_container() -> None:
    for getter in (
        get_route_cache,
        get_osrm_client,
        get_distance_provider,
        get_stores,
        get_registry,
        get_optimizer,
        get_dispatch_engine,
        get_delivery_zone,
    ):
        getter.cache_clear()
