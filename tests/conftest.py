from dataclasses import dataclass
from datetime import datetime, timezone

import pytest

from src.delivery_dispatch.config import Settings
from src.delivery_dispatch.models.domain import Coordinate, Driver, DriverStatus
from src.delivery_dispatch.persistence.memory import InMemoryDriverStore, InMemoryOrderStore
from src.delivery_dispatch.services.dispatch.engine import DispatchEngine
from src.delivery_dispatch.services.drivers.registry import DriverRegistry
from src.delivery_dispatch.services.routing.cache import RouteCache
from src.delivery_dispatch.services.routing.distance import DistanceProvider
from src.delivery_dispatch.services.routing.optimizer import RouteOptimizer

SUPPLIER = Coordinate(lon=120.9025, lat=14.4444)


@pytest.fixture
def config() -> Settings:
    return Settings(
        osrm_base_url=None,
        supabase_url=None,
        supabase_key=None,
        delivery_zone_polygon=None,
        supplier_location=SUPPLIER.as_pair(),
    )


def offset(lon_delta: float, lat_delta: float, origin: Coordinate = SUPPLIER) -> Coordinate:
    return Coordinate(lon=origin.lon + lon_delta, lat=origin.lat + lat_delta)


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@dataclass
class DispatchStack:
    orders: InMemoryOrderStore
    drivers: InMemoryDriverStore
    registry: DriverRegistry
    optimizer: RouteOptimizer
    engine: DispatchEngine
    cache: RouteCache


def build_stack(config: Settings, drivers=(), clock=lambda: NOW) -> DispatchStack:
    orders = InMemoryOrderStore()
    driver_store = InMemoryDriverStore(drivers)
    cache = RouteCache(ttl_seconds=config.route_cache_ttl)
    registry = DriverRegistry(driver_store, orders)
    optimizer = RouteOptimizer(DistanceProvider(None, cache, config), config)
    engine = DispatchEngine(registry, orders, driver_store, optimizer, config, clock=clock)
    return DispatchStack(orders, driver_store, registry, optimizer, engine, cache)


def driver(driver_id: str, status: DriverStatus = DriverStatus.AVAILABLE, **kwargs) -> Driver:
    return Driver(id=driver_id, name=f"Driver {driver_id}", status=status, **kwargs)
