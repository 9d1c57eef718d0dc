"""Full route rebuilds for a driver's in-flight orders."""

from __future__ import annotations

import logging
from typing import Sequence

from ...config import Settings, settings
from ...models.domain import Coordinate, DriverRoute, Order, RouteData
from ..geospatial import parse_coordinate
from .distance import DistanceProvider
from .models import OptimizedRoute

logger = logging.getLogger(__name__)


def supplier_coordinate(config: Settings | None = None) -> Coordinate:
    lon, lat = (config or settings).supplier_location
    return Coordinate(lon=lon, lat=lat)


class RouteOptimizer:
    """Computes visiting order and totals for routes that start at the supplier."""

    def __init__(self, provider: DistanceProvider, config: Settings | None = None) -> None:
        self.provider = provider
        self.config = config or settings
        self.supplier_location = supplier_coordinate(self.config)

    def optimize(self, stops: Sequence[Coordinate]) -> OptimizedRoute:
        return self.provider.optimize_multi_stop(self.supplier_location, stops)

    def build_route(self, driver_id: str, orders: Sequence[Order]) -> DriverRoute:
        """Rebuild the whole route from scratch; never patched incrementally."""
        order_ids: list[str] = []
        stops: list[Coordinate] = []
        for order in orders:
            coordinate = parse_coordinate(order.delivery_address)
            if coordinate is None:
                logger.warning(f"Order {order.id} has no usable delivery coordinate, leaving it off driver {driver_id}'s route")
                continue
            order_ids.append(order.id)
            stops.append(coordinate)

        if not stops:
            return DriverRoute(
                driver_id=driver_id,
                route_sequence=[],
                route_data=RouteData(coordinates=[self.supplier_location]),
                total_distance=0.0,
                estimated_duration=0.0,
                supplier_location=self.supplier_location,
            )

        optimized = self.optimize(stops)
        coordinates = optimized.coordinates or [self.supplier_location, *(stops[i] for i in optimized.sequence)]
        return DriverRoute(
            driver_id=driver_id,
            route_sequence=[order_ids[index] for index in optimized.sequence],
            route_data=RouteData(
                coordinates=list(coordinates),
                stops=[stops[index] for index in optimized.sequence],
                distances=list(optimized.leg_distances),
                durations=list(optimized.leg_durations),
            ),
            total_distance=round(optimized.total_distance_m / 1000, 2),
            estimated_duration=float(round(optimized.total_duration_s / 60)),
            supplier_location=self.supplier_location,
        )
