"""Driver availability queries and geographic-clustering driver selection."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from ...models.domain import IN_FLIGHT_STATUSES, Coordinate, Driver, DriverStatus
from ...persistence.base import DriverNotFoundError, DriverStore, OrderStore
from ..dispatch.errors import NoAvailableDriversError
from ..geospatial import haversine_km, parse_coordinate

logger = logging.getLogger(__name__)

ASSIGNABLE_STATUSES = (DriverStatus.AVAILABLE, DriverStatus.BUSY)


class DriverRegistry:
    def __init__(self, drivers: DriverStore, orders: OrderStore) -> None:
        self.drivers = drivers
        self.orders = orders

    def get_driver(self, driver_id: str) -> Driver | None:
        return self.drivers.get_driver(driver_id)

    def available_drivers(self) -> list[Driver]:
        """Available or busy drivers with spare capacity, least loaded first.

        The ordering only breaks ties; callers rank by geographic fit.
        """
        eligible = [driver for driver in self.drivers.get_drivers(ASSIGNABLE_STATUSES) if driver.has_capacity]
        return sorted(eligible, key=lambda driver: driver.current_orders)

    def reassignment_candidates(self) -> list[Driver]:
        """Busy drivers that can still take an order, in registry order."""
        return [driver for driver in self.drivers.get_drivers([DriverStatus.BUSY]) if driver.has_capacity]

    def in_flight_locations(self, driver_id: str) -> list[Coordinate]:
        locations = []
        for order in self.orders.get_orders_for_driver(driver_id, IN_FLIGHT_STATUSES):
            coordinate = parse_coordinate(order.delivery_address)
            if coordinate is not None:
                locations.append(coordinate)
        return locations

    def average_distance_to_existing_orders(self, driver_id: str, location: Coordinate) -> float:
        """Mean straight-line km from the driver's in-flight stops; inf when it has none."""
        locations = self.in_flight_locations(driver_id)
        if not locations:
            return math.inf
        return sum(haversine_km(existing, location) for existing in locations) / len(locations)

    def find_best_driver_for_order(self, location: Coordinate) -> str:
        """Driver whose current stops cluster closest to ``location``.

        A driver with no stops (average ``inf``) is wide open and ranks ahead of
        any finite average. Ties keep the least-loaded ordering.
        """
        available = self.available_drivers()
        if not available:
            raise NoAvailableDriversError("No available drivers")

        best_driver = available[0]
        best_key = (1, math.inf)
        for driver in available:
            average = self.average_distance_to_existing_orders(driver.id, location)
            key = (0, 0.0) if math.isinf(average) else (1, average)
            if key < best_key:
                best_driver, best_key = driver, key

        logger.info(
            f"Fresh assignment picked driver {best_driver.id} "
            f"(average distance to existing stops: {'none' if best_key[0] == 0 else f'{best_key[1]:.2f}km'})"
        )
        return best_driver.id

    def update_location(self, driver_id: str, coordinate: Coordinate, at: datetime | None = None) -> None:
        """Location feed input: plain state update, no dispatch side effects."""
        if self.drivers.get_driver(driver_id) is None:
            raise DriverNotFoundError(f"Driver '{driver_id}' not found")
        self.drivers.update_driver(
            driver_id,
            {"current_location": coordinate, "last_location_update": at or datetime.now(timezone.utc)},
        )
