"""Order dispatch: reassignment check, fresh assignment and route commit."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from ...config import Settings, settings
from ...models.domain import (
    IN_FLIGHT_STATUSES,
    Coordinate,
    DeliveryAssignment,
    Driver,
    DriverRoute,
    OrderStatus,
)
from ...persistence.base import DriverStore, OrderNotFoundError, OrderStore
from ..drivers.registry import DriverRegistry
from ..geospatial import haversine_km, parse_coordinate
from ..routing.optimizer import RouteOptimizer
from .errors import CapacityConflictError, DispatchError, InvalidAddressError, NoAvailableDriversError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class DriverLocks:
    """One lock per driver; assignments to different drivers never wait on each other."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def for_driver(self, driver_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(driver_id)
            if lock is None:
                lock = self._locks[driver_id] = threading.Lock()
            return lock


@dataclass(slots=True)
class ReassignmentCandidate:
    driver: Driver
    location: Coordinate
    route: DriverRoute


class DispatchEngine:
    def __init__(
        self,
        registry: DriverRegistry,
        orders: OrderStore,
        drivers: DriverStore,
        optimizer: RouteOptimizer,
        config: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        locks: DriverLocks | None = None,
    ) -> None:
        self.registry = registry
        self.orders = orders
        self.drivers = drivers
        self.optimizer = optimizer
        self.provider = optimizer.provider
        self.config = config or settings
        self.clock = clock or _utcnow
        self.locks = locks or DriverLocks()

    @property
    def supplier_location(self) -> Coordinate:
        return self.optimizer.supplier_location

    def handle_new_order(self, order_id: str, delivery_address: Any) -> DeliveryAssignment:
        """Assign a new order to a driver and rebuild that driver's route.

        Raises:
            InvalidAddressError: the address has no usable coordinate.
            NoAvailableDriversError: no driver can take the order.
        """
        location = parse_coordinate(delivery_address)
        if location is None:
            raise InvalidAddressError(f"Invalid delivery address coordinates for order {order_id}")

        order = self.orders.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order '{order_id}' not found")
        if order.driver_id is not None or order.status != OrderStatus.PENDING:
            raise DispatchError(f"Order {order_id} is already {order.status.value}; dispatch runs once per order")

        attempts = self.config.max_assignment_attempts
        for attempt in range(1, attempts + 1):
            driver_id = self.check_dynamic_reassignment(order_id, location)
            if driver_id:
                logger.info(f"Reassigning order {order_id} to driver {driver_id} for efficiency")
            else:
                driver_id = self.registry.find_best_driver_for_order(location)
                logger.info(f"Assigning order {order_id} to best available driver {driver_id}")

            try:
                return self.assign_order_to_driver(order_id, driver_id)
            except CapacityConflictError as e:
                logger.warning(f"{e} (attempt {attempt}/{attempts}), re-evaluating drivers")

        raise NoAvailableDriversError(
            f"No available drivers for order {order_id} after {attempts} assignment attempts"
        )

    def _reassignment_pool(self, now: datetime) -> list[ReassignmentCandidate]:
        window = timedelta(minutes=self.config.max_time_window_minutes)
        pool: list[ReassignmentCandidate] = []
        for driver in self.registry.reassignment_candidates():
            route = self.drivers.get_driver_route(driver.id)
            if route is None or route.updated_at is None:
                continue
            if now - _aware(route.updated_at) > window:
                continue  # left the supplier too long ago
            if driver.current_location is None:
                continue
            if haversine_km(driver.current_location, self.supplier_location) > self.config.max_return_distance_km:
                continue
            pool.append(ReassignmentCandidate(driver=driver, location=driver.current_location, route=route))
        return pool

    def _within_return_distance(self, pool: list[ReassignmentCandidate]) -> list[ReassignmentCandidate]:
        max_return_m = self.config.max_return_distance_km * 1000
        if len(pool) >= self.config.batch_distance_threshold:
            matrix = self.provider.batch_distances([candidate.location for candidate in pool], [self.supplier_location])
            return [candidate for candidate, row in zip(pool, matrix) if row[0].distance_m <= max_return_m]
        return [
            candidate
            for candidate in pool
            if self.provider.driving_distance(candidate.location, self.supplier_location).distance_m <= max_return_m
        ]

    def check_dynamic_reassignment(self, order_id: str, location: Coordinate) -> str | None:
        """First in-flight driver whose route gets sufficiently shorter with the new stop.

        Candidates are evaluated in registry order and the first one clearing
        the efficiency and delay thresholds wins.
        """
        pool = self._reassignment_pool(self.clock())
        if not pool:
            return None

        for candidate in self._within_return_distance(pool):
            current_km = candidate.route.total_distance
            if current_km <= 0:
                continue

            stops = self.registry.in_flight_locations(candidate.driver.id)
            added_orders = len(stops) + 1 - len(candidate.route.route_sequence)
            if added_orders > self.config.max_additional_orders_per_reassignment:
                logger.debug(
                    f"Driver {candidate.driver.id} route is missing stops; reassignment would add {added_orders} orders"
                )
                continue

            simulated = self.optimizer.optimize([*stops, location])
            new_km = simulated.total_distance_m / 1000
            efficiency_gain = (current_km - new_km) / current_km
            added_delay_min = simulated.total_duration_s / 60 - candidate.route.estimated_duration

            if efficiency_gain < self.config.min_efficiency_gain:
                logger.debug(f"Driver {candidate.driver.id}: efficiency gain {efficiency_gain:.2f} below threshold")
                continue
            if added_delay_min > self.config.max_delay_minutes:
                logger.debug(f"Driver {candidate.driver.id}: reassignment delays existing stops by {added_delay_min:.1f}min")
                continue

            logger.info(
                f"Reassignment beneficial for order {order_id}: driver {candidate.driver.id}, "
                f"{efficiency_gain:.2f} efficiency gain ({current_km:.2f}km -> {new_km:.2f}km)"
            )
            return candidate.driver.id

        return None

    def assign_order_to_driver(self, order_id: str, driver_id: str) -> DeliveryAssignment:
        """Commit an assignment and reschedule every stop on the driver's new route.

        Serialized per driver. Raises CapacityConflictError when the driver
        filled up after it was selected. If any later write fails, the load
        increment and the order assignment are undone before the error
        propagates.
        """
        with self.locks.for_driver(driver_id):
            if not self.drivers.increment_load_if_below_capacity(driver_id):
                raise CapacityConflictError(f"Driver {driver_id} has no capacity left for order {order_id}")

            now = self.clock()
            route_written = False
            try:
                self.orders.mark_order_assigned(order_id, driver_id, now)

                in_flight = self.orders.get_orders_for_driver(driver_id, IN_FLIGHT_STATUSES)
                route = self.optimizer.build_route(driver_id, in_flight)
                route.updated_at = now
                self.drivers.upsert_driver_route(route)
                route_written = True

                assignment: DeliveryAssignment | None = None
                per_stop = timedelta(minutes=self.config.per_stop_minutes)
                for position, sequenced_order_id in enumerate(route.route_sequence, start=1):
                    eta = now + per_stop * position
                    self.orders.update_order_assignment(sequenced_order_id, driver_id, position, eta)
                    if sequenced_order_id == order_id:
                        assignment = DeliveryAssignment(
                            order_id=order_id,
                            driver_id=driver_id,
                            estimated_delivery_time=eta,
                            delivery_sequence=position,
                        )
            except Exception as e:
                logger.error(f"Committing order {order_id} to driver {driver_id} failed, rolling back: {e}")
                self._roll_back_assignment(order_id, driver_id, now, route_written)
                raise

        if assignment is None:
            logger.warning(f"Order {order_id} is not on driver {driver_id}'s rebuilt route; check its stored address")
            assignment = DeliveryAssignment(
                order_id=order_id,
                driver_id=driver_id,
                estimated_delivery_time=now + per_stop,
                delivery_sequence=len(route.route_sequence) + 1,
            )
        return assignment

    def _roll_back_assignment(self, order_id: str, driver_id: str, now: datetime, route_written: bool) -> None:
        # Caller holds the driver lock and re-raises the original error.
        try:
            self.orders.unassign_order(order_id)
            self.drivers.release_load(driver_id)
            if route_written:
                remaining = self.orders.get_orders_for_driver(driver_id, IN_FLIGHT_STATUSES)
                route = self.optimizer.build_route(driver_id, remaining)
                route.updated_at = now
                self.drivers.upsert_driver_route(route)
        except Exception as e:
            logger.error(f"Rollback of order {order_id} on driver {driver_id} failed, reconcile manually: {e}")
