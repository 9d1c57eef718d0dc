"""In-process stores used when Supabase is not configured, and by the tests."""

from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..models.domain import Driver, DriverRoute, DriverStatus, Order, OrderStatus
from .base import DriverNotFoundError, OrderNotFoundError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryOrderStore:
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = threading.Lock()

    def add(self, order: Order) -> Order:
        with self._lock:
            if order.created_at is None:
                order.created_at = _utcnow()
            self._orders[order.id] = copy.deepcopy(order)
        return order

    def create_order(self, items: Sequence[dict], delivery_address: Any) -> Order:
        order = Order(
            id=str(uuid.uuid4()),
            delivery_address=delivery_address,
            items=list(items),
            status=OrderStatus.PENDING,
        )
        return self.add(order)

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    def _require(self, order_id: str) -> Order:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order '{order_id}' not found")
        return order

    def mark_order_assigned(self, order_id: str, driver_id: str, assigned_at: datetime) -> None:
        with self._lock:
            order = self._require(order_id)
            order.driver_id = driver_id
            order.status = OrderStatus.ASSIGNED
            order.assigned_at = assigned_at

    def update_order_assignment(
        self, order_id: str, driver_id: str, sequence: int, estimated_delivery_time: datetime
    ) -> None:
        with self._lock:
            order = self._require(order_id)
            order.driver_id = driver_id
            order.delivery_sequence = sequence
            order.estimated_delivery_time = estimated_delivery_time

    def unassign_order(self, order_id: str) -> None:
        with self._lock:
            order = self._require(order_id)
            order.driver_id = None
            order.status = OrderStatus.PENDING
            order.assigned_at = None
            order.delivery_sequence = None
            order.estimated_delivery_time = None

    def get_orders_for_driver(self, driver_id: str, statuses: Iterable[OrderStatus]) -> list[Order]:
        wanted = set(statuses)
        with self._lock:
            orders = [
                copy.deepcopy(order)
                for order in self._orders.values()
                if order.driver_id == driver_id and order.status in wanted
            ]
        return sorted(orders, key=lambda order: order.created_at or datetime.min.replace(tzinfo=timezone.utc))


class InMemoryDriverStore:
    def __init__(self, drivers: Iterable[Driver] = ()) -> None:
        # Insertion order is the registry order.
        self._drivers: dict[str, Driver] = {}
        self._routes: dict[str, DriverRoute] = {}
        self._lock = threading.Lock()
        for driver in drivers:
            self.add(driver)

    def add(self, driver: Driver) -> Driver:
        with self._lock:
            self._drivers[driver.id] = copy.deepcopy(driver)
        return driver

    def get_drivers(self, statuses: Optional[Iterable[DriverStatus]] = None) -> list[Driver]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                copy.deepcopy(driver)
                for driver in self._drivers.values()
                if wanted is None or driver.status in wanted
            ]

    def get_driver(self, driver_id: str) -> Optional[Driver]:
        with self._lock:
            driver = self._drivers.get(driver_id)
            return copy.deepcopy(driver) if driver else None

    def update_driver(self, driver_id: str, patch: Mapping[str, Any]) -> None:
        with self._lock:
            driver = self._drivers.get(driver_id)
            if driver is None:
                raise DriverNotFoundError(f"Driver '{driver_id}' not found")
            for key, value in patch.items():
                if not hasattr(driver, key):
                    raise ValueError(f"Unknown driver field '{key}'")
                setattr(driver, key, value)

    def increment_load_if_below_capacity(self, driver_id: str) -> bool:
        with self._lock:
            driver = self._drivers.get(driver_id)
            if driver is None or not driver.has_capacity:
                return False
            driver.current_orders += 1
            driver.status = DriverStatus.BUSY
            return True

    def release_load(self, driver_id: str) -> None:
        with self._lock:
            driver = self._drivers.get(driver_id)
            if driver is None:
                raise DriverNotFoundError(f"Driver '{driver_id}' not found")
            driver.current_orders = max(driver.current_orders - 1, 0)
            if driver.current_orders == 0 and driver.status == DriverStatus.BUSY:
                driver.status = DriverStatus.AVAILABLE

    def get_driver_route(self, driver_id: str) -> Optional[DriverRoute]:
        with self._lock:
            route = self._routes.get(driver_id)
            return copy.deepcopy(route) if route else None

    def upsert_driver_route(self, route: DriverRoute) -> None:
        with self._lock:
            existing = self._routes.get(route.driver_id)
            stored = copy.deepcopy(route)
            if existing is not None and stored.created_at is None:
                stored.created_at = existing.created_at
            if stored.created_at is None:
                stored.created_at = stored.updated_at or _utcnow()
            self._routes[route.driver_id] = stored
