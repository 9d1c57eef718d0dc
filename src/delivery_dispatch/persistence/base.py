"""Store contracts the dispatch core reads and writes through."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

from ..models.domain import Driver, DriverRoute, DriverStatus, Order, OrderStatus


class OrderNotFoundError(LookupError):
    pass


class DriverNotFoundError(LookupError):
    pass


class OrderStore(Protocol):
    def create_order(self, items: Sequence[dict], delivery_address: Any) -> Order:
        ...

    def get_order(self, order_id: str) -> Optional[Order]:
        ...

    def mark_order_assigned(self, order_id: str, driver_id: str, assigned_at: datetime) -> None:
        ...

    def update_order_assignment(
        self, order_id: str, driver_id: str, sequence: int, estimated_delivery_time: datetime
    ) -> None:
        ...

    def get_orders_for_driver(self, driver_id: str, statuses: Iterable[OrderStatus]) -> list[Order]:
        """Orders of one driver in the given statuses, oldest first."""
        ...

    def unassign_order(self, order_id: str) -> None:
        """Return an order to pending with no driver, sequence or ETA."""
        ...


class DriverStore(Protocol):
    def get_drivers(self, statuses: Optional[Iterable[DriverStatus]] = None) -> list[Driver]:
        ...

    def get_driver(self, driver_id: str) -> Optional[Driver]:
        ...

    def update_driver(self, driver_id: str, patch: Mapping[str, Any]) -> None:
        ...

    def increment_load_if_below_capacity(self, driver_id: str) -> bool:
        """Atomically add one order to the driver and mark it busy.

        Returns False, changing nothing, when the driver is already full or the
        row changed underneath the update.
        """
        ...

    def release_load(self, driver_id: str) -> None:
        """Take one order off the driver, never below zero; an empty driver is available again."""
        ...

    def get_driver_route(self, driver_id: str) -> Optional[DriverRoute]:
        ...

    def upsert_driver_route(self, route: DriverRoute) -> None:
        ...
