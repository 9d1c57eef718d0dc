"""Domain models for drivers, orders and driver routes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A (longitude, latitude) pair in decimal degrees, GeoJSON order."""

    lon: float
    lat: float

    def as_pair(self) -> tuple[float, float]:
        return (self.lon, self.lat)


class DriverStatus(str, Enum):
    AVAILABLE = "available"
    BUSY = "busy"
    ON_DELIVERY = "on_delivery"
    OFFLINE = "offline"


class OrderStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    PREPARING = "preparing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Orders that still occupy a slot on the driver's route.
IN_FLIGHT_STATUSES: tuple[OrderStatus, ...] = (OrderStatus.ASSIGNED, OrderStatus.PREPARING)


@dataclass(slots=True)
class Driver:
    """A delivery driver with capacity and last known position."""

    id: str
    name: str
    status: DriverStatus
    current_orders: int = 0
    max_concurrent_orders: int = 3
    phone: Optional[str] = None
    email: Optional[str] = None
    current_location: Optional[Coordinate] = None
    last_location_update: Optional[datetime] = None

    @property
    def has_capacity(self) -> bool:
        return self.current_orders < self.max_concurrent_orders


@dataclass(slots=True)
class RouteData:
    """Geometry for a driver route.

    ``coordinates`` is display geometry starting at the supplier, possibly a full
    road polyline. ``stops`` holds only the delivery points, in visiting order.
    """

    coordinates: list[Coordinate] = field(default_factory=list)
    stops: list[Coordinate] = field(default_factory=list)
    distances: list[float] = field(default_factory=list)
    durations: list[float] = field(default_factory=list)


@dataclass(slots=True)
class DriverRoute:
    driver_id: str
    route_sequence: list[str]
    route_data: RouteData
    total_distance: float
    estimated_duration: float
    supplier_location: Coordinate
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(slots=True)
class Order:
    """Delivery-relevant view of an order owned by order management."""

    id: str
    delivery_address: Any
    status: OrderStatus = OrderStatus.PENDING
    items: list[dict] = field(default_factory=list)
    driver_id: Optional[str] = None
    delivery_sequence: Optional[int] = None
    estimated_delivery_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None


@dataclass(slots=True)
class DeliveryAssignment:
    order_id: str
    driver_id: str
    estimated_delivery_time: datetime
    delivery_sequence: int
