"""Supabase-backed order and driver stores."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence

from supabase import Client

from ..config import Settings, settings
from ..models.domain import (
    Coordinate,
    Driver,
    DriverRoute,
    DriverStatus,
    Order,
    OrderStatus,
    RouteData,
)
from ..services.geospatial import parse_coordinate, to_wkt
from .base import DriverNotFoundError

logger = logging.getLogger(__name__)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Ignoring unparseable timestamp '{value}'")
        return None


def _serialize(value: Any) -> Any:
    if isinstance(value, Coordinate):
        return to_wkt(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def _row_to_order(row: Mapping[str, Any]) -> Order:
    return Order(
        id=str(row["id"]),
        delivery_address=row.get("delivery_address"),
        status=OrderStatus(row.get("status") or OrderStatus.PENDING.value),
        items=list(row.get("items") or []),
        driver_id=row.get("driver_id"),
        delivery_sequence=row.get("delivery_sequence"),
        estimated_delivery_time=_parse_timestamp(row.get("estimated_delivery_time")),
        created_at=_parse_timestamp(row.get("created_at")),
        assigned_at=_parse_timestamp(row.get("assigned_at")),
    )


def _parse_coordinates(raw_values: Any) -> list[Coordinate]:
    parsed = (parse_coordinate(raw) for raw in raw_values or [])
    return [coordinate for coordinate in parsed if coordinate is not None]


def _row_to_route(row: Mapping[str, Any]) -> DriverRoute:
    route_data = row.get("route_data") or {}
    supplier = parse_coordinate(row.get("supplier_location"))
    if supplier is None:
        lon, lat = settings.supplier_location
        supplier = Coordinate(lon=lon, lat=lat)
    return DriverRoute(
        driver_id=str(row["driver_id"]),
        route_sequence=[str(order_id) for order_id in row.get("route_sequence") or []],
        route_data=RouteData(
            coordinates=_parse_coordinates(route_data.get("coordinates")),
            stops=_parse_coordinates(route_data.get("stops")),
            distances=list(route_data.get("distances", [])),
            durations=list(route_data.get("durations", [])),
        ),
        total_distance=float(row.get("total_distance") or 0.0),
        estimated_duration=float(row.get("estimated_duration") or 0.0),
        supplier_location=supplier,
        created_at=_parse_timestamp(row.get("created_at")),
        updated_at=_parse_timestamp(row.get("updated_at")),
    )


def _route_to_row(route: DriverRoute) -> dict[str, Any]:
    row = {
        "driver_id": route.driver_id,
        "route_sequence": list(route.route_sequence),
        "route_data": {
            "coordinates": [list(coordinate.as_pair()) for coordinate in route.route_data.coordinates],
            "stops": [list(coordinate.as_pair()) for coordinate in route.route_data.stops],
            "distances": list(route.route_data.distances),
            "durations": list(route.route_data.durations),
        },
        "total_distance": route.total_distance,
        "estimated_duration": route.estimated_duration,
        "supplier_location": list(route.supplier_location.as_pair()),
    }
    if route.updated_at is not None:
        row["updated_at"] = route.updated_at.isoformat()
    return row


class SupabaseOrderStore:
    table_name = "orders"

    def __init__(self, client: Client) -> None:
        self.client = client

    def create_order(self, items: Sequence[dict], delivery_address: Any) -> Order:
        response = self.client.table(self.table_name).insert(
            {
                "items": list(items),
                "delivery_address": delivery_address,
                "status": OrderStatus.PENDING.value,
            }
        ).execute()
        if not response.data:
            raise RuntimeError("Supabase did not return the created order")
        return _row_to_order(response.data[0])

    def get_order(self, order_id: str) -> Optional[Order]:
        response = self.client.table(self.table_name).select("*").eq("id", order_id).limit(1).execute()
        rows = response.data or []
        return _row_to_order(rows[0]) if rows else None

    def mark_order_assigned(self, order_id: str, driver_id: str, assigned_at: datetime) -> None:
        self.client.table(self.table_name).update(
            {
                "driver_id": driver_id,
                "status": OrderStatus.ASSIGNED.value,
                "assigned_at": assigned_at.isoformat(),
            }
        ).eq("id", order_id).execute()

    def update_order_assignment(
        self, order_id: str, driver_id: str, sequence: int, estimated_delivery_time: datetime
    ) -> None:
        self.client.table(self.table_name).update(
            {
                "driver_id": driver_id,
                "delivery_sequence": sequence,
                "estimated_delivery_time": estimated_delivery_time.isoformat(),
            }
        ).eq("id", order_id).execute()

    def unassign_order(self, order_id: str) -> None:
        self.client.table(self.table_name).update(
            {
                "driver_id": None,
                "status": OrderStatus.PENDING.value,
                "assigned_at": None,
                "delivery_sequence": None,
                "estimated_delivery_time": None,
            }
        ).eq("id", order_id).execute()

    def get_orders_for_driver(self, driver_id: str, statuses: Iterable[OrderStatus]) -> list[Order]:
        response = (
            self.client.table(self.table_name)
            .select("*")
            .eq("driver_id", driver_id)
            .in_("status", [status.value for status in statuses])
            .order("created_at")
            .execute()
        )
        return [_row_to_order(row) for row in response.data or []]


class SupabaseDriverStore:
    drivers_table = "drivers"
    routes_table = "driver_routes"
    release_attempts = 5

    def __init__(self, client: Client, config: Settings | None = None) -> None:
        self.client = client
        self.config = config or settings

    def _row_to_driver(self, row: Mapping[str, Any]) -> Driver:
        return Driver(
            id=str(row["id"]),
            name=row.get("name") or "",
            status=DriverStatus(row.get("status") or DriverStatus.OFFLINE.value),
            current_orders=int(row.get("current_orders") or 0),
            max_concurrent_orders=int(row.get("max_concurrent_orders") or self.config.default_max_concurrent_orders),
            phone=row.get("phone"),
            email=row.get("email"),
            current_location=parse_coordinate(row.get("current_location")),
            last_location_update=_parse_timestamp(row.get("last_location_update")),
        )

    def get_drivers(self, statuses: Optional[Iterable[DriverStatus]] = None) -> list[Driver]:
        query = self.client.table(self.drivers_table).select("*")
        if statuses is not None:
            query = query.in_("status", [status.value for status in statuses])
        response = query.execute()
        return [self._row_to_driver(row) for row in response.data or []]

    def get_driver(self, driver_id: str) -> Optional[Driver]:
        response = self.client.table(self.drivers_table).select("*").eq("id", driver_id).limit(1).execute()
        rows = response.data or []
        return self._row_to_driver(rows[0]) if rows else None

    def update_driver(self, driver_id: str, patch: Mapping[str, Any]) -> None:
        payload = {key: _serialize(value) for key, value in patch.items()}
        self.client.table(self.drivers_table).update(payload).eq("id", driver_id).execute()

    def increment_load_if_below_capacity(self, driver_id: str) -> bool:
        response = (
            self.client.table(self.drivers_table)
            .select("current_orders, max_concurrent_orders")
            .eq("id", driver_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        if not rows:
            return False
        current = int(rows[0].get("current_orders") or 0)
        capacity = int(rows[0].get("max_concurrent_orders") or self.config.default_max_concurrent_orders)
        if current >= capacity:
            return False

        # Guarded on the observed load so a concurrent increment makes this update a no-op.
        updated = (
            self.client.table(self.drivers_table)
            .update({"current_orders": current + 1, "status": DriverStatus.BUSY.value})
            .eq("id", driver_id)
            .eq("current_orders", current)
            .execute()
        )
        return bool(updated.data)

    def release_load(self, driver_id: str) -> None:
        for _ in range(self.release_attempts):
            response = (
                self.client.table(self.drivers_table)
                .select("current_orders, status")
                .eq("id", driver_id)
                .limit(1)
                .execute()
            )
            rows = response.data or []
            if not rows:
                raise DriverNotFoundError(f"Driver '{driver_id}' not found")
            current = int(rows[0].get("current_orders") or 0)
            payload: dict[str, Any] = {"current_orders": max(current - 1, 0)}
            if current <= 1 and rows[0].get("status") == DriverStatus.BUSY.value:
                payload["status"] = DriverStatus.AVAILABLE.value
            updated = (
                self.client.table(self.drivers_table)
                .update(payload)
                .eq("id", driver_id)
                .eq("current_orders", current)
                .execute()
            )
            if updated.data:
                return
        raise RuntimeError(f"Could not release load for driver {driver_id}: the row kept changing")

    def get_driver_route(self, driver_id: str) -> Optional[DriverRoute]:
        try:
            response = self.client.table(self.routes_table).select("*").eq("driver_id", driver_id).limit(1).execute()
        except Exception as e:
            logger.error(f"Error fetching route for driver {driver_id}: {e}")
            return None
        rows = response.data or []
        return _row_to_route(rows[0]) if rows else None

    def upsert_driver_route(self, route: DriverRoute) -> None:
        self.client.table(self.routes_table).upsert(_route_to_row(route), on_conflict="driver_id").execute()
