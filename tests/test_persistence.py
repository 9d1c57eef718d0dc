from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from conftest import SUPPLIER

from src.delivery_dispatch.models.domain import Driver, DriverRoute, DriverStatus, Order, OrderStatus, RouteData
from src.delivery_dispatch.persistence.base import DriverNotFoundError, OrderNotFoundError
from src.delivery_dispatch.persistence.database import SupabaseDriverStore, _route_to_row, _row_to_order, _row_to_route
from src.delivery_dispatch.persistence.memory import InMemoryDriverStore, InMemoryOrderStore
from src.delivery_dispatch.services.geospatial import to_ewkb_hex


def test_create_order_is_pending():
    store = InMemoryOrderStore()
    order = store.create_order([{"sku": "adobo", "quantity": 2}], [120.91, 14.45])

    stored = store.get_order(order.id)
    assert stored.status == OrderStatus.PENDING
    assert stored.driver_id is None
    assert stored.created_at is not None


def test_orders_for_driver_are_oldest_first_and_filtered():
    store = InMemoryOrderStore()
    base = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    store.add(Order(id="late", delivery_address=None, status=OrderStatus.ASSIGNED, driver_id="d1", created_at=base + timedelta(minutes=5)))
    store.add(Order(id="early", delivery_address=None, status=OrderStatus.PREPARING, driver_id="d1", created_at=base))
    store.add(Order(id="done", delivery_address=None, status=OrderStatus.DELIVERED, driver_id="d1", created_at=base))
    store.add(Order(id="other", delivery_address=None, status=OrderStatus.ASSIGNED, driver_id="d2", created_at=base))

    orders = store.get_orders_for_driver("d1", [OrderStatus.ASSIGNED, OrderStatus.PREPARING])

    assert [order.id for order in orders] == ["early", "late"]


def test_order_updates_require_existing_order():
    store = InMemoryOrderStore()
    with pytest.raises(OrderNotFoundError):
        store.mark_order_assigned("missing", "d1", datetime.now(timezone.utc))


def test_returned_records_are_copies():
    store = InMemoryDriverStore([Driver(id="d1", name="Ana", status=DriverStatus.AVAILABLE)])

    store.get_driver("d1").current_orders = 99

    assert store.get_driver("d1").current_orders == 0


def test_increment_respects_capacity():
    store = InMemoryDriverStore([Driver(id="d1", name="Ana", status=DriverStatus.AVAILABLE, max_concurrent_orders=2)])

    assert store.increment_load_if_below_capacity("d1")
    assert store.increment_load_if_below_capacity("d1")
    assert not store.increment_load_if_below_capacity("d1")
    assert not store.increment_load_if_below_capacity("missing")

    driver = store.get_driver("d1")
    assert driver.current_orders == 2
    assert driver.status == DriverStatus.BUSY


def test_update_driver_rejects_unknown_driver_and_field():
    store = InMemoryDriverStore([Driver(id="d1", name="Ana", status=DriverStatus.AVAILABLE)])

    with pytest.raises(DriverNotFoundError):
        store.update_driver("missing", {"current_orders": 1})
    with pytest.raises(ValueError):
        store.update_driver("d1", {"favourite_colour": "red"})


def test_route_upsert_keeps_created_at():
    store = InMemoryDriverStore()
    first = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    route = DriverRoute("d1", ["o1"], RouteData(coordinates=[SUPPLIER]), 1.0, 4.0, SUPPLIER, updated_at=first)
    store.upsert_driver_route(route)

    route.updated_at = first + timedelta(minutes=3)
    route.route_sequence = ["o1", "o2"]
    store.upsert_driver_route(route)

    stored = store.get_driver_route("d1")
    assert stored.created_at == first
    assert stored.updated_at == first + timedelta(minutes=3)
    assert stored.route_sequence == ["o1", "o2"]


def test_supabase_rows_round_trip_through_domain_records():
    order = _row_to_order(
        {
            "id": 17,
            "delivery_address": to_ewkb_hex(SUPPLIER),
            "status": "assigned",
            "items": None,
            "driver_id": "d1",
            "estimated_delivery_time": "2024-05-01T12:20:00Z",
        }
    )
    assert order.id == "17"
    assert order.status == OrderStatus.ASSIGNED
    assert order.items == []
    assert order.estimated_delivery_time == datetime(2024, 5, 1, 12, 20, tzinfo=timezone.utc)

    route = DriverRoute("d1", ["17"], RouteData(coordinates=[SUPPLIER, SUPPLIER], stops=[SUPPLIER], distances=[], durations=[]), 2.5, 9.0, SUPPLIER)
    restored = _row_to_route(_route_to_row(route))
    assert restored.route_sequence == ["17"]
    assert restored.route_data.coordinates == [SUPPLIER, SUPPLIER]
    assert restored.route_data.stops == [SUPPLIER]
    assert restored.supplier_location == SUPPLIER
    assert restored.total_distance == 2.5


class FakeQuery:
    """Just enough of the postgrest builder for single-table select/update chains."""

    def __init__(self, rows, before_update=None):
        self.rows = rows
        self.filters = []
        self.payload = None
        self.before_update = before_update

    def select(self, *args, **kwargs):
        return self

    def update(self, payload):
        self.payload = payload
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def limit(self, count):
        return self

    def execute(self):
        if self.payload is not None and self.before_update:
            self.before_update(self.rows)
        matched = [row for row in self.rows if all(row.get(column) == value for column, value in self.filters)]
        if self.payload is not None:
            for row in matched:
                row.update(self.payload)
        return SimpleNamespace(data=[dict(row) for row in matched])


class FakeSupabase:
    def __init__(self, rows, before_update=None):
        self.rows = rows
        self.before_update = before_update

    def table(self, name):
        return FakeQuery(self.rows, self.before_update)


def test_supabase_increment_is_guarded_by_observed_load(config):
    rows = [{"id": "d1", "status": "available", "current_orders": 1, "max_concurrent_orders": 2}]
    store = SupabaseDriverStore(FakeSupabase(rows), config)

    assert store.increment_load_if_below_capacity("d1")
    assert rows[0]["current_orders"] == 2
    assert rows[0]["status"] == "busy"
    assert not store.increment_load_if_below_capacity("d1")
    assert not store.increment_load_if_below_capacity("missing")


def test_supabase_increment_loses_race(config):
    def concurrent_dispatch(rows):
        rows[0]["current_orders"] += 1

    rows = [{"id": "d1", "status": "busy", "current_orders": 1, "max_concurrent_orders": 3}]
    store = SupabaseDriverStore(FakeSupabase(rows, before_update=concurrent_dispatch), config)

    assert not store.increment_load_if_below_capacity("d1")
    assert rows[0]["current_orders"] == 2


def test_supabase_release_load_frees_an_emptied_driver(config):
    rows = [{"id": "d1", "status": "busy", "current_orders": 2, "max_concurrent_orders": 3}]
    store = SupabaseDriverStore(FakeSupabase(rows), config)

    store.release_load("d1")
    assert rows[0]["current_orders"] == 1
    assert rows[0]["status"] == "busy"

    store.release_load("d1")
    assert rows[0]["current_orders"] == 0
    assert rows[0]["status"] == "available"

    with pytest.raises(DriverNotFoundError):
        store.release_load("missing")


def test_memory_rollback_helpers():
    orders = InMemoryOrderStore()
    order = orders.create_order([], [120.91, 14.45])
    orders.mark_order_assigned(order.id, "d1", datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))
    orders.unassign_order(order.id)

    restored = orders.get_order(order.id)
    assert restored.status == OrderStatus.PENDING
    assert restored.driver_id is None
    assert restored.assigned_at is None

    drivers = InMemoryDriverStore([Driver(id="d1", name="Ana", status=DriverStatus.AVAILABLE)])
    drivers.release_load("d1")
    assert drivers.get_driver("d1").current_orders == 0
    assert drivers.get_driver("d1").status == DriverStatus.AVAILABLE
