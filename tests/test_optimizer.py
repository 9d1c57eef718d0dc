import pytest

from conftest import SUPPLIER, offset

from src.delivery_dispatch.models.domain import Coordinate, Order, OrderStatus
from src.delivery_dispatch.services.geospatial import to_wkt
from src.delivery_dispatch.services.routing.cache import RouteCache
from src.delivery_dispatch.services.routing.distance import DistanceProvider
from src.delivery_dispatch.services.routing.heuristics import nearest_neighbor_tour
from src.delivery_dispatch.services.routing.optimizer import RouteOptimizer


def _order(order_id: str, address) -> Order:
    return Order(id=order_id, delivery_address=address, status=OrderStatus.ASSIGNED)


@pytest.fixture
def optimizer(config) -> RouteOptimizer:
    return RouteOptimizer(DistanceProvider(None, RouteCache(ttl_seconds=60), config), config)


def test_nearest_neighbor_tour_breaks_ties_by_index():
    origin = Coordinate(lon=0.0, lat=0.0)
    east, west = Coordinate(lon=0.01, lat=0.0), Coordinate(lon=-0.01, lat=0.0)
    tour = nearest_neighbor_tour(origin, [east, west], road_factor=1.3, speed_kmh=30)

    assert tour.sequence == [0, 1]
    assert len(tour.leg_distances) == 2


def test_empty_route_holds_only_the_supplier(optimizer):
    route = optimizer.build_route("driver-1", [])

    assert route.route_sequence == []
    assert route.route_data.coordinates == [SUPPLIER]
    assert route.route_data.stops == []
    assert route.total_distance == 0
    assert route.estimated_duration == 0


def test_build_route_maps_sequence_to_order_ids(optimizer):
    near, far = offset(0.005, 0.0), offset(0.02, 0.0)
    orders = [
        _order("order-far", {"type": "Point", "coordinates": list(far.as_pair())}),
        _order("order-near", to_wkt(near)),
    ]

    route = optimizer.build_route("driver-1", orders)

    assert route.route_sequence == ["order-near", "order-far"]
    assert route.route_data.coordinates == [SUPPLIER, near, far]
    assert route.route_data.stops == [near, far]
    assert len(route.route_data.distances) == 2
    assert route.total_distance == round(sum(route.route_data.distances) / 1000, 2)
    assert route.estimated_duration == round(sum(route.route_data.durations) / 60)
    assert route.supplier_location == SUPPLIER


def test_unparseable_orders_are_left_off_the_route(optimizer):
    orders = [_order("bad", "somewhere"), _order("good", list(offset(0.01, 0.01).as_pair()))]

    route = optimizer.build_route("driver-1", orders)

    assert route.route_sequence == ["good"]
