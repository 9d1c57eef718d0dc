import math

import pytest

from src.delivery_dispatch.models.domain import Coordinate
from src.delivery_dispatch.services.geospatial import (
    delivery_fee_for_distance,
    haversine_km,
    is_within_delivery_radius,
    navigation_url,
    parse_coordinate,
    point_in_polygon,
    to_ewkb_hex,
    to_geojson,
    to_wkt,
)


def test_haversine_zero_and_symmetric():
    a = Coordinate(lon=120.9025, lat=14.4444)
    b = Coordinate(lon=121.0, lat=14.6)

    assert haversine_km(a, a) == 0
    assert haversine_km(a, b) == pytest.approx(haversine_km(b, a))
    assert haversine_km(a, b) > 0


def test_haversine_one_degree_of_latitude():
    assert haversine_km(Coordinate(lon=0, lat=0), Coordinate(lon=0, lat=1)) == pytest.approx(111.19, abs=0.01)


def test_haversine_triangle_inequality():
    points = [
        Coordinate(lon=120.9025, lat=14.4444),
        Coordinate(lon=121.0, lat=14.6),
        Coordinate(lon=120.95, lat=14.3),
        Coordinate(lon=-73.98, lat=40.75),
        Coordinate(lon=179.9, lat=-0.5),
        Coordinate(lon=-179.9, lat=0.5),
    ]

    for a in points:
        for b in points:
            for c in points:
                assert haversine_km(a, c) <= haversine_km(a, b) + haversine_km(b, c) + 1e-9


@pytest.mark.parametrize(
    "raw",
    [
        {"type": "Point", "coordinates": [120.9025, 14.4444]},
        {"coordinates": [120.9025, 14.4444]},
        "POINT(120.9025 14.4444)",
        "SRID=4326;POINT(120.9025 14.4444)",
        [120.9025, 14.4444],
        (120.9025, 14.4444),
        Coordinate(lon=120.9025, lat=14.4444),
    ],
)
def test_parse_coordinate_accepted_forms(raw):
    assert parse_coordinate(raw) == Coordinate(lon=120.9025, lat=14.4444)


def test_parse_coordinate_reads_postgis_hex():
    # POINT(1 2) as PostGIS returns a geography(Point, 4326) column.
    raw = "0101000020E6100000" + "000000000000F03F" + "0000000000000040"
    assert parse_coordinate(raw) == Coordinate(lon=1.0, lat=2.0)


def test_encoders_are_read_back():
    coordinate = Coordinate(lon=120.91234, lat=14.45678)

    assert parse_coordinate(to_geojson(coordinate)) == coordinate
    assert parse_coordinate(to_wkt(coordinate)) == coordinate
    assert parse_coordinate(to_ewkb_hex(coordinate)) == coordinate
    assert to_ewkb_hex(coordinate).startswith("0101000020E6100000")


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "not a point",
        "POINT(120.9)",
        "0101000020E6100000ABCD",
        "0102000020E6100000" + "000000000000F03F" + "0000000000000040",
        "0101000000" + "000000000000F03F" + "0000000000000040" + "0000000000000000",
        [200.0, 14.0],
        [120.0, 95.0],
        [120.0],
        [True, False],
        [math.nan, 14.0],
        {"type": "Polygon", "coordinates": [[0, 0], [1, 1]]},
        {"type": "Point"},
        42,
    ],
)
def test_parse_coordinate_rejects_malformed_input(raw):
    assert parse_coordinate(raw) is None


@pytest.mark.parametrize(
    "distance_km, fee",
    [
        (0.0, 50),
        (2.99, 50),
        (3.0, 75),
        (4.99, 75),
        (5.0, 100),
        (9.99, 100),
        (10.0, 150),
        (12.1, 182),
    ],
)
def test_delivery_fee_brackets(distance_km, fee):
    assert delivery_fee_for_distance(distance_km) == fee


def test_delivery_fee_never_decreases():
    fees = [delivery_fee_for_distance(step / 10) for step in range(0, 300)]
    assert fees == sorted(fees)


def test_delivery_radius():
    origin = Coordinate(lon=120.9025, lat=14.4444)

    assert is_within_delivery_radius(Coordinate(lon=120.95, lat=14.45), origin)
    assert not is_within_delivery_radius(Coordinate(lon=121.2, lat=14.6), origin)
    assert is_within_delivery_radius(Coordinate(lon=121.2, lat=14.6), origin, max_distance_km=50)


def test_point_in_polygon():
    square = [
        Coordinate(lon=120.0, lat=14.0),
        Coordinate(lon=121.0, lat=14.0),
        Coordinate(lon=121.0, lat=15.0),
        Coordinate(lon=120.0, lat=15.0),
    ]

    assert point_in_polygon(Coordinate(lon=120.5, lat=14.5), square)
    assert not point_in_polygon(Coordinate(lon=122.0, lat=14.5), square)
    assert not point_in_polygon(Coordinate(lon=120.5, lat=14.5), square[:2])


def test_navigation_url_orders_waypoints():
    origin = Coordinate(lon=120.9025, lat=14.4444)
    stops = [Coordinate(lon=120.91, lat=14.45), Coordinate(lon=120.92, lat=14.46)]

    url = navigation_url(origin, stops)

    assert url.startswith("https://www.google.com/maps/dir/?api=1")
    assert "origin=14.4444,120.9025" in url
    assert "destination=14.46,120.92" in url
    assert "waypoints=14.45,120.91" in url
    assert url.endswith("travelmode=driving")


def test_navigation_url_requires_a_stop():
    with pytest.raises(ValueError):
        navigation_url(Coordinate(lon=120.9025, lat=14.4444), [])
