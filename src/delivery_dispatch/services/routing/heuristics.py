"""Straight-line routing heuristics used when the routing service cannot answer."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import Coordinate
from ..geospatial import haversine_km
from .models import DistanceResult, OptimizedRoute


def estimate_leg(
    origin: Coordinate,
    destination: Coordinate,
    *,
    road_factor: float,
    speed_kmh: float,
) -> DistanceResult:
    """Straight-line distance inflated by the road factor, driven at the average speed."""
    straight_km = haversine_km(origin, destination)
    distance_m = straight_km * 1000 * road_factor
    return DistanceResult(
        distance_m=distance_m,
        duration_s=(distance_m / 1000) / speed_kmh * 3600,
        source="estimate",
    )


def nearest_neighbor_tour(
    origin: Coordinate,
    stops: Sequence[Coordinate],
    *,
    road_factor: float,
    speed_kmh: float,
) -> OptimizedRoute:
    """Greedy tour: from the origin, repeatedly visit the closest unvisited stop.

    This is an approximation, not an optimal TSP solution. Ties keep the
    lower stop index.
    """
    unvisited = list(range(len(stops)))
    sequence: list[int] = []
    leg_distances: list[float] = []
    leg_durations: list[float] = []
    current = origin

    while unvisited:
        nearest = min(unvisited, key=lambda index: haversine_km(current, stops[index]))
        leg = estimate_leg(current, stops[nearest], road_factor=road_factor, speed_kmh=speed_kmh)
        sequence.append(nearest)
        leg_distances.append(leg.distance_m)
        leg_durations.append(leg.duration_s)
        current = stops[nearest]
        unvisited.remove(nearest)

    return OptimizedRoute(
        sequence=sequence,
        total_distance_m=sum(leg_distances),
        total_duration_s=sum(leg_durations),
        coordinates=[origin, *(stops[index] for index in sequence)],
        leg_distances=leg_distances,
        leg_durations=leg_durations,
        source="estimate",
    )
