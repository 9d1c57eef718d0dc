"""Driving distance lookups with cache, routing service and straight-line fallbacks.

``driving_distance`` walks an ordered chain of strategies. Each strategy either
answers with a ``DistanceResult`` or returns ``None`` to hand over to the next
one; the last strategy always answers, so callers never see a routing failure.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from ...config import Settings, settings
from ...models.domain import Coordinate
from ..geospatial import haversine_km
from .cache import RouteCache
from .heuristics import estimate_leg, nearest_neighbor_tour
from .models import CachedRoute, DistanceResult, OptimizedRoute
from .osrm_client import OSRMClient, RoutingServiceError

logger = logging.getLogger(__name__)


class DistanceStrategy(Protocol):
    name: str

    def __call__(self, origin: Coordinate, destination: Coordinate) -> DistanceResult | None:
        ...


class StraightLinePrefilter:
    """Skips the routing service for pairs that are far apart in a straight line."""

    name = "prefilter"

    def __init__(self, threshold_km: float, road_factor: float, speed_kmh: float) -> None:
        self.threshold_km = threshold_km
        self.road_factor = road_factor
        self.speed_kmh = speed_kmh

    def __call__(self, origin: Coordinate, destination: Coordinate) -> DistanceResult | None:
        if haversine_km(origin, destination) <= self.threshold_km:
            return None
        return estimate_leg(origin, destination, road_factor=self.road_factor, speed_kmh=self.speed_kmh)


class CachedDistance:
    name = "cache"

    def __init__(self, cache: RouteCache) -> None:
        self.cache = cache

    def __call__(self, origin: Coordinate, destination: Coordinate) -> DistanceResult | None:
        cached = self.cache.get_cached_route(origin, [destination])
        if cached is None:
            return None
        return DistanceResult(distance_m=cached.distance_m, duration_s=cached.duration_s, source="cache")


class ExternalDistance:
    name = "routing"

    def __init__(self, client: OSRMClient | None, cache: RouteCache) -> None:
        self.client = client
        self.cache = cache

    def __call__(self, origin: Coordinate, destination: Coordinate) -> DistanceResult | None:
        if self.client is None:
            return None
        try:
            route = self.client.route([origin, destination])
        except (RoutingServiceError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Routing service failed for {origin} -> {destination}: {e}. Using straight-line estimate.")
            return None

        self.cache.set_cached_route(
            origin,
            [destination],
            CachedRoute(coordinates=route["coordinates"], distance_m=route["distance"], duration_s=route["duration"]),
        )
        return DistanceResult(distance_m=route["distance"], duration_s=route["duration"], source="routing")


class StraightLineEstimate:
    name = "estimate"

    def __init__(self, road_factor: float, speed_kmh: float) -> None:
        self.road_factor = road_factor
        self.speed_kmh = speed_kmh

    def __call__(self, origin: Coordinate, destination: Coordinate) -> DistanceResult:
        return estimate_leg(origin, destination, road_factor=self.road_factor, speed_kmh=self.speed_kmh)


def _canonical_order(stops: Sequence[Coordinate]) -> list[int]:
    """Stop indices in the same rounded, sorted order the cache key uses."""
    return sorted(range(len(stops)), key=lambda index: (round(stops[index].lat, 4), round(stops[index].lon, 4)))


class DistanceProvider:
    """Driving distance, distance matrix and multi-stop optimization over one routing client."""

    def __init__(
        self,
        client: OSRMClient | None,
        cache: RouteCache,
        config: Settings | None = None,
        strategies: Sequence[DistanceStrategy] | None = None,
    ) -> None:
        self.config = config or settings
        self.client = client
        self.cache = cache
        self.strategies: list[DistanceStrategy] = list(strategies) if strategies is not None else [
            StraightLinePrefilter(
                self.config.straight_line_prefilter_threshold_km,
                self.config.road_factor,
                self.config.average_driving_speed_kmh,
            ),
            CachedDistance(cache),
            ExternalDistance(client, cache),
            StraightLineEstimate(self.config.road_factor, self.config.average_driving_speed_kmh),
        ]

    def estimate(self, origin: Coordinate, destination: Coordinate) -> DistanceResult:
        return estimate_leg(
            origin,
            destination,
            road_factor=self.config.road_factor,
            speed_kmh=self.config.average_driving_speed_kmh,
        )

    def driving_distance(self, origin: Coordinate, destination: Coordinate) -> DistanceResult:
        for strategy in self.strategies:
            result = strategy(origin, destination)
            if result is not None:
                return result
        # Only reachable with a custom chain that has no terminal strategy.
        return self.estimate(origin, destination)

    def batch_distances(
        self, origins: Sequence[Coordinate], destinations: Sequence[Coordinate]
    ) -> list[list[DistanceResult]]:
        """All origin -> destination pairs in one routing call, estimated per pair on failure."""
        if self.client is None:
            logger.debug("Routing service not configured, using straight-line batch estimates")
            return [[self.estimate(origin, destination) for destination in destinations] for origin in origins]

        try:
            table = self.client.table(origins, destinations)
            distances = table["distances"]
            durations = table["durations"]
            matrix: list[list[DistanceResult]] = []
            for row, origin in enumerate(origins):
                results: list[DistanceResult] = []
                for column, destination in enumerate(destinations):
                    distance = distances[row][column]
                    duration = durations[row][column]
                    if distance is None or duration is None:
                        results.append(self.estimate(origin, destination))
                    else:
                        results.append(DistanceResult(distance_m=float(distance), duration_s=float(duration)))
                matrix.append(results)
            return matrix
        except (RoutingServiceError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Distance matrix request failed: {e}. Using straight-line estimates.")
            return [[self.estimate(origin, destination) for destination in destinations] for origin in origins]

    def optimize_multi_stop(self, origin: Coordinate, stops: Sequence[Coordinate]) -> OptimizedRoute:
        """Visiting order over ``stops`` starting from ``origin``.

        Uses the routing service's waypoint optimization when available and a
        nearest-neighbour approximation otherwise.
        """
        if not stops:
            return OptimizedRoute(sequence=[], total_distance_m=0.0, total_duration_s=0.0, coordinates=[origin])

        if len(stops) == 1:
            leg = self.driving_distance(origin, stops[0])
            return OptimizedRoute(
                sequence=[0],
                total_distance_m=leg.distance_m,
                total_duration_s=leg.duration_s,
                coordinates=[origin, stops[0]],
                leg_distances=[leg.distance_m],
                leg_durations=[leg.duration_s],
                source=leg.source,
            )

        canonical = _canonical_order(stops)
        cached = self.cache.get_cached_route(origin, stops, optimize=True)
        if cached is not None and cached.optimized_sequence is not None and len(cached.optimized_sequence) == len(stops):
            return OptimizedRoute(
                sequence=[canonical[position] for position in cached.optimized_sequence],
                total_distance_m=cached.distance_m,
                total_duration_s=cached.duration_s,
                coordinates=list(cached.coordinates),
                source="cache",
            )

        optimized = self._optimize_with_service(origin, stops)
        if optimized is None:
            return nearest_neighbor_tour(
                origin,
                stops,
                road_factor=self.config.road_factor,
                speed_kmh=self.config.average_driving_speed_kmh,
            )

        position_of = {index: position for position, index in enumerate(canonical)}
        self.cache.set_cached_route(
            origin,
            stops,
            CachedRoute(
                coordinates=optimized.coordinates,
                distance_m=optimized.total_distance_m,
                duration_s=optimized.total_duration_s,
                optimized_sequence=[position_of[index] for index in optimized.sequence],
            ),
            optimize=True,
        )
        return optimized

    def _optimize_with_service(self, origin: Coordinate, stops: Sequence[Coordinate]) -> OptimizedRoute | None:
        if self.client is None:
            return None
        try:
            trip = self.client.trip([origin, *stops])
        except (RoutingServiceError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Waypoint optimization failed for {len(stops)} stops: {e}. Using nearest neighbour.")
            return None

        sequence = [index - 1 for index in trip["order"] if index != 0]
        if sorted(sequence) != list(range(len(stops))):
            logger.warning(f"Routing service returned an invalid trip order {trip['order']}. Using nearest neighbour.")
            return None

        return OptimizedRoute(
            sequence=sequence,
            total_distance_m=trip["distance"],
            total_duration_s=trip["duration"],
            coordinates=trip["coordinates"],
            leg_distances=[leg["distance"] for leg in trip["legs"]],
            leg_durations=[leg["duration"] for leg in trip["legs"]],
        )
