"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from ...models.domain import Coordinate


@dataclass(slots=True)
class DistanceResult:
    distance_m: float
    duration_s: float
    # "routing", "cache" or "estimate"
    source: str = "routing"


@dataclass(slots=True)
class CachedRoute:
    coordinates: List[Coordinate]
    distance_m: float
    duration_s: float
    optimized_sequence: Optional[List[int]] = None


@dataclass(slots=True)
class OptimizedRoute:
    """Visiting order over a stop list, as indices into that list."""

    sequence: List[int]
    total_distance_m: float
    total_duration_s: float
    coordinates: List[Coordinate] = field(default_factory=list)
    leg_distances: List[float] = field(default_factory=list)
    leg_durations: List[float] = field(default_factory=list)
    source: str = "routing"
