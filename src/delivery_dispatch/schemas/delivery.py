"""Delivery quote and zone schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class DeliveryQuoteModel(BaseModel):
    longitude: float
    latitude: float
    distance_km: float = Field(..., description="Driving distance from the supplier.")
    straight_line_km: float = Field(..., description="Great-circle distance from the supplier; the fee is based on this.")
    duration_min: float
    distance_source: str
    delivery_fee: int
    within_delivery_radius: bool
    within_delivery_zone: bool


class DeliveryZoneModel(BaseModel):
    configured: bool
    coordinates: Optional[List[List[float]]] = None


class RouteCacheStatsModel(BaseModel):
    size: int
    ttl_seconds: int
