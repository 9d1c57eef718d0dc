"""Driver and driver-route schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class LocationModel(BaseModel):
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)


class LocationUpdateRequest(LocationModel):
    recorded_at: Optional[datetime] = Field(default=None, description="Device timestamp; defaults to receipt time.")


class DriverModel(BaseModel):
    id: str
    name: str
    status: str
    current_orders: int
    max_concurrent_orders: int
    current_location: Optional[LocationModel] = None
    last_location_update: Optional[datetime] = None


class DriverRouteModel(BaseModel):
    driver_id: str
    route_sequence: List[str]
    coordinates: List[List[float]] = Field(..., description="Display geometry starting at the supplier, as [lon, lat].")
    leg_distances_m: List[float]
    leg_durations_s: List[float]
    total_distance_km: float
    estimated_duration_min: float
    supplier_location: LocationModel
    updated_at: Optional[datetime] = None
    navigation_url: Optional[str] = None
