"""Dispatch and order request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class DispatchRequest(BaseModel):
    delivery_address: Any = Field(
        ...,
        description="GeoJSON Point, WKT 'POINT(lon lat)', EWKB hex string, or [lon, lat] pair.",
    )


class AssignmentModel(BaseModel):
    order_id: str
    driver_id: str
    estimated_delivery_time: datetime
    delivery_sequence: int


class PlaceOrderRequest(BaseModel):
    items: List[dict] = Field(default_factory=list)
    delivery_address: Any = Field(..., description="Delivery coordinate in any accepted serialized form.")


class OrderModel(BaseModel):
    id: str
    status: str
    items: List[dict]
    delivery_address: Any
    driver_id: Optional[str] = None
    delivery_sequence: Optional[int] = None
    estimated_delivery_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None


class PlaceOrderResponse(BaseModel):
    order: OrderModel
    assignment: Optional[AssignmentModel] = None
    dispatch_error: Optional[str] = Field(
        default=None,
        description="Why dispatch failed; the order is stored and awaits manual assignment.",
    )
