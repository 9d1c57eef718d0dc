"""Customer-facing delivery quote and zone endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...config import settings
from ...schemas.delivery import DeliveryQuoteModel, DeliveryZoneModel
from ...services.container import get_delivery_zone, get_distance_provider
from ...services.geospatial import (
    delivery_fee_for_distance,
    haversine_km,
    is_within_delivery_radius,
    make_coordinate,
)
from ...services.routing.distance import DistanceProvider
from ...services.routing.optimizer import supplier_coordinate
from ...services.zones import DeliveryZone

router = APIRouter(prefix="/delivery", tags=["delivery"])


@router.get("/quote", response_model=DeliveryQuoteModel, status_code=status.HTTP_200_OK)
def quote_delivery(
    longitude: float = Query(..., description="Delivery longitude"),
    latitude: float = Query(..., description="Delivery latitude"),
    provider: DistanceProvider = Depends(get_distance_provider),
    zone: DeliveryZone = Depends(get_delivery_zone),
) -> DeliveryQuoteModel:
    """Distance from the supplier, the resulting fee, and whether we deliver there.

    The fee follows the straight-line distance. Driving distance is reported alongside.
    """
    coordinate = make_coordinate(longitude, latitude)
    if coordinate is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid delivery coordinate")

    supplier = supplier_coordinate(settings)
    leg = provider.driving_distance(supplier, coordinate)
    straight_line_km = round(haversine_km(supplier, coordinate), 2)
    return DeliveryQuoteModel(
        longitude=coordinate.lon,
        latitude=coordinate.lat,
        distance_km=round(leg.distance_m / 1000, 2),
        straight_line_km=straight_line_km,
        duration_min=round(leg.duration_s / 60, 1),
        distance_source=leg.source,
        delivery_fee=delivery_fee_for_distance(straight_line_km),
        within_delivery_radius=is_within_delivery_radius(coordinate, supplier, settings.max_delivery_radius_km),
        within_delivery_zone=zone.is_within_delivery_zone(coordinate),
    )


@router.get("/zone", response_model=DeliveryZoneModel, status_code=status.HTTP_200_OK)
def get_zone(zone: DeliveryZone = Depends(get_delivery_zone)) -> DeliveryZoneModel:
    polygon = zone.polygon()
    if not polygon:
        return DeliveryZoneModel(configured=False)
    return DeliveryZoneModel(configured=True, coordinates=[list(vertex.as_pair()) for vertex in polygon])
