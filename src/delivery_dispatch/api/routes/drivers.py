"""Driver availability, route and location endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ...models.domain import Coordinate, Driver
from ...persistence.base import DriverNotFoundError, DriverStore
from ...schemas.drivers import DriverModel, DriverRouteModel, LocationModel, LocationUpdateRequest
from ...services.container import get_driver_store, get_registry
from ...services.drivers.registry import DriverRegistry
from ...services.geospatial import make_coordinate, navigation_url

router = APIRouter(prefix="/drivers", tags=["drivers"])


def _location(coordinate: Coordinate) -> LocationModel:
    return LocationModel(longitude=coordinate.lon, latitude=coordinate.lat)


def driver_model(driver: Driver) -> DriverModel:
    return DriverModel(
        id=driver.id,
        name=driver.name,
        status=driver.status.value,
        current_orders=driver.current_orders,
        max_concurrent_orders=driver.max_concurrent_orders,
        current_location=_location(driver.current_location) if driver.current_location else None,
        last_location_update=driver.last_location_update,
    )


@router.get("/available", response_model=List[DriverModel], status_code=status.HTTP_200_OK)
def list_available_drivers(registry: DriverRegistry = Depends(get_registry)) -> List[DriverModel]:
    return [driver_model(driver) for driver in registry.available_drivers()]


@router.get("/{driver_id}/route", response_model=DriverRouteModel, status_code=status.HTTP_200_OK)
def get_driver_route(driver_id: str, drivers: DriverStore = Depends(get_driver_store)) -> DriverRouteModel:
    route = drivers.get_driver_route(driver_id)
    if route is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No route found for driver {driver_id}"
        )

    stops = route.route_data.stops
    return DriverRouteModel(
        driver_id=route.driver_id,
        route_sequence=route.route_sequence,
        coordinates=[list(coordinate.as_pair()) for coordinate in route.route_data.coordinates],
        leg_distances_m=route.route_data.distances,
        leg_durations_s=route.route_data.durations,
        total_distance_km=route.total_distance,
        estimated_duration_min=route.estimated_duration,
        supplier_location=_location(route.supplier_location),
        updated_at=route.updated_at,
        navigation_url=navigation_url(route.supplier_location, stops) if stops else None,
    )


@router.post("/{driver_id}/location", response_model=DriverModel, status_code=status.HTTP_200_OK)
def update_driver_location(
    driver_id: str,
    payload: LocationUpdateRequest,
    registry: DriverRegistry = Depends(get_registry),
) -> DriverModel:
    """Record a position report from the driver's device."""
    coordinate = make_coordinate(payload.longitude, payload.latitude)
    if coordinate is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid driver coordinate")
    try:
        registry.update_location(driver_id, coordinate, payload.recorded_at)
    except DriverNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    driver = registry.get_driver(driver_id)
    if driver is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Driver '{driver_id}' not found")
    return driver_model(driver)
