"""Route cache endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...config import settings
from ...schemas.delivery import RouteCacheStatsModel
from ...services.container import get_route_cache
from ...services.routing.cache import RouteCache

router = APIRouter(prefix="/routes", tags=["routes"])


@router.get("/cache/stats", response_model=RouteCacheStatsModel, status_code=status.HTTP_200_OK)
def cache_stats(cache: RouteCache = Depends(get_route_cache)) -> RouteCacheStatsModel:
    return RouteCacheStatsModel(size=cache.stats()["size"], ttl_seconds=settings.route_cache_ttl)


@router.post("/cache/invalidate", status_code=status.HTTP_200_OK)
def invalidate_cache(cache: RouteCache = Depends(get_route_cache)) -> dict:
    """Drop every cached route, e.g. after a road network update."""
    removed = cache.invalidate_all()
    return {"success": True, "invalidated": removed}
