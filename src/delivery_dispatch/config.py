"""Application configuration and settings management."""

from __future__ import annotations

import json
import logging
from typing import Any, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Dispatch API"
    api_prefix: str = "/api"

    # Reassignment rules
    max_delay_minutes: float = Field(
        default=10.0,
        gt=0.0,
        description="Maximum extra route time an existing delivery may absorb from a reassignment.",
    )
    max_return_distance_km: float = Field(
        default=3.0,
        gt=0.0,
        description="Only in-flight drivers this close to the supplier are considered for reassignment.",
    )
    max_time_window_minutes: float = Field(
        default=8.0,
        gt=0.0,
        description="Only reassign drivers whose route was updated within this window.",
    )
    min_efficiency_gain: float = Field(
        default=0.25,
        gt=0.0,
        lt=1.0,
        description="Minimum fractional route-distance saving required to reassign.",
    )
    max_additional_orders_per_reassignment: int = Field(default=1, ge=1)

    # Routing and caching
    route_cache_ttl: int = Field(default=24 * 60 * 60, ge=0, description="Route cache TTL in seconds.")
    straight_line_prefilter_threshold_km: float = Field(
        default=10.0,
        gt=0.0,
        description="Straight-line distance beyond which the routing service is not called.",
    )
    batch_distance_threshold: int = Field(
        default=2,
        ge=1,
        description="Candidate count from which the batch distance matrix is used.",
    )
    average_driving_speed_kmh: float = Field(default=30.0, gt=0.0)
    road_factor: float = Field(default=1.3, ge=1.0, description="Inflation applied to straight-line legs.")

    # Fleet and scheduling
    default_max_concurrent_orders: int = Field(default=3, ge=1)
    per_stop_minutes: int = Field(default=20, ge=1)
    max_assignment_attempts: int = Field(default=3, ge=1)
    supplier_location: tuple[float, float] = Field(
        default=(120.9025, 14.4444),
        description="Supplier (restaurant) coordinate as (longitude, latitude).",
    )

    # Delivery zone
    delivery_zone_cache_ttl: int = Field(default=60 * 60, ge=0, description="Zone polygon cache TTL in seconds.")
    max_delivery_radius_km: float = Field(default=10.0, gt=0.0)
    delivery_zone_polygon: Optional[tuple[tuple[float, float], ...]] = Field(
        default=None,
        description="Static delivery zone as (longitude, latitude) vertices when no zone service is available.",
    )

    # OSRM
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "car"] = Field(
        default="driving",
        description="OSRM profile to use when computing travel times.",
    )
    osrm_timeout_seconds: float = Field(default=5.0, gt=0.0)
    osrm_max_retries: int = Field(default=1, ge=0)
    osrm_backoff_seconds: float = Field(default=0.5, ge=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:8081",
            "http://127.0.0.1:8081",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("supplier_location", mode="before")
    @classmethod
    def _parse_pair_from_env(cls, value: Any) -> Any:
        """Parse a (lon, lat) pair from a JSON array or comma-separated string."""
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except (json.JSONDecodeError, TypeError):
                parsed = [item.strip() for item in value.split(",") if item.strip()]
            return tuple(float(item) for item in parsed)
        return value

    @field_validator("supplier_location")
    @classmethod
    def _check_supplier_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        lon, lat = value
        if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
            raise ValueError(f"supplier_location {value} is outside the valid longitude/latitude range")
        return value

    @field_validator("delivery_zone_polygon", mode="before")
    @classmethod
    def _parse_polygon_from_env(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value.strip():
                return None
            parsed = json.loads(value)
            return tuple(tuple(float(part) for part in vertex) for vertex in parsed)
        return value

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()

    def validate_config(self) -> list[str]:
        """Return human readable configuration problems that do not block startup."""
        errors: list[str] = []
        if not self.osrm_base_url:
            errors.append(
                "OSRM base URL not configured. Set DISPATCH_OSRM_BASE_URL; straight-line estimates will be used."
            )
        if not self.supabase_url or not self.supabase_key:
            errors.append(
                "Supabase not configured. Set DISPATCH_SUPABASE_URL and DISPATCH_SUPABASE_KEY; "
                "in-memory stores will be used."
            )
        if self.max_return_distance_km > self.straight_line_prefilter_threshold_km:
            errors.append("max_return_distance_km exceeds the straight-line prefilter threshold")
        return errors


def log_config_status(config: Settings | None = None) -> None:
    """Log a summary of the delivery configuration."""
    config = config or settings
    logger.info("Delivery dispatch configuration:")
    logger.info(f"  OSRM routing: {'configured' if config.osrm_base_url else 'missing'}")
    logger.info(f"  Route caching: enabled ({config.route_cache_ttl / 3600:g}h TTL)")
    logger.info(f"  Batch distance checks: {config.batch_distance_threshold}+ drivers")
    logger.info(f"  Pre-filtering: {config.straight_line_prefilter_threshold_km:g}km threshold")
    for error in config.validate_config():
        logger.warning(f"  - {error}")


settings = Settings()
