"""HTTP client for interacting with OSRM services."""

from __future__ import annotations

import logging
import time
from typing import Any, Sequence

import httpx

from ...config import settings
from ...models.domain import Coordinate

logger = logging.getLogger(__name__)


class RoutingServiceError(Exception):
    """Raised when OSRM cannot answer a request (network, timeout, or error response)."""


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base_url or "").rstrip("/")
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.osrm_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds

    def _get_client(self) -> httpx.Client:
        """Create a short-lived HTTP client; dispatch threads never share one."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            limits=httpx.Limits(max_connections=1, max_keepalive_connections=0),
        )

    @staticmethod
    def format_coordinates(coordinates: Sequence[Coordinate]) -> str:
        """OSRM expects 'lon,lat;lon,lat;...'."""
        return ";".join(f"{coordinate.lon},{coordinate.lat}" for coordinate in coordinates)

    def _request(self, service: str, coordinates: Sequence[Coordinate], params: dict[str, str]) -> dict:
        """GET an OSRM service, retrying only failures that can succeed on a second try.

        Timeouts, network errors and 5xx responses are retried with exponential
        backoff. 4xx responses and error codes such as ``NoRoute`` fail at once.
        """
        url = f"{self.base_url}/{service}/v1/{self.profile}/{self.format_coordinates(coordinates)}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    if response.status_code < 500:
                        return self._parse_response(service, response)
                    response.raise_for_status()
                except (httpx.TimeoutException, httpx.NetworkError, httpx.HTTPStatusError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise RoutingServiceError(
                            f"OSRM {service} request to {self.base_url} failed after {attempt} attempts: {e}"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(
                        f"OSRM {service} transient error, retrying in {wait_time:.1f}s "
                        f"(attempt {attempt}/{self.max_retries}): {e}"
                    )
                    time.sleep(wait_time)
                except httpx.HTTPError as e:
                    raise RoutingServiceError(f"OSRM {service} request failed: {e}") from e
        finally:
            client.close()

    @staticmethod
    def _parse_response(service: str, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise RoutingServiceError(f"OSRM {service} returned invalid JSON (HTTP {response.status_code})") from e
        if data.get("code") != "Ok":
            error_msg = data.get("message", data.get("code", f"HTTP {response.status_code}"))
            raise RoutingServiceError(f"OSRM {service} request failed: {error_msg}")
        return data

    def route(self, coordinates: Sequence[Coordinate]) -> dict:
        """Driving route through the coordinates in the given order.

        Returns:
            ``{"distance": m, "duration": s, "geometry": polyline, "coordinates": [Coordinate, ...]}``
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM route.")

        data = self._request(
            "route",
            coordinates,
            {"overview": "full", "geometries": "polyline", "steps": "false"},
        )
        route = data["routes"][0]
        geometry = route.get("geometry") or ""
        return {
            "distance": float(route["distance"]),
            "duration": float(route["duration"]),
            "geometry": geometry,
            "coordinates": decode_polyline(geometry) if geometry else list(coordinates),
        }

    def table(self, sources: Sequence[Coordinate], destinations: Sequence[Coordinate]) -> dict:
        """Distance/duration matrix from every source to every destination.

        Cells OSRM cannot route are returned as None.
        """
        if not sources or not destinations:
            return {"durations": [], "distances": []}

        coordinates = [*sources, *destinations]
        params = {
            "annotations": "duration,distance",
            "sources": ";".join(str(i) for i in range(len(sources))),
            "destinations": ";".join(str(i) for i in range(len(sources), len(coordinates))),
        }
        data = self._request("table", coordinates, params)
        if "durations" not in data or "distances" not in data:
            raise RoutingServiceError("OSRM response missing durations/distances.")
        return {"durations": data["durations"], "distances": data["distances"]}

    def trip(self, coordinates: Sequence[Coordinate]) -> dict:
        """Waypoint-optimized open trip starting at the first coordinate.

        OSRM only supports ``roundtrip=false`` with a fixed last destination, so
        a round trip is requested and the leg back to the start is dropped.

        Returns:
            ``{"distance", "duration", "order", "coordinates", "legs"}`` where ``order``
            lists the input indices in visiting order (always starting with 0) and
            ``coordinates`` are the waypoints in that order.
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required for OSRM trip.")

        data = self._request(
            "trip",
            coordinates,
            {
                "source": "first",
                "roundtrip": "true",
                "overview": "false",
            },
        )
        trip = data["trips"][0]
        waypoints: list[dict[str, Any]] = data["waypoints"]
        order = sorted(range(len(waypoints)), key=lambda index: waypoints[index]["waypoint_index"])
        legs = [
            {"distance": float(leg["distance"]), "duration": float(leg["duration"])}
            for leg in trip.get("legs", [])
        ][: len(coordinates) - 1]
        return {
            "distance": sum(leg["distance"] for leg in legs),
            "duration": sum(leg["duration"] for leg in legs),
            "order": order,
            "coordinates": [coordinates[i] for i in order],
            "legs": legs,
        }


def decode_polyline(polyline: str) -> list[Coordinate]:
    """Decode a Google-encoded polyline (precision 5) to coordinates.

    OSRM uses Google's polyline encoding format for route geometry.
    """
    coordinates: list[Coordinate] = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        lat += ~(result >> 1) if (result & 1) else (result >> 1)

        shift = 0
        result = 0
        while True:
            b = ord(polyline[index]) - 63
            index += 1
            result |= (b & 0x1f) << shift
            shift += 5
            if b < 0x20:
                break
        lon += ~(result >> 1) if (result & 1) else (result >> 1)

        coordinates.append(Coordinate(lon=lon / 1e5, lat=lat / 1e5))

    return coordinates


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM service health by routing between two points near the supplier.

    Public OSRM endpoints may not have a /health endpoint, so we test
    connectivity with a minimal route request.
    """
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    lon, lat = settings.supplier_location
    test_coords = f"{lon},{lat};{lon + 0.01},{lat + 0.01}"
    url = f"{base.rstrip('/')}/route/v1/{settings.osrm_profile}/{test_coords}"
    try:
        response = httpx.get(url, params={"overview": "false"}, timeout=5.0)
        response.raise_for_status()
        return response.json().get("code") == "Ok"
    except (httpx.HTTPError, ValueError):
        return False
