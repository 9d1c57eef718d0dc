import httpx
import pytest

from src.delivery_dispatch.models.domain import Coordinate
from src.delivery_dispatch.services.routing.osrm_client import (
    OSRMClient,
    RoutingServiceError,
    decode_polyline,
)

A = Coordinate(lon=120.9025, lat=14.4444)
B = Coordinate(lon=120.91, lat=14.45)
C = Coordinate(lon=120.92, lat=14.46)


def _client(monkeypatch, handler, max_retries: int = 0) -> tuple[OSRMClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = OSRMClient(base_url="http://osrm.test", profile="driving", timeout=1.0, max_retries=max_retries, backoff_seconds=0)
    monkeypatch.setattr(client, "_get_client", lambda: httpx.Client(transport=httpx.MockTransport(recording_handler)))
    return client, requests


def test_requires_base_url(monkeypatch):
    from src.delivery_dispatch.services.routing import osrm_client

    monkeypatch.setattr(osrm_client.settings, "osrm_base_url", None)
    with pytest.raises(ValueError):
        OSRMClient()


def test_route_returns_distance_duration(monkeypatch):
    def handler(request):
        return httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 1523.4, "duration": 240.0, "geometry": ""}]})

    client, requests = _client(monkeypatch, handler)
    result = client.route([A, B])

    assert result["distance"] == 1523.4
    assert result["duration"] == 240.0
    assert result["coordinates"] == [A, B]
    assert requests[0].url.path == "/route/v1/driving/120.9025,14.4444;120.91,14.45"


def test_table_requests_sources_and_destinations(monkeypatch):
    def handler(request):
        return httpx.Response(
            200,
            json={"code": "Ok", "distances": [[1200.0], [None]], "durations": [[180.0], [None]]},
        )

    client, requests = _client(monkeypatch, handler)
    result = client.table([B, C], [A])

    assert result["distances"] == [[1200.0], [None]]
    params = requests[0].url.params
    assert params["sources"] == "0;1"
    assert params["destinations"] == "2"


def test_trip_requests_round_trip_and_drops_return_leg(monkeypatch):
    def handler(request):
        return httpx.Response(
            200,
            json={
                "code": "Ok",
                "trips": [
                    {
                        "distance": 4800.0,
                        "duration": 640.0,
                        "legs": [
                            {"distance": 1000.0, "duration": 150.0},
                            {"distance": 2000.0, "duration": 250.0},
                            {"distance": 1800.0, "duration": 240.0},
                        ],
                    }
                ],
                "waypoints": [{"waypoint_index": 0}, {"waypoint_index": 2}, {"waypoint_index": 1}],
            },
        )

    client, requests = _client(monkeypatch, handler)
    result = client.trip([A, B, C])

    assert result["order"] == [0, 2, 1]
    assert result["coordinates"] == [A, C, B]
    assert [leg["distance"] for leg in result["legs"]] == [1000.0, 2000.0]
    assert result["distance"] == 3000.0
    assert result["duration"] == 400.0
    params = requests[0].url.params
    # OSRM rejects roundtrip=false unless the destination is fixed to the last input.
    assert params["source"] == "first"
    assert params["roundtrip"] == "true"
    assert "destination" not in params


def test_error_code_raises_routing_service_error(monkeypatch):
    def handler(request):
        return httpx.Response(400, json={"code": "NoRoute", "message": "Impossible route"})

    client, requests = _client(monkeypatch, handler, max_retries=2)
    with pytest.raises(RoutingServiceError, match="Impossible route"):
        client.route([A, B])
    assert len(requests) == 1


def test_server_errors_are_retried(monkeypatch):
    responses = [
        httpx.Response(503, text="busy"),
        httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 700.0, "duration": 70.0}]}),
    ]

    client, requests = _client(monkeypatch, lambda request: responses.pop(0), max_retries=1)

    assert client.route([A, B])["distance"] == 700.0
    assert len(requests) == 2


def test_network_errors_are_retried(monkeypatch):
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 900.0, "duration": 90.0}]})

    client, _ = _client(monkeypatch, handler, max_retries=1)
    assert client.route([A, B])["distance"] == 900.0
    assert calls["count"] == 2


def test_gives_up_after_max_retries(monkeypatch):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client, requests = _client(monkeypatch, handler, max_retries=2)
    with pytest.raises(RoutingServiceError):
        client.route([A, B])
    assert len(requests) == 3


def test_decode_polyline():
    decoded = decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")

    assert decoded[0] == Coordinate(lon=-120.2, lat=38.5)
    assert decoded[1] == Coordinate(lon=-120.95, lat=40.7)
    assert decoded[2] == Coordinate(lon=-126.453, lat=43.252)
