from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from delivery_planner.exceptions import InsufficientWaypointsError
from delivery_planner.services.geo import haversine_meters
from delivery_planner.services.openrouteservice import OpenRouteServiceClient
from delivery_planner.services.route_fetcher import RouteFetcher

ORIGIN = (34.78, 32.08)
STOP = (34.80, 32.09)


def _directions_payload(summary: bool = True, last_way_point: int = 2) -> dict:
    properties: dict = {
        "segments": [
            {
                "distance": 2500.0,
                "duration": 300.0,
                "steps": [
                    {
                        "distance": 1200.0,
                        "duration": 150.0,
                        "type": 11,
                        "instruction": "Head north",
                        "way_points": [0, 1],
                    },
                    {
                        "distance": 1300.0,
                        "duration": 150.0,
                        "type": 1,
                        "instruction": "Turn right",
                        "way_points": [1, 2],
                    },
                    {
                        "distance": 0.0,
                        "duration": 0.0,
                        "type": 10,
                        "instruction": "",
                        "way_points": [last_way_point, last_way_point],
                    },
                ],
            }
        ]
    }
    if summary:
        properties["summary"] = {"distance": 2500.0, "duration": 300.0}
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[34.78, 32.08], [34.79, 32.085], [34.80, 32.09]],
                },
                "properties": properties,
            }
        ],
    }


def _fetcher(handler, **kwargs) -> RouteFetcher:
    client = OpenRouteServiceClient(transport=httpx.MockTransport(handler))
    return RouteFetcher(client, **kwargs)


def test_fetch_route_maps_steps_and_summary() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=_directions_payload())

    route = asyncio.run(_fetcher(handler).fetch_route([ORIGIN, STOP]))

    assert route is not None
    assert route.status == "complete"
    assert route.distance == 2500.0
    assert route.duration == 300.0
    assert route.geometry[0] == ORIGIN
    assert [step.type for step in route.steps] == ["depart", "turn-right", "arrive"]
    assert route.steps[1].coordinates == (34.79, 32.085)
    assert route.steps[2].instruction == "Continue straight"
    assert len(route.legs) == 1

    (request,) = requests
    assert request.url.path == "/v2/directions/driving-car/geojson"
    assert request.headers["Authorization"] == "test-key"
    body = json.loads(request.content)
    assert body["coordinates"] == [list(ORIGIN), list(STOP)]
    assert body["instructions"] is True
    assert body["language"] == "en"


def test_step_anchor_is_clamped_to_geometry() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_directions_payload(last_way_point=99))

    route = asyncio.run(_fetcher(handler).fetch_route([ORIGIN, STOP]))

    assert route.steps[-1].coordinates == (34.80, 32.09)


def test_missing_summary_is_partial_with_zero_totals() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_directions_payload(summary=False))

    route = asyncio.run(_fetcher(handler).fetch_route([ORIGIN, STOP]))

    assert route.status == "partial"
    assert route.distance == 0.0
    assert route.duration == 0.0
    assert len(route.steps) == 3


def test_service_failure_returns_straight_line_fallback() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "unavailable"})

    route = asyncio.run(_fetcher(handler).fetch_route([ORIGIN, STOP]))

    assert route is not None
    assert route.status == "fallback"
    assert len(route.steps) == 1
    assert route.distance == pytest.approx(haversine_meters(ORIGIN, STOP))
    assert route.geometry == [ORIGIN, STOP]


def test_empty_geometry_is_treated_as_failure() -> None:
    payload = _directions_payload()
    payload["features"][0]["geometry"]["coordinates"] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    route = asyncio.run(_fetcher(handler).fetch_route([ORIGIN, STOP]))

    assert route.status == "fallback"


def test_network_error_without_fallback_returns_none() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    route = asyncio.run(_fetcher(handler, fallback_enabled=False).fetch_route([ORIGIN, STOP]))

    assert route is None


def test_fewer_than_two_waypoints_is_rejected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(InsufficientWaypointsError):
        asyncio.run(_fetcher(handler).fetch_route([ORIGIN]))


def test_successful_directions_are_cached() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json=_directions_payload())

    fetcher = _fetcher(handler)
    asyncio.run(fetcher.fetch_route([ORIGIN, STOP]))
    asyncio.run(fetcher.fetch_route([ORIGIN, STOP]))

    assert len(calls) == 1
