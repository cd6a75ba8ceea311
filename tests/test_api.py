from __future__ import annotations

import json

import httpx
import pytest

from delivery_planner import views
from delivery_planner.exceptions import InvalidAddressError
from delivery_planner.models import SavedItinerary, UsageEvent
from delivery_planner.services.geo import haversine_meters
from delivery_planner.services.openrouteservice import OpenRouteServiceClient
from delivery_planner.services.optimizer import RouteOptimizer
from delivery_planner.services.route_fetcher import RouteFetcher
from delivery_planner.services.sessions import CourierSessions
from delivery_planner.services.types import GeocodeResult

CLIENT = {"HTTP_X_CLIENT_ID": "courier-1"}


class FakeGeocoder:
    def __init__(self, coordinates=(34.7818, 32.0853)) -> None:
        self.coordinates = coordinates
        self.queries: list[str] = []

    async def geocode(self, query: str) -> GeocodeResult:
        self.queries.append(query)
        if self.coordinates is None:
            raise InvalidAddressError(f"Address could not be resolved: {query}")
        return GeocodeResult(coordinates=self.coordinates, provider="photon")


def _post(api_client, path: str, payload: dict | None = None):
    return api_client.post(
        path,
        data=json.dumps(payload or {}),
        content_type="application/json",
        **CLIENT,
    )


def _add_stop(api_client, address: str, coordinates) -> dict:
    response = _post(
        api_client,
        "/api/v1/itinerary/stops",
        {"address": address, "coordinates": list(coordinates)},
    )
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def degraded_services() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "unavailable"})

    client = OpenRouteServiceClient(transport=httpx.MockTransport(handler))
    views._sessions = CourierSessions(
        optimizer=RouteOptimizer(client), fetcher=RouteFetcher(client)
    )


@pytest.mark.django_db
def test_health_endpoint_reports_counts(api_client) -> None:
    UsageEvent.objects.create(event_type="app_opened")

    response = api_client.get("/api/v1/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["itineraries"] == 0
    assert payload["events"] == 1


@pytest.mark.django_db
def test_itinerary_starts_empty_and_echoes_client_id(api_client) -> None:
    response = api_client.get("/api/v1/itinerary", **CLIENT)

    assert response.status_code == 200
    assert response["X-Client-Id"] == "courier-1"
    payload = response.json()
    assert payload["state"] == "idle"
    assert payload["stops"] == []


@pytest.mark.django_db
def test_add_stop_with_coordinates_is_persisted(api_client) -> None:
    stop = _add_stop(api_client, "Dizengoff 50", (34.7745, 32.0780))

    assert stop["address"] == "Dizengoff 50"
    assert stop["coordinates"] == [34.7745, 32.078]
    assert stop["order"] == 0
    saved = SavedItinerary.objects.get(client_id="courier-1")
    assert saved.stop_count == 1


@pytest.mark.django_db
def test_add_stop_geocodes_address_without_coordinates(api_client, mocker) -> None:
    geocoder = FakeGeocoder()
    mocker.patch("delivery_planner.views.get_geocoder", return_value=geocoder)

    response = _post(api_client, "/api/v1/itinerary/stops", {"address": "Rothschild 10"})

    assert response.status_code == 201
    assert response.json()["coordinates"] == [34.7818, 32.0853]
    assert geocoder.queries == ["Rothschild 10"]


@pytest.mark.django_db
def test_add_stop_with_unknown_address_returns_400(api_client, mocker) -> None:
    mocker.patch("delivery_planner.views.get_geocoder", return_value=FakeGeocoder(None))

    response = _post(api_client, "/api/v1/itinerary/stops", {"address": "nowhere"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_address"


def test_add_stop_validation_error_returns_400(api_client) -> None:
    response = _post(api_client, "/api/v1/itinerary/stops", {"coordinates": [1.0, 2.0]})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"


@pytest.mark.django_db
def test_add_stop_with_invalid_coordinates_returns_400(api_client) -> None:
    response = _post(
        api_client,
        "/api/v1/itinerary/stops",
        {"address": "Somewhere", "coordinates": [200.0, 10.0]},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_coordinates"


@pytest.mark.django_db
def test_remove_unknown_stop_returns_404(api_client) -> None:
    response = api_client.delete("/api/v1/itinerary/stops/stop-missing", **CLIENT)

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "stop_not_found"


@pytest.mark.django_db
def test_complete_and_postpone_update_the_itinerary(api_client) -> None:
    first = _add_stop(api_client, "Stop 1", (34.80, 32.09))
    second = _add_stop(api_client, "Stop 2", (34.79, 32.07))
    third = _add_stop(api_client, "Stop 3", (34.77, 32.10))

    postponed = _post(api_client, f"/api/v1/itinerary/stops/{second['id']}/postpone")
    completed = _post(api_client, f"/api/v1/itinerary/stops/{first['id']}/complete")

    assert postponed.status_code == 200
    assert completed.status_code == 200
    stops = completed.json()["stops"]
    assert [stop["id"] for stop in stops] == [first["id"], third["id"], second["id"]]
    assert stops[0]["completed"] is True
    assert stops[2]["postponed"] is True
    assert completed.json()["current_stop_index"] == 1


@pytest.mark.django_db
def test_remove_stop_returns_remaining_stops(api_client) -> None:
    first = _add_stop(api_client, "Stop 1", (34.80, 32.09))
    second = _add_stop(api_client, "Stop 2", (34.79, 32.07))

    response = api_client.delete(f"/api/v1/itinerary/stops/{first['id']}", **CLIENT)

    assert response.status_code == 200
    assert [stop["id"] for stop in response.json()["stops"]] == [second["id"]]
    assert SavedItinerary.objects.get(client_id="courier-1").stop_count == 1


@pytest.mark.django_db
def test_start_navigation_without_stops_returns_409(api_client) -> None:
    response = _post(api_client, "/api/v1/itinerary/navigation/start")

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "no_stops"


@pytest.mark.django_db
def test_start_navigation_without_location_returns_409(api_client) -> None:
    _add_stop(api_client, "Stop 1", (34.80, 32.09))

    response = _post(api_client, "/api/v1/itinerary/navigation/start")

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "location_unavailable"
    assert error["reason"] == "unavailable"


@pytest.mark.django_db
def test_reported_location_error_is_surfaced_on_start(api_client) -> None:
    _add_stop(api_client, "Stop 1", (34.80, 32.09))
    _post(api_client, "/api/v1/itinerary/location", {"error": "permission_denied"})

    response = _post(api_client, "/api/v1/itinerary/navigation/start")

    assert response.status_code == 409
    assert response.json()["error"]["reason"] == "permission_denied"


@pytest.mark.django_db
def test_location_report_requires_both_coordinates(api_client) -> None:
    response = _post(api_client, "/api/v1/itinerary/location", {"longitude": 34.78})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"


@pytest.mark.django_db
@pytest.mark.usefixtures("degraded_services")
def test_navigation_lifecycle_with_degraded_services(api_client) -> None:
    origin = (34.78, 32.08)
    stop_1 = (34.80, 32.09)
    stop_2 = (34.79, 32.07)
    _add_stop(api_client, "Stop 1", stop_1)
    _add_stop(api_client, "Stop 2", stop_2)

    located = _post(
        api_client,
        "/api/v1/itinerary/location",
        {"longitude": origin[0], "latitude": origin[1], "accuracy": 12.0},
    )
    assert located.json()["current_location"] == list(origin)

    started = _post(api_client, "/api/v1/itinerary/navigation/start")

    assert started.status_code == 200
    payload = started.json()
    assert payload["state"] == "navigating"
    assert payload["route_status"] == "fallback"
    assert payload["navigation_steps"]
    expected = haversine_meters(origin, stop_1) + haversine_meters(stop_1, stop_2)
    assert payload["total_distance"] == pytest.approx(expected)

    stopped = _post(api_client, "/api/v1/itinerary/navigation/stop")

    assert stopped.json()["state"] == "idle"
    assert stopped.json()["is_navigating"] is False


@pytest.mark.django_db
def test_geocode_endpoint_returns_coordinates(api_client, mocker) -> None:
    mocker.patch("delivery_planner.views.get_geocoder", return_value=FakeGeocoder())

    response = _post(api_client, "/api/v1/geocode", {"query": "Dizengoff 50"})

    assert response.status_code == 200
    assert response.json() == {"coordinates": [34.7818, 32.0853], "provider": "photon"}


@pytest.mark.django_db
def test_usage_event_is_recorded(api_client) -> None:
    response = _post(
        api_client, "/api/v1/events", {"type": "navigation_started", "data": {"stops": 2}}
    )

    assert response.status_code == 201
    event = UsageEvent.objects.get()
    assert event.event_type == "navigation_started"
    assert event.event_data == {"stops": 2}
    assert event.client_id == "courier-1"


def test_invalid_json_returns_400(api_client) -> None:
    response = api_client.post(
        "/api/v1/events", data="not json", content_type="application/json"
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_json"
