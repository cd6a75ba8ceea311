from __future__ import annotations

import json
import uuid
from dataclasses import asdict
from typing import Any

from asgiref.sync import async_to_sync
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods, require_POST
from pydantic import ValidationError

from delivery_planner.exceptions import (
    DeliveryPlannerError,
    ExternalServiceError,
    InsufficientWaypointsError,
    InvalidAddressError,
    InvalidCoordinatesError,
    LocationUnavailableError,
    NoStopsError,
    RouteComputationError,
    StopNotFoundError,
)
from delivery_planner.models import SavedItinerary, UsageEvent
from delivery_planner.schemas import (
    AddStopRequest,
    GeocodeRequest,
    GeocodeResponse,
    ItineraryResponse,
    LocationReportRequest,
    StopSchema,
    UsageEventRequest,
)
from delivery_planner.services.geocoding import Geocoder
from delivery_planner.services.itinerary import ItineraryController
from delivery_planner.services.sessions import CourierSession, CourierSessions

CLIENT_ID_HEADER = "X-Client-Id"

_sessions: CourierSessions | None = None
_geocoder: Geocoder | None = None


def get_sessions() -> CourierSessions:
    global _sessions
    if _sessions is None:
        _sessions = CourierSessions()
    return _sessions


def get_geocoder() -> Geocoder:
    global _geocoder
    if _geocoder is None:
        _geocoder = Geocoder()
    return _geocoder


@require_GET
def health_view(_: HttpRequest) -> HttpResponse:
    return JsonResponse(
        {
            "status": "ok",
            "itineraries": SavedItinerary.objects.count(),
            "events": UsageEvent.objects.count(),
        }
    )


@require_GET
def itinerary_view(request: HttpRequest) -> HttpResponse:
    session = _session_for(request)
    return _itinerary_response(session)


@csrf_exempt
@require_POST
def add_stop_view(request: HttpRequest) -> HttpResponse:
    stop_request = _validated(request, AddStopRequest)
    if isinstance(stop_request, JsonResponse):
        return stop_request

    session = _session_for(request)
    try:
        coordinates = stop_request.coordinates
        if coordinates is None:
            coordinates = async_to_sync(get_geocoder().geocode)(stop_request.address).coordinates
        stop = session.controller.add_stop(stop_request.address, coordinates)
    except DeliveryPlannerError as exc:
        return _planner_error_response(exc)

    get_sessions().persist(session)
    return _with_client_id(
        JsonResponse(StopSchema.model_validate(asdict(stop)).model_dump(mode="json"), status=201),
        session,
    )


@csrf_exempt
@require_http_methods(["DELETE"])
def stop_detail_view(request: HttpRequest, stop_id: str) -> HttpResponse:
    return _mutate(request, _remove_stop, stop_id)


@csrf_exempt
@require_POST
def complete_stop_view(request: HttpRequest, stop_id: str) -> HttpResponse:
    return _mutate(request, _complete_stop, stop_id)


@csrf_exempt
@require_POST
def postpone_stop_view(request: HttpRequest, stop_id: str) -> HttpResponse:
    return _mutate(request, _postpone_stop, stop_id)


@csrf_exempt
@require_POST
def start_navigation_view(request: HttpRequest) -> HttpResponse:
    session = _session_for(request)
    try:
        started = async_to_sync(session.controller.start_navigation)()
    except DeliveryPlannerError as exc:
        return _planner_error_response(exc)

    get_sessions().persist(session)
    if not started:
        return _error_response("navigation_cancelled", "Route planning was cancelled", status=409)
    return _itinerary_response(session)


@csrf_exempt
@require_POST
def stop_navigation_view(request: HttpRequest) -> HttpResponse:
    session = _session_for(request)
    session.controller.stop_navigation()
    return _itinerary_response(session)


@csrf_exempt
@require_POST
def location_view(request: HttpRequest) -> HttpResponse:
    report = _validated(request, LocationReportRequest)
    if isinstance(report, JsonResponse):
        return report

    session = _session_for(request)
    if report.error is not None:
        session.location.report_error(report.error)
    elif report.longitude is None or report.latitude is None:
        return _error_response(
            "validation_error", "Both longitude and latitude are required", status=400
        )
    else:
        coordinates = (report.longitude, report.latitude)
        session.location.report(coordinates, accuracy=report.accuracy)
        session.controller.update_location(coordinates)

    return _itinerary_response(session)


@csrf_exempt
@require_POST
def geocode_view(request: HttpRequest) -> HttpResponse:
    geocode_request = _validated(request, GeocodeRequest)
    if isinstance(geocode_request, JsonResponse):
        return geocode_request

    try:
        result = async_to_sync(get_geocoder().geocode)(geocode_request.query)
    except DeliveryPlannerError as exc:
        return _planner_error_response(exc)

    response = GeocodeResponse(coordinates=result.coordinates, provider=result.provider)
    return JsonResponse(response.model_dump(mode="json"))


@csrf_exempt
@require_POST
def events_view(request: HttpRequest) -> HttpResponse:
    event_request = _validated(request, UsageEventRequest)
    if isinstance(event_request, JsonResponse):
        return event_request

    UsageEvent.objects.create(
        client_id=request.headers.get(CLIENT_ID_HEADER, "")[:64],
        event_type=event_request.type,
        event_data=event_request.data,
    )
    return JsonResponse({"success": True}, status=201)


async def _remove_stop(controller: ItineraryController, stop_id: str) -> None:
    controller.remove_stop(stop_id)
    await controller.settle()


async def _postpone_stop(controller: ItineraryController, stop_id: str) -> None:
    controller.postpone_stop(stop_id)
    await controller.settle()


async def _complete_stop(controller: ItineraryController, stop_id: str) -> None:
    controller.complete_stop(stop_id)


def _mutate(request: HttpRequest, operation: Any, stop_id: str) -> HttpResponse:
    session = _session_for(request)
    try:
        async_to_sync(operation)(session.controller, stop_id)
    except DeliveryPlannerError as exc:
        return _planner_error_response(exc)

    get_sessions().persist(session)
    return _itinerary_response(session)


def _session_for(request: HttpRequest) -> CourierSession:
    client_id = request.headers.get(CLIENT_ID_HEADER) or uuid.uuid4().hex
    return get_sessions().get(client_id[:64])


def _itinerary_response(session: CourierSession) -> JsonResponse:
    payload = ItineraryResponse.model_validate(session.controller.snapshot())
    return _with_client_id(JsonResponse(payload.model_dump(mode="json")), session)


def _with_client_id(response: JsonResponse, session: CourierSession) -> JsonResponse:
    response[CLIENT_ID_HEADER] = session.client_id
    return response


def _validated(request: HttpRequest, model: Any) -> Any:
    payload = _parse_json_payload(request)
    if isinstance(payload, JsonResponse):
        return payload

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        return JsonResponse(
            {
                "error": {
                    "code": "validation_error",
                    "message": "Invalid request payload",
                    "details": exc.errors(include_url=False, include_context=False),
                }
            },
            status=400,
        )


def _parse_json_payload(request: HttpRequest) -> dict[str, Any] | JsonResponse:
    if not request.body:
        return {}

    try:
        payload = json.loads(request.body)
    except json.JSONDecodeError:
        return _error_response("invalid_json", "Request body must be valid JSON", status=400)

    if not isinstance(payload, dict):
        return _error_response("invalid_json", "JSON body must be an object", status=400)

    return payload


def _planner_error_response(exc: DeliveryPlannerError) -> JsonResponse:
    if isinstance(exc, InvalidAddressError):
        return _error_response("invalid_address", str(exc), status=400)
    if isinstance(exc, InvalidCoordinatesError):
        return _error_response("invalid_coordinates", str(exc), status=400)
    if isinstance(exc, StopNotFoundError):
        return _error_response("stop_not_found", str(exc), status=404)
    if isinstance(exc, NoStopsError):
        return _error_response("no_stops", str(exc), status=409)
    if isinstance(exc, LocationUnavailableError):
        return _error_response("location_unavailable", str(exc), status=409, reason=exc.reason)
    if isinstance(exc, InsufficientWaypointsError):
        return _error_response("insufficient_waypoints", str(exc), status=422)
    if isinstance(exc, RouteComputationError):
        return _error_response("route_unavailable", str(exc), status=502)
    if isinstance(exc, ExternalServiceError):
        return _error_response("upstream_error", str(exc), status=502)
    return _error_response("planner_error", str(exc), status=400)


def _error_response(code: str, message: str, status: int, **details: Any) -> JsonResponse:
    return JsonResponse({"error": {"code": code, "message": message, **details}}, status=status)
