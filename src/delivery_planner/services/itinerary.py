from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import asdict
from enum import Enum
from typing import Any

from django.conf import settings

from delivery_planner.exceptions import (
    DeliveryPlannerError,
    ExternalServiceError,
    InsufficientWaypointsError,
    InvalidCoordinatesError,
    LocationUnavailableError,
    NoStopsError,
    RouteComputationError,
    StopNotFoundError,
)
from delivery_planner.services.geo import coordinate_key, is_valid_coordinates
from delivery_planner.services.location import LocationProvider, LocationTracker
from delivery_planner.services.optimizer import RouteOptimizer
from delivery_planner.services.route_fetcher import RouteFetcher
from delivery_planner.services.tasks import cancel_task
from delivery_planner.services.types import (
    Coordinates,
    DeliveryStop,
    NavigationStep,
    RouteLeg,
    RouteResult,
    RouteStatus,
)

logger = logging.getLogger(__name__)

Listener = Callable[["ItineraryController"], None]


class ItineraryState(str, Enum):
    IDLE = "idle"
    PLANNING = "planning"
    NAVIGATING = "navigating"


class ItineraryController:
    """Owns a courier's ordered stops and the navigation state around them.

    Stop mutations are synchronous. Route work (optimize, then fetch) runs as
    asyncio tasks: ``start_navigation`` awaits its planning task, while
    ``remove_stop`` and ``postpone_stop`` schedule a background reload when
    navigation is active. ``stop_navigation`` cancels whatever is in flight.
    Observers registered with ``subscribe`` are called after every change.
    """

    def __init__(
        self,
        location_provider: LocationProvider,
        optimizer: RouteOptimizer | None = None,
        fetcher: RouteFetcher | None = None,
        stops: list[DeliveryStop] | None = None,
        *,
        retry_count: int | None = None,
        retry_delay_seconds: float | None = None,
        location_poll_seconds: float | None = None,
    ) -> None:
        self.location_provider = location_provider
        self.optimizer = optimizer or RouteOptimizer()
        self.fetcher = fetcher or RouteFetcher()
        self.retry_count = settings.ROUTE_RETRY_COUNT if retry_count is None else retry_count
        self.retry_delay_seconds = (
            settings.ROUTE_RETRY_DELAY_SECONDS
            if retry_delay_seconds is None
            else retry_delay_seconds
        )
        poll_seconds = (
            settings.LOCATION_POLL_SECONDS
            if location_poll_seconds is None
            else location_poll_seconds
        )

        self.stops: list[DeliveryStop] = list(stops or [])
        self._renumber()
        self.current_stop_index = 0
        self.state = ItineraryState.IDLE
        self.total_distance = 0.0
        self.total_duration = 0.0
        self.navigation_steps: list[NavigationStep] = []
        self.route_geometry: list[Coordinates] = []
        self.route_status: RouteStatus | None = None
        self.route_error: str | None = None
        self.current_location: Coordinates | None = None

        self._listeners: list[Listener] = []
        self._tracker = LocationTracker(location_provider, self.update_location, poll_seconds)
        self._planning_task: asyncio.Task[None] | None = None
        self._planning_cancelled = False
        self._reload_task: asyncio.Task[None] | None = None

    @property
    def is_navigating(self) -> bool:
        return self.state is ItineraryState.NAVIGATING

    @property
    def current_stop(self) -> DeliveryStop | None:
        if 0 <= self.current_stop_index < len(self.stops):
            return self.stops[self.current_stop_index]
        return None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Stop lifecycle

    def add_stop(self, address: str, coordinates: Coordinates) -> DeliveryStop:
        if not is_valid_coordinates(coordinates):
            raise InvalidCoordinatesError("Stop coordinates must be finite longitude/latitude")

        stop = DeliveryStop(
            id=f"stop-{uuid.uuid4().hex}",
            address=address,
            coordinates=(float(coordinates[0]), float(coordinates[1])),
            order=len(self.stops),
        )
        self.stops.append(stop)
        self.route_error = None
        self._notify()
        return stop

    def remove_stop(self, stop_id: str) -> None:
        index = self._index_of(stop_id)
        del self.stops[index]
        self._renumber()
        if index < self.current_stop_index:
            self.current_stop_index -= 1
        self.current_stop_index = min(self.current_stop_index, len(self.stops))
        self._notify()

        if self.is_navigating:
            self._schedule_reload()

    def postpone_stop(self, stop_id: str) -> None:
        index = self._index_of(stop_id)
        stop = self.stops.pop(index)
        stop.postponed = True
        self.stops.append(stop)
        self._renumber()
        if index < self.current_stop_index:
            self.current_stop_index -= 1
        self._notify()

        if self.is_navigating:
            self._schedule_reload()

    def complete_stop(self, stop_id: str) -> None:
        index = self._index_of(stop_id)
        stop = self.stops[index]
        if stop.completed:
            return

        stop.completed = True
        stop.postponed = False
        if index == len(self.stops) - 1:
            logger.info("Final stop %s completed, ending navigation", stop_id)
            self._halt()
        elif index == self.current_stop_index:
            self.current_stop_index += 1
        self._notify()

    def update_location(self, coordinates: Coordinates) -> None:
        self.current_location = coordinates
        self._notify()

    # Navigation

    async def start_navigation(self) -> bool:
        """Plan a route and enter navigation.

        Returns ``False`` when ``stop_navigation`` cancels the planning.
        """
        if not self.stops:
            self.route_error = "Add at least one stop before starting navigation"
            self._notify()
            raise NoStopsError(self.route_error)
        if all(stop.completed for stop in self.stops):
            self.route_error = "Every stop is already completed"
            self._notify()
            raise NoStopsError(self.route_error)
        if self.state is ItineraryState.PLANNING:
            logger.info("Navigation start ignored, a route is already being planned")
            return False

        origin = await self._current_origin()
        self._cancel_reload()
        previous_state = self.state
        self.state = ItineraryState.PLANNING
        self.route_error = None
        self._planning_cancelled = False
        self._notify()

        self._planning_task = asyncio.ensure_future(self._load_route_with_retry(origin))
        try:
            await self._planning_task
        except asyncio.CancelledError:
            if self._planning_cancelled:
                logger.info("Route planning cancelled")
                return False
            self._end_failed_planning(previous_state)
            raise
        except DeliveryPlannerError as exc:
            self.route_error = str(exc)
            self._end_failed_planning(previous_state)
            raise
        finally:
            self._planning_task = None

        self.state = ItineraryState.NAVIGATING
        self.current_stop_index = self._first_pending_index()
        self._tracker.start()
        self._notify()
        logger.info(
            "Navigation started with %d stops, %.0f m, %.0f s",
            len(self.stops),
            self.total_distance,
            self.total_duration,
        )
        return True

    def stop_navigation(self) -> None:
        if self._planning_task is not None and not self._planning_task.done():
            self._planning_cancelled = True
            cancel_task(self._planning_task)
        self._halt()
        self._notify()

    async def reload_route(self) -> None:
        origin = await self._current_origin()
        try:
            await self._load_route_with_retry(origin)
        except DeliveryPlannerError as exc:
            self.route_error = str(exc)
            self._notify()
            raise

    async def settle(self) -> None:
        """Wait for a pending background reload to finish."""
        task = self._reload_task
        if task is not None:
            await asyncio.wait({task})

    def reorder_stops_by_computed_route(self, ordered_coordinates: list[Coordinates]) -> None:
        self._reorder(ordered_coordinates)
        self._notify()

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "is_navigating": self.is_navigating,
            "current_stop_index": self.current_stop_index,
            "current_location": self.current_location,
            "stops": [asdict(stop) for stop in self.stops],
            "total_distance": self.total_distance,
            "total_duration": self.total_duration,
            "navigation_steps": [asdict(step) for step in self.navigation_steps],
            "route_geometry": list(self.route_geometry),
            "route_status": self.route_status,
            "route_error": self.route_error,
        }

    # Internals

    async def _current_origin(self) -> Coordinates:
        try:
            origin = await self.location_provider.get_current_location()
        except LocationUnavailableError as exc:
            self.route_error = str(exc)
            self._notify()
            raise
        self.current_location = origin
        return origin

    async def _load_route_with_retry(self, origin: Coordinates) -> None:
        attempts = self.retry_count + 1
        last_error: DeliveryPlannerError | None = None
        for attempt in range(1, attempts + 1):
            try:
                await self._load_route(origin)
                return
            except InsufficientWaypointsError:
                raise
            except (ExternalServiceError, RouteComputationError) as exc:
                last_error = exc
                logger.warning("Route load attempt %d/%d failed: %s", attempt, attempts, exc)
                if attempt < attempts:
                    await asyncio.sleep(self.retry_delay_seconds)

        raise RouteComputationError(
            f"Route could not be loaded after {attempts} attempts"
        ) from last_error

    async def _load_route(self, origin: Coordinates) -> None:
        pending = [stop.coordinates for stop in self.stops if not stop.completed]
        if not pending:
            raise InsufficientWaypointsError("No pending stops to route to")

        ordered = await self.optimizer.optimize(origin, pending)
        route = await self.fetcher.fetch_route(ordered)
        if route is None:
            raise RouteComputationError("No route data received from the directions service")
        self._apply_route(ordered, route)

    def _apply_route(self, ordered: list[Coordinates], route: RouteResult) -> None:
        self._reorder(ordered[1:])
        self.total_distance = route.distance
        self.total_duration = route.duration
        self.route_geometry = list(route.geometry)
        self.route_status = route.status
        self.navigation_steps = list(route.steps) or [
            NavigationStep(
                instruction="Head to the next stop",
                distance=route.distance,
                duration=route.duration,
                type="depart",
                coordinates=ordered[1] if len(ordered) > 1 else ordered[0],
            )
        ]
        self._annotate_legs(route.legs)
        if self.is_navigating:
            self.current_stop_index = self._first_pending_index()
        self.route_error = None
        self._notify()

    def _reorder(self, ordered_coordinates: list[Coordinates]) -> None:
        # completed stops keep their positions; only pending slots are permuted
        remaining = [stop for stop in self.stops if not stop.completed]
        matched: set[str] = set()
        reordered: list[DeliveryStop] = []

        for coordinates in ordered_coordinates:
            key = coordinate_key(coordinates)
            match = next(
                (
                    stop
                    for stop in remaining
                    if stop.id not in matched and coordinate_key(stop.coordinates) == key
                ),
                None,
            )
            if match is not None:
                matched.add(match.id)
                reordered.append(match)

        reordered.extend(stop for stop in remaining if stop.id not in matched)
        slots = iter(reordered)
        self.stops = [stop if stop.completed else next(slots) for stop in self.stops]
        self._renumber()

    def _annotate_legs(self, legs: list[RouteLeg]) -> None:
        for stop in self.stops:
            if stop.completed:
                stop.estimated_time = None
                stop.distance_from_previous = None

        pending = [stop for stop in self.stops if not stop.completed]
        if len(legs) < len(pending):
            return

        elapsed = 0.0
        for stop, leg in zip(pending, legs):
            elapsed += leg.duration
            stop.estimated_time = elapsed
            stop.distance_from_previous = leg.distance

    def _schedule_reload(self) -> None:
        self._cancel_reload()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, route reload skipped")
            return
        self._reload_task = loop.create_task(self._background_reload())

    async def _background_reload(self) -> None:
        try:
            await self.reload_route()
        except DeliveryPlannerError as exc:
            logger.warning("Automatic route reload failed: %s", exc)

    def _cancel_reload(self) -> None:
        if self._reload_task is not None and not self._reload_task.done():
            cancel_task(self._reload_task)
        self._reload_task = None

    def _end_failed_planning(self, previous_state: ItineraryState) -> None:
        # a failed re-plan keeps an active trip on its last route
        if previous_state is ItineraryState.NAVIGATING:
            self.state = ItineraryState.NAVIGATING
        else:
            self._halt()
        self._notify()

    def _halt(self) -> None:
        self._cancel_reload()
        self._tracker.stop()
        self.state = ItineraryState.IDLE

    def _first_pending_index(self) -> int:
        return next(
            (index for index, stop in enumerate(self.stops) if not stop.completed),
            len(self.stops),
        )

    def _index_of(self, stop_id: str) -> int:
        for index, stop in enumerate(self.stops):
            if stop.id == stop_id:
                return index
        raise StopNotFoundError(f"Unknown stop: {stop_id}")

    def _renumber(self) -> None:
        for index, stop in enumerate(self.stops):
            stop.order = index

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
