from __future__ import annotations

from dataclasses import dataclass

from delivery_planner.services.itinerary import ItineraryController
from delivery_planner.services.location import ReportedLocationProvider
from delivery_planner.services.optimizer import RouteOptimizer
from delivery_planner.services.route_fetcher import RouteFetcher
from delivery_planner.services.storage import ItineraryStore


@dataclass(slots=True)
class CourierSession:
    client_id: str
    controller: ItineraryController
    location: ReportedLocationProvider


class CourierSessions:
    """Process-local registry of itinerary controllers keyed by client id.

    Positions are pushed by the courier's device, so controllers created here
    do not poll for location.
    """

    def __init__(
        self,
        store: ItineraryStore | None = None,
        optimizer: RouteOptimizer | None = None,
        fetcher: RouteFetcher | None = None,
    ) -> None:
        self.store = store or ItineraryStore()
        self.optimizer = optimizer or RouteOptimizer()
        self.fetcher = fetcher or RouteFetcher()
        self._sessions: dict[str, CourierSession] = {}

    def get(self, client_id: str) -> CourierSession:
        session = self._sessions.get(client_id)
        if session is None:
            location = ReportedLocationProvider()
            controller = ItineraryController(
                location,
                optimizer=self.optimizer,
                fetcher=self.fetcher,
                stops=self.store.load(client_id),
                location_poll_seconds=0,
            )
            session = CourierSession(client_id=client_id, controller=controller, location=location)
            self._sessions[client_id] = session
        return session

    def persist(self, session: CourierSession) -> None:
        self.store.save(session.client_id, session.controller.stops)
