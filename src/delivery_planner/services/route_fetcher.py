from __future__ import annotations

import logging

from django.conf import settings

from delivery_planner.exceptions import (
    ExternalServiceError,
    InsufficientWaypointsError,
    MalformedResponseError,
)
from delivery_planner.services.geo import (
    calculate_fallback_distance,
    estimate_fallback_duration,
    synthesize_fallback_legs,
    synthesize_fallback_steps,
)
from delivery_planner.services.openrouteservice import DirectionsPayload, OpenRouteServiceClient
from delivery_planner.services.types import Coordinates, NavigationStep, RouteLeg, RouteResult

logger = logging.getLogger(__name__)

# openrouteservice instruction type codes
STEP_TYPES = {
    0: "turn-left",
    1: "turn-right",
    2: "sharp-left",
    3: "sharp-right",
    4: "slight-left",
    5: "slight-right",
    6: "continue",
    7: "roundabout-enter",
    8: "roundabout-exit",
    9: "u-turn",
    10: "arrive",
    11: "depart",
    12: "keep-left",
    13: "keep-right",
}


class RouteFetcher:
    def __init__(
        self,
        client: OpenRouteServiceClient | None = None,
        *,
        fallback_enabled: bool | None = None,
    ) -> None:
        self.client = client or OpenRouteServiceClient()
        self.language = settings.ROUTE_LANGUAGE
        self.fallback_enabled = (
            settings.ROUTE_FALLBACK_ENABLED if fallback_enabled is None else fallback_enabled
        )
        self.average_speed_kmh = settings.FALLBACK_AVERAGE_SPEED_KMH
        self.fallback_step_seconds = settings.FALLBACK_STEP_SECONDS

    async def fetch_route(self, coordinates: list[Coordinates]) -> RouteResult | None:
        """Fetch geometry, totals and turn-by-turn steps for an ordered waypoint list.

        Service failures produce a straight-line fallback result, or ``None``
        when the fallback is disabled.
        """
        if len(coordinates) < 2:
            raise InsufficientWaypointsError("At least two route waypoints are required")

        try:
            payload = await self.client.directions(coordinates, language=self.language)
            return self._parse_payload(payload)
        except ExternalServiceError as exc:
            if not self.fallback_enabled:
                logger.error("Directions request failed: %s", exc)
                return None
            logger.warning("Directions request failed, using straight-line fallback: %s", exc)
            return self.build_fallback(coordinates)

    def build_fallback(self, coordinates: list[Coordinates]) -> RouteResult:
        distance = calculate_fallback_distance(coordinates)
        return RouteResult(
            distance=distance,
            duration=estimate_fallback_duration(distance, self.average_speed_kmh),
            geometry=list(coordinates),
            steps=synthesize_fallback_steps(coordinates, self.fallback_step_seconds),
            legs=synthesize_fallback_legs(coordinates, self.average_speed_kmh),
            status="fallback",
        )

    @staticmethod
    def _parse_payload(payload: DirectionsPayload) -> RouteResult:
        if not payload.features:
            raise MalformedResponseError("No route features in response")

        feature = payload.features[0]
        geometry = [tuple(coord) for coord in feature.geometry.coordinates]
        if not geometry:
            raise MalformedResponseError("Route geometry missing")

        properties = feature.properties
        status = "complete"
        if properties.summary is None:
            logger.warning("Directions response has no summary, using zero totals")
            distance, duration = 0.0, 0.0
            status = "partial"
        else:
            distance = max(properties.summary.distance, 0.0)
            duration = max(properties.summary.duration, 0.0)

        last_vertex = len(geometry) - 1
        steps: list[NavigationStep] = []
        legs: list[RouteLeg] = []
        for segment in properties.segments:
            legs.append(
                RouteLeg(distance=max(segment.distance, 0.0), duration=max(segment.duration, 0.0))
            )
            for step in segment.steps:
                anchor_index = step.way_points[0] if step.way_points else 0
                steps.append(
                    NavigationStep(
                        instruction=step.instruction or "Continue straight",
                        distance=max(step.distance, 0.0),
                        duration=max(step.duration, 0.0),
                        type=STEP_TYPES.get(step.type, "continue"),
                        coordinates=geometry[min(max(anchor_index, 0), last_vertex)],
                    )
                )

        return RouteResult(
            distance=distance,
            duration=duration,
            geometry=geometry,
            steps=steps,
            legs=legs,
            status=status,
        )
