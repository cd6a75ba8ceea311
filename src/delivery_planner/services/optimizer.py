from __future__ import annotations

import logging
import math

from django.conf import settings

from delivery_planner.exceptions import ExternalServiceError, MalformedResponseError
from delivery_planner.services.openrouteservice import OpenRouteServiceClient
from delivery_planner.services.types import Coordinates, OptimizationResult

logger = logging.getLogger(__name__)


class RouteOptimizer:
    """Orders delivery stops starting from a fixed origin.

    Strategies are tried in order: the remote optimization service, then a
    travel-time matrix solved locally. If both fail the input order is
    returned, so callers always receive a usable sequence.
    """

    def __init__(
        self,
        client: OpenRouteServiceClient | None = None,
        *,
        round_trip: bool | None = None,
        local_solver: str | None = None,
    ) -> None:
        self.client = client or OpenRouteServiceClient()
        self.round_trip = settings.ROUTE_ROUND_TRIP if round_trip is None else round_trip
        self.local_solver = local_solver or settings.ROUTE_LOCAL_SOLVER
        self.solver_time_limit_seconds = settings.ROUTE_SOLVER_TIME_LIMIT_SECONDS

    async def optimize(self, origin: Coordinates, stops: list[Coordinates]) -> list[Coordinates]:
        result = await self.plan(origin, stops)
        return result.coordinates

    async def plan(self, origin: Coordinates, stops: list[Coordinates]) -> OptimizationResult:
        points = [origin, *stops]
        if len(stops) < 2:
            return OptimizationResult(coordinates=points, strategy="identity")

        try:
            order = await self._order_with_service(origin, stops)
            return OptimizationResult(
                coordinates=[origin, *(stops[index] for index in order)],
                strategy="optimization",
            )
        except ExternalServiceError as exc:
            logger.info("Optimization service unavailable, trying matrix ordering: %s", exc)

        try:
            durations = await self._fetch_durations(points)
        except ExternalServiceError as exc:
            logger.warning("Matrix service unavailable, keeping input order: %s", exc)
            return OptimizationResult(coordinates=points, strategy="identity")

        if self.local_solver == "ortools":
            try:
                visit = order_with_ortools(
                    durations,
                    round_trip=self.round_trip,
                    time_limit_seconds=self.solver_time_limit_seconds,
                )
                return OptimizationResult(
                    coordinates=[points[index] for index in visit], strategy="ortools"
                )
            except RuntimeError as exc:
                logger.info("OR-Tools ordering failed, using nearest neighbor: %s", exc)

        visit = order_by_nearest_neighbor(durations)
        return OptimizationResult(
            coordinates=[points[index] for index in visit], strategy="nearest_neighbor"
        )

    async def _order_with_service(self, origin: Coordinates, stops: list[Coordinates]) -> list[int]:
        payload = await self.client.optimization(origin, stops, round_trip=self.round_trip)
        if not payload.routes:
            raise MalformedResponseError("No optimized route in response")

        job_ids = [step.job for step in payload.routes[0].steps if step.job is not None]
        order = [job_id - 1 for job_id in job_ids]
        if sorted(order) != list(range(len(stops))):
            raise MalformedResponseError("Optimized route does not visit every stop exactly once")
        return order

    async def _fetch_durations(self, points: list[Coordinates]) -> list[list[float]]:
        payload = await self.client.matrix(points)
        size = len(points)
        if len(payload.durations) != size or any(len(row) != size for row in payload.durations):
            raise MalformedResponseError("Matrix dimensions do not match the requested locations")
        return [
            [math.inf if value is None else float(value) for value in row]
            for row in payload.durations
        ]


def order_by_nearest_neighbor(durations: list[list[float]]) -> list[int]:
    """Greedy visiting order starting at index 0.

    Ties go to the lowest index. Points unreachable from the current one are
    still visited, lowest index first, once nothing reachable remains.
    """
    size = len(durations)
    if size == 0:
        return []

    visited = [0]
    used = [False] * size
    used[0] = True

    for _ in range(1, size):
        last = visited[-1]
        best_index = -1
        best_value = math.inf
        for candidate in range(size):
            if used[candidate]:
                continue
            if best_index == -1:
                best_index = candidate
            if durations[last][candidate] < best_value:
                best_value = durations[last][candidate]
                best_index = candidate
        used[best_index] = True
        visited.append(best_index)

    return visited


def order_with_ortools(
    durations: list[list[float]], *, round_trip: bool, time_limit_seconds: int = 2
) -> list[int]:
    try:
        from ortools.constraint_solver import pywrapcp, routing_enums_pb2
    except ImportError as exc:
        raise RuntimeError("OR-Tools is not available") from exc

    size = len(durations)
    # unreachable arcs get a cost high enough to be avoided but still solvable
    finite = [value for row in durations for value in row if math.isfinite(value)]
    unreachable_cost = int(max(finite, default=0.0) * size) + 1

    manager = pywrapcp.RoutingIndexManager(size, 1, 0)
    routing = pywrapcp.RoutingModel(manager)

    def transit_callback(from_index: int, to_index: int) -> int:
        from_node = manager.IndexToNode(from_index)
        to_node = manager.IndexToNode(to_index)
        if to_node == 0 and not round_trip:
            return 0
        value = durations[from_node][to_node]
        return int(round(value)) if math.isfinite(value) else unreachable_cost

    transit_index = routing.RegisterTransitCallback(transit_callback)
    routing.SetArcCostEvaluatorOfAllVehicles(transit_index)

    parameters = pywrapcp.DefaultRoutingSearchParameters()
    parameters.first_solution_strategy = (
        routing_enums_pb2.FirstSolutionStrategy.PATH_CHEAPEST_ARC
    )
    parameters.time_limit.seconds = time_limit_seconds

    solution = routing.SolveWithParameters(parameters)
    if solution is None:
        raise RuntimeError("No solution found for stop ordering")

    order: list[int] = []
    index = routing.Start(0)
    while not routing.IsEnd(index):
        order.append(manager.IndexToNode(index))
        index = solution.Value(routing.NextVar(index))
    return order
