from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

# (longitude, latitude) in WGS84 degrees
Coordinates = tuple[float, float]

RouteStatus = Literal["complete", "partial", "fallback"]
OptimizationStrategy = Literal["optimization", "nearest_neighbor", "ortools", "identity"]


@dataclass(slots=True)
class DeliveryStop:
    id: str
    address: str
    coordinates: Coordinates
    completed: bool = False
    postponed: bool = False
    order: int = 0
    estimated_time: float | None = None
    distance_from_previous: float | None = None


@dataclass(slots=True, frozen=True)
class NavigationStep:
    instruction: str
    distance: float
    duration: float
    type: str = "continue"
    coordinates: Coordinates | None = None


@dataclass(slots=True, frozen=True)
class RouteLeg:
    distance: float
    duration: float


@dataclass(slots=True, frozen=True)
class RouteResult:
    distance: float
    duration: float
    geometry: list[Coordinates]
    steps: list[NavigationStep]
    legs: list[RouteLeg] = field(default_factory=list)
    status: RouteStatus = "complete"


@dataclass(slots=True, frozen=True)
class GeocodeResult:
    coordinates: Coordinates
    provider: str


@dataclass(slots=True, frozen=True)
class OptimizationResult:
    coordinates: list[Coordinates]
    strategy: OptimizationStrategy
