from __future__ import annotations

import math
from typing import Any

from delivery_planner.services.types import Coordinates, NavigationStep, RouteLeg

EARTH_RADIUS_METERS = 6_371_000.0
DEFAULT_AVERAGE_SPEED_KMH = 50.0
DEFAULT_FALLBACK_STEP_SECONDS = 300.0


def haversine_meters(point_a: Coordinates, point_b: Coordinates) -> float:
    lon1, lat1 = point_a
    lon2, lat2 = point_b
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)

    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2.0) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2.0) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c


def calculate_fallback_distance(coords: list[Coordinates]) -> float:
    return sum(haversine_meters(start, end) for start, end in zip(coords, coords[1:]))


def estimate_fallback_duration(
    distance_meters: float, average_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH
) -> float:
    meters_per_second = average_speed_kmh * 1000.0 / 3600.0
    return distance_meters / meters_per_second


def synthesize_fallback_steps(
    coords: list[Coordinates], step_seconds: float = DEFAULT_FALLBACK_STEP_SECONDS
) -> list[NavigationStep]:
    """Straight-line placeholder steps, one per consecutive pair of waypoints.

    Durations are a fixed nominal value rather than an estimate, so callers
    should present these steps as low confidence.
    """
    return [
        NavigationStep(
            instruction=f"Continue to stop {index}",
            distance=haversine_meters(start, end),
            duration=step_seconds,
            type="continue",
            coordinates=start,
        )
        for index, (start, end) in enumerate(zip(coords, coords[1:]), start=1)
    ]


def synthesize_fallback_legs(
    coords: list[Coordinates], average_speed_kmh: float = DEFAULT_AVERAGE_SPEED_KMH
) -> list[RouteLeg]:
    legs: list[RouteLeg] = []
    for start, end in zip(coords, coords[1:]):
        distance = haversine_meters(start, end)
        legs.append(
            RouteLeg(
                distance=distance,
                duration=estimate_fallback_duration(distance, average_speed_kmh),
            )
        )
    return legs


def is_valid_coordinates(value: Any) -> bool:
    try:
        longitude, latitude = value
        longitude = float(longitude)
        latitude = float(latitude)
    except (TypeError, ValueError):
        return False

    if not (math.isfinite(longitude) and math.isfinite(latitude)):
        return False
    return -180.0 <= longitude <= 180.0 and -90.0 <= latitude <= 90.0


def coordinate_key(coords: Coordinates, precision: int = 6) -> tuple[float, float]:
    return round(coords[0], precision), round(coords[1], precision)
