from __future__ import annotations

import math

import pytest

from delivery_planner.services.geo import (
    calculate_fallback_distance,
    coordinate_key,
    estimate_fallback_duration,
    haversine_meters,
    is_valid_coordinates,
    synthesize_fallback_legs,
    synthesize_fallback_steps,
)

ONE_DEGREE_METERS = 6_371_000.0 * math.pi / 180.0


def test_haversine_one_degree_of_latitude() -> None:
    assert haversine_meters((0.0, 0.0), (0.0, 1.0)) == pytest.approx(ONE_DEGREE_METERS)


def test_haversine_is_symmetric_and_zero_for_same_point() -> None:
    a = (34.78, 32.08)
    b = (34.80, 32.09)

    assert haversine_meters(a, a) == 0.0
    assert haversine_meters(a, b) == pytest.approx(haversine_meters(b, a))


def test_fallback_duration_uses_fifty_kmh() -> None:
    assert estimate_fallback_duration(50_000.0) == pytest.approx(3600.0)
    assert estimate_fallback_duration(13.89) == pytest.approx(1.0, rel=1e-3)


def test_fallback_distance_sums_consecutive_legs() -> None:
    coords = [(34.78, 32.08), (34.80, 32.09), (34.79, 32.07)]

    expected = haversine_meters(coords[0], coords[1]) + haversine_meters(coords[1], coords[2])
    assert calculate_fallback_distance(coords) == pytest.approx(expected)
    assert calculate_fallback_distance(coords[:1]) == 0.0


def test_fallback_steps_one_per_leg_with_nominal_duration() -> None:
    coords = [(34.78, 32.08), (34.80, 32.09), (34.79, 32.07)]

    steps = synthesize_fallback_steps(coords)

    assert len(steps) == 2
    assert [step.duration for step in steps] == [300.0, 300.0]
    assert steps[0].distance == pytest.approx(haversine_meters(coords[0], coords[1]))
    assert steps[1].coordinates == coords[1]
    assert steps[0].instruction == "Continue to stop 1"
    assert all(step.type == "continue" for step in steps)


def test_fallback_legs_estimate_duration_from_distance() -> None:
    coords = [(0.0, 0.0), (0.0, 1.0)]

    (leg,) = synthesize_fallback_legs(coords)

    assert leg.distance == pytest.approx(ONE_DEGREE_METERS)
    assert leg.duration == pytest.approx(estimate_fallback_duration(ONE_DEGREE_METERS))


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ((34.78, 32.08), True),
        ([-180.0, 90.0], True),
        ((float("nan"), 32.0), False),
        ((34.0, float("inf")), False),
        ((181.0, 0.0), False),
        ((0.0, -91.0), False),
        (None, False),
        (("a", "b"), False),
        ((1.0,), False),
    ],
)
def test_is_valid_coordinates(value, expected) -> None:
    assert is_valid_coordinates(value) is expected


def test_coordinate_key_absorbs_precision_drift() -> None:
    assert coordinate_key((34.8000000001, 32.09)) == coordinate_key((34.8, 32.0900000002))
