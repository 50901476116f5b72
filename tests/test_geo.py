from __future__ import annotations

import math
import random

import pytest

from dragon_radar.geo import (
    haversine_distance_km,
    offset_coordinate,
    project_relative,
    project_to_normalized_screen,
    random_point_within_radius,
)
from dragon_radar.models import Coordinate

PARIS = Coordinate(latitude=48.8566, longitude=2.3522)
LONDON = Coordinate(latitude=51.5074, longitude=-0.1278)


def test_haversine_known_distance_and_symmetry() -> None:
    distance = haversine_distance_km(PARIS, LONDON)

    assert distance == pytest.approx(343.5, abs=1.0)
    assert haversine_distance_km(LONDON, PARIS) == pytest.approx(distance)
    assert haversine_distance_km(PARIS, PARIS) == 0.0


def test_coordinate_rejects_out_of_range_values() -> None:
    with pytest.raises(ValueError):
        Coordinate(latitude=91.0, longitude=0.0)
    with pytest.raises(ValueError):
        Coordinate(latitude=0.0, longitude=-180.5)


def test_project_relative_uses_flat_approximation() -> None:
    center = Coordinate(latitude=60.0, longitude=10.0)
    offset = project_relative(center, Coordinate(latitude=60.01, longitude=10.02))

    assert offset.dy_km == pytest.approx(1.11)
    assert offset.dx_km == pytest.approx(0.02 * 111.0 * 0.5)


def test_normalized_screen_center_and_north() -> None:
    center = PARIS
    north = offset_coordinate(center, dx_km=0.0, dy_km=5.0)

    origin = project_to_normalized_screen(center, center, range_km=10.0)
    point = project_to_normalized_screen(center, north, range_km=10.0)

    assert (origin.x, origin.y) == (0.5, 0.5)
    assert point.x == pytest.approx(0.5)
    assert point.y == pytest.approx(0.25)


def test_normalized_screen_culls_points_outside_radar_face() -> None:
    center = PARIS
    # Inside the bounding square but outside the circular face.
    corner = offset_coordinate(center, dx_km=8.0, dy_km=8.0)
    far = offset_coordinate(center, dx_km=0.0, dy_km=-12.0)

    for point in (corner, far):
        projected = project_to_normalized_screen(center, point, range_km=10.0)
        assert projected.x is None and projected.y is None
        assert projected.visible is False


def test_random_point_stays_within_radius() -> None:
    rng = random.Random(7)
    for _ in range(200):
        point = random_point_within_radius(PARIS, 3.0, rng)
        offset = project_relative(PARIS, point)
        assert math.hypot(offset.dx_km, offset.dy_km) < 3.0 + 1e-9
