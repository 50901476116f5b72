"""Geodesic helpers for distance checks and radar projection.

Distances used for collection go through :func:`haversine_distance_km`.
Everything else relies on a local flat-earth approximation (one degree of
latitude ~ 111 km) which is only meaningful for radar display ranges.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass

from .models import Coordinate

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0


@dataclass(slots=True, frozen=True)
class RelativeOffset:
    dx_km: float
    dy_km: float


@dataclass(slots=True, frozen=True)
class ScreenPoint:
    """Position on the unit radar face; both fields are ``None`` when off-face."""

    x: float | None
    y: float | None

    @property
    def visible(self) -> bool:
        return self.x is not None and self.y is not None


def haversine_distance_km(a: Coordinate, b: Coordinate) -> float:
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def project_relative(center: Coordinate, point: Coordinate) -> RelativeOffset:
    dy_km = (point.latitude - center.latitude) * KM_PER_DEGREE
    dx_km = (point.longitude - center.longitude) * KM_PER_DEGREE * math.cos(math.radians(center.latitude))
    return RelativeOffset(dx_km=dx_km, dy_km=dy_km)


def project_to_normalized_screen(center: Coordinate, point: Coordinate, range_km: float) -> ScreenPoint:
    """Map ``point`` onto the unit square with ``center`` at (0.5, 0.5).

    The radar face is the circle of radius 0.5 (``range_km`` on the ground).
    Screen ``y`` grows downward, so north maps to smaller values.
    """
    if range_km <= 0:
        raise ValueError("range_km must be positive")

    offset = project_relative(center, point)
    x = 0.5 + (offset.dx_km / range_km) * 0.5
    y = 0.5 - (offset.dy_km / range_km) * 0.5
    if math.hypot(x - 0.5, y - 0.5) > 0.5:
        return ScreenPoint(x=None, y=None)
    return ScreenPoint(x=x, y=y)


def offset_coordinate(center: Coordinate, dx_km: float, dy_km: float) -> Coordinate:
    """Inverse of :func:`project_relative`."""
    lat = center.latitude + dy_km / KM_PER_DEGREE
    cos_lat = math.cos(math.radians(center.latitude))
    # At the poles east-west offsets collapse onto the same meridian.
    lon = center.longitude + (dx_km / (KM_PER_DEGREE * cos_lat) if abs(cos_lat) > 1e-9 else 0.0)
    lat = max(-90.0, min(90.0, lat))
    lon = (lon + 180.0) % 360.0 - 180.0
    return Coordinate(latitude=lat, longitude=lon)


def random_point_within_radius(center: Coordinate, max_radius_km: float, rng: random.Random) -> Coordinate:
    """Uniform bearing with a uniform (not area-uniform) distance in ``[0, max_radius_km)``."""
    bearing = rng.random() * 2 * math.pi
    distance = rng.random() * max_radius_km
    return offset_coordinate(
        center,
        dx_km=distance * math.sin(bearing),
        dy_km=distance * math.cos(bearing),
    )
