"""Radar view-model: what the radar face shows for a given session and zoom step."""

from __future__ import annotations

from dataclasses import dataclass, field

from .geo import project_to_normalized_screen
from .models import Coordinate
from .progression import WORLD_SCAN_RANGE_KM
from .session import SessionState, effective_center

# Tapping the radar cycles through these multipliers, then the map view.
ZOOM_MULTIPLIERS = (1.0, 0.5, 0.2, 0.1)
MAP_VIEW_STEP = len(ZOOM_MULTIPLIERS)
ZOOM_STEP_COUNT = MAP_VIEW_STEP + 1


@dataclass(slots=True, frozen=True)
class RadarBlip:
    target_id: int
    star_count: int
    found: bool
    x: float
    y: float


@dataclass(slots=True)
class RadarView:
    center: Coordinate | None
    displayed_range_km: float
    map_view: bool
    blips: list[RadarBlip] = field(default_factory=list)


def next_zoom_step(step: int) -> int:
    return (step + 1) % ZOOM_STEP_COUNT


def is_map_view(step: int) -> bool:
    return step % ZOOM_STEP_COUNT == MAP_VIEW_STEP


def displayed_range_km(base_range_km: float, step: int) -> float:
    """Range covered by the radar face at ``step``; world scans are never zoomed."""
    if base_range_km >= WORLD_SCAN_RANGE_KM:
        return WORLD_SCAN_RANGE_KM
    step = step % ZOOM_STEP_COUNT
    multiplier = ZOOM_MULTIPLIERS[step] if step < MAP_VIEW_STEP else 1.0
    return base_range_km * multiplier


def build_radar_view(state: SessionState, zoom_step: int = 0) -> RadarView:
    center = effective_center(state)
    range_km = displayed_range_km(state.scan.range_km, zoom_step)
    view = RadarView(center=center, displayed_range_km=range_km, map_view=is_map_view(zoom_step))
    if center is None:
        return view

    for target in state.targets:
        point = project_to_normalized_screen(center, target.coordinate, range_km)
        if not point.visible:
            continue
        view.blips.append(
            RadarBlip(
                target_id=target.id,
                star_count=target.star_count,
                found=target.found,
                x=point.x,
                y=point.y,
            )
        )
    return view


def map_zoom_level(range_km: float) -> int:
    """Tile zoom level the map view uses to frame ``range_km``."""
    if range_km >= WORLD_SCAN_RANGE_KM:
        return 2
    if range_km >= 1000:
        return 6
    if range_km <= 1:
        return 15
    if range_km <= 10:
        return 12
    if range_km <= 100:
        return 9
    return 3


def format_distance(distance_km: float) -> str:
    if distance_km > 1:
        return f"{distance_km:.2f} km"
    return f"{distance_km * 1000:.0f} m"
