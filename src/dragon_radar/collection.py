"""Proximity collection: marks targets found once the player is close enough."""

from __future__ import annotations

from collections.abc import Iterable

from .geo import haversine_distance_km
from .models import TARGET_COUNT, PlayerPosition, Target


def evaluate_collection(
    position: PlayerPosition | None,
    targets: Iterable[Target],
    collection_radius_km: float,
) -> list[int]:
    """Flip ``found`` on every unfound target strictly inside the radius.

    Returns the ids that transitioned on this pass. Found targets are skipped,
    so repeated passes over the same inputs return an empty list.
    """
    if position is None:
        return []

    newly_found: list[int] = []
    for target in targets:
        if target.found:
            continue
        if haversine_distance_km(position.coordinate, target.coordinate) < collection_radius_km:
            target.found = True
            newly_found.append(target.id)
    return newly_found


def found_count(targets: Iterable[Target]) -> int:
    return sum(1 for target in targets if target.found)


def all_found(targets: list[Target]) -> bool:
    return len(targets) == TARGET_COUNT and all(target.found for target in targets)
