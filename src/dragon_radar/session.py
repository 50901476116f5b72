"""Game session aggregate: the single owner of radar state.

Every write path goes through :class:`GameSession`. Each mutation hands a full
snapshot to the configured :class:`~dragon_radar.store.SnapshotStore`; write
failures are logged and never roll back in-memory state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .collection import all_found, evaluate_collection, found_count
from .models import (
    DEFAULT_UNLOCKED_FEATURES,
    MASTERY_RADIUS_KM,
    TARGET_COUNT,
    Coordinate,
    PlayerPosition,
    ProgressionModifiers,
    Race,
    RadarDesign,
    ScanParameters,
    Target,
)
from .oracle import LocationOracleClient
from .progression import CUSTOM_ZONE_FEATURE, ProgressionGraph, WishResult, mastery_node_id
from .store import InMemorySnapshotStore, SnapshotStore

SCHEMA_VERSION = 1
LOCATION_REQUIRED = "Location required."

_logger = logging.getLogger("dragon_radar.session")


class ScanError(RuntimeError):
    """A scan or relocation cannot be issued in the current state."""


class NoEffectiveCenter(ScanError):
    """Neither a position fix nor a centre override is available."""

    def __init__(self) -> None:
        super().__init__(LOCATION_REQUIRED)


class FeatureLockedError(RuntimeError):
    """An operation needs a progression feature that is not unlocked yet."""


@dataclass(slots=True)
class SessionState:
    targets: list[Target] = field(default_factory=list)
    player_position: PlayerPosition | None = None
    scan: ScanParameters = field(default_factory=ScanParameters)
    modifiers: ProgressionModifiers = field(default_factory=ProgressionModifiers)
    loading: bool = False
    generation: int = 0
    last_error: str | None = None


def effective_center(state: SessionState) -> Coordinate | None:
    """Centre override when set, otherwise the live position."""
    if state.scan.center_override is not None:
        return state.scan.center_override
    if state.player_position is not None:
        return state.player_position.coordinate
    return None


def _coordinate_to_json(coordinate: Coordinate | None) -> dict[str, float] | None:
    if coordinate is None:
        return None
    return {"lat": coordinate.latitude, "lng": coordinate.longitude}


def _coordinate_from_json(payload: Any) -> Coordinate:
    return Coordinate(latitude=float(payload["lat"]), longitude=float(payload["lng"]))


def snapshot_state(state: SessionState) -> dict[str, Any]:
    """Serialize the persisted part of the session (targets, scan, modifiers)."""
    return {
        "schema_version": SCHEMA_VERSION,
        "targets": [
            {
                "id": target.id,
                "lat": target.coordinate.latitude,
                "lng": target.coordinate.longitude,
                "stars": target.star_count,
                "found": target.found,
                "name": target.display_name,
            }
            for target in state.targets
        ],
        "scan": {
            "range_km": state.scan.range_km,
            "center_override": _coordinate_to_json(state.scan.center_override),
        },
        "modifiers": {
            "design": state.modifiers.active_design.value,
            "race": state.modifiers.active_race.value,
            "collection_radius_km": state.modifiers.collection_radius_km,
            "unlocked_features": sorted(state.modifiers.unlocked_features),
        },
    }


def restore_state(payload: dict[str, Any] | None, *, default_range_km: float = 10.0) -> SessionState:
    """Rebuild state from a snapshot, taking the default for every missing or invalid field."""
    state = SessionState(scan=ScanParameters(range_km=default_range_km))
    if not payload:
        return state

    scan = payload.get("scan") or {}
    modifiers = payload.get("modifiers") or {}

    state.targets = _restore_field("targets", lambda: _restore_targets(payload["targets"]), [])
    state.scan.range_km = _restore_field("scan.range_km", lambda: _positive(scan["range_km"]), default_range_km)
    state.scan.center_override = _restore_field(
        "scan.center_override",
        lambda: None if scan["center_override"] is None else _coordinate_from_json(scan["center_override"]),
        None,
    )

    defaults = ProgressionModifiers()
    state.modifiers.active_design = _restore_field(
        "modifiers.design", lambda: RadarDesign(modifiers["design"]), defaults.active_design
    )
    state.modifiers.active_race = _restore_field("modifiers.race", lambda: Race(modifiers["race"]), defaults.active_race)
    state.modifiers.unlocked_features = set(DEFAULT_UNLOCKED_FEATURES) | _restore_field(
        "modifiers.unlocked_features",
        lambda: {str(item) for item in modifiers["unlocked_features"]},
        set(),
    )
    state.modifiers.collection_radius_km = _restore_field(
        "modifiers.collection_radius_km",
        lambda: _positive(modifiers["collection_radius_km"]),
        _earned_radius_km(state.modifiers.unlocked_features),
    )
    return state


def _earned_radius_km(unlocked_features: set[str]) -> float:
    earned = [radius for race, radius in MASTERY_RADIUS_KM.items() if mastery_node_id(race) in unlocked_features]
    return min(earned, default=MASTERY_RADIUS_KM[Race.TERRIEN])


def _restore_field(name: str, load: Callable[[], Any], default: Any) -> Any:
    try:
        return load()
    except KeyError:
        return default
    except (AttributeError, TypeError, ValueError):
        _logger.warning("snapshot_field_invalid", extra={"field": name})
        return default


def _positive(value: Any) -> float:
    number = float(value)
    if number <= 0:
        raise ValueError(f"Expected a positive number, got {number}")
    return number


def _restore_targets(items: Any) -> list[Target]:
    targets = [
        Target(
            id=int(item["id"]),
            coordinate=_coordinate_from_json(item),
            star_count=int(item["stars"]),
            display_name=str(item["name"]),
            found=item.get("found") is True,
        )
        for item in items
    ]
    if targets and len(targets) != TARGET_COUNT:
        raise ValueError(f"Expected {TARGET_COUNT} targets, got {len(targets)}")
    return targets


class GameSession:
    """Aggregate root exposing every write path into the game core."""

    def __init__(
        self,
        *,
        oracle_client: LocationOracleClient,
        store: SnapshotStore | None = None,
        graph: ProgressionGraph | None = None,
        state: SessionState | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._oracle_client = oracle_client
        self._store = store or InMemorySnapshotStore()
        self._graph = graph or ProgressionGraph()
        self._state = state or SessionState()
        self._logger = logger or _logger
        self._in_flight = 0
        self._announced_generation: int | None = None
        self._all_found_listeners: list[Callable[[SessionState], None]] = []

    @classmethod
    def restore(
        cls,
        *,
        oracle_client: LocationOracleClient,
        store: SnapshotStore,
        graph: ProgressionGraph | None = None,
        default_range_km: float = 10.0,
        logger: logging.Logger | None = None,
    ) -> GameSession:
        state = restore_state(store.load(), default_range_km=default_range_km)
        session = cls(oracle_client=oracle_client, store=store, graph=graph, state=state, logger=logger)
        if all_found(state.targets):
            session._announced_generation = state.generation
        return session

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def graph(self) -> ProgressionGraph:
        return self._graph

    @property
    def effective_center(self) -> Coordinate | None:
        return effective_center(self._state)

    @property
    def found_count(self) -> int:
        return found_count(self._state.targets)

    @property
    def has_all_targets(self) -> bool:
        return all_found(self._state.targets)

    def on_all_found(self, listener: Callable[[SessionState], None]) -> None:
        """Register a callback fired once per target set when all seven are found."""
        self._all_found_listeners.append(listener)

    def snapshot(self) -> dict[str, Any]:
        return snapshot_state(self._state)

    def update_player_position(self, position: PlayerPosition) -> list[int]:
        self._state.player_position = position
        newly_found = self._reevaluate()
        if newly_found:
            self._persist()
        return newly_found

    def set_scan_parameters(self, range_km: float, center_override: Coordinate | None = None) -> None:
        if range_km <= 0:
            raise ValueError("range_km must be positive")
        if center_override is not None and not self._state.modifiers.is_unlocked(CUSTOM_ZONE_FEATURE):
            raise FeatureLockedError("A custom scan centre requires the custom scan zone wish.")

        self._state.scan = ScanParameters(range_km=range_km, center_override=center_override)
        self._logger.info(
            "scan_parameters_set",
            extra={"range_km": range_km, "center_override": _coordinate_to_json(center_override)},
        )
        self._persist()

    async def refresh_targets(self) -> bool:
        """Replace the target set from the oracle.

        Returns ``False`` when the result was discarded because the target set
        moved on while the request was in flight.
        """
        center = self._require_center()
        range_km = self._state.scan.range_km
        generation = self._state.generation

        self._begin_request()
        try:
            targets = await self._oracle_client.request_candidates(center, range_km)
        finally:
            self._end_request()

        if generation != self._state.generation:
            self._logger.debug("stale_response_discarded", extra={"request": "refresh", "generation": generation})
            return False

        self._state.targets = targets
        self._state.generation += 1
        self._state.last_error = None
        self._logger.info("targets_refreshed", extra={"generation": self._state.generation, "range_km": range_km})
        self._reevaluate()
        self._persist()
        return True

    async def relocate_target(self, target_id: int) -> bool:
        """Move one target to a new oracle-picked place, keeping its identity."""
        target = self._find_target(target_id)
        center = self._require_center()
        generation = self._state.generation

        self._begin_request()
        try:
            relocation = await self._oracle_client.request_relocation(
                center, self._state.scan.range_km, target.star_count
            )
        finally:
            self._end_request()

        if generation != self._state.generation:
            self._logger.debug("stale_response_discarded", extra={"request": "relocate", "generation": generation})
            return False

        target.coordinate = relocation.coordinate
        target.display_name = relocation.display_name
        self._logger.info(
            "target_relocated",
            extra={"target_id": target.id, "fallback": relocation.used_fallback},
        )
        self._reevaluate()
        self._persist()
        return True

    def grant_wish(self, node_id: str) -> WishResult:
        result = self._graph.grant_wish(node_id, self._state)
        if not result.granted:
            self._logger.info(
                "wish_refused",
                extra={"node_id": node_id, "error": result.error.value if result.error else None},
            )
            return result

        if result.targets_consumed:
            self._state.generation += 1
        self._logger.info("wish_granted", extra={"node_id": node_id, "consumed": result.targets_consumed})
        self._persist()
        return result

    def record_error(self, message: str | None) -> None:
        """Expose a user-visible error (for example a lost position sensor)."""
        self._state.last_error = message

    def _find_target(self, target_id: int) -> Target:
        for target in self._state.targets:
            if target.id == target_id:
                return target
        raise KeyError(f"Unknown target id: {target_id}")

    def _require_center(self) -> Coordinate:
        center = self.effective_center
        if center is None:
            self._state.last_error = LOCATION_REQUIRED
            raise NoEffectiveCenter()
        return center

    def _begin_request(self) -> None:
        self._in_flight += 1
        self._state.loading = True

    def _end_request(self) -> None:
        self._in_flight -= 1
        self._state.loading = self._in_flight > 0

    def _reevaluate(self) -> list[int]:
        newly_found = evaluate_collection(
            self._state.player_position,
            self._state.targets,
            self._state.modifiers.collection_radius_km,
        )
        if newly_found:
            self._logger.info("targets_found", extra={"target_ids": newly_found, "found_count": self.found_count})
        if self.has_all_targets and self._announced_generation != self._state.generation:
            self._announced_generation = self._state.generation
            for listener in self._all_found_listeners:
                listener(self._state)
        return newly_found

    def _persist(self) -> None:
        try:
            self._store.save(self.snapshot())
        except Exception:  # noqa: BLE001 - persistence is best effort.
            self._logger.exception("snapshot_write_failed")
