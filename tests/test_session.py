from __future__ import annotations

import asyncio
import logging
import random

import pytest

from dragon_radar.models import Coordinate, PlayerPosition, Race, RadarDesign, Target
from dragon_radar.oracle import LocationOracleClient, OracleRequest, Relocation
from dragon_radar.progression import ProgressionError
from dragon_radar.session import (
    FeatureLockedError,
    GameSession,
    NoEffectiveCenter,
    SessionState,
    restore_state,
    snapshot_state,
)
from dragon_radar.store import InMemorySnapshotStore

HOME = Coordinate(latitude=43.6, longitude=1.44)


def _places_near(center: Coordinate) -> list[dict]:
    return [
        {"name": f"Square {i}", "lat": center.latitude + i * 0.01, "lng": center.longitude}
        for i in range(1, 8)
    ]


class NearbyOracle:
    def __init__(self) -> None:
        self.requests: list[OracleRequest] = []

    def generate(self, request: OracleRequest):
        self.requests.append(request)
        return _places_near(request.center)

    def relocate(self, request: OracleRequest):
        self.requests.append(request)
        return {"name": "Bandstand", "lat": request.center.latitude, "lng": request.center.longitude + 0.02}


class GatedClient:
    """Oracle client whose answers are released by the test."""

    def __init__(self) -> None:
        self.release = asyncio.Event()

    async def request_candidates(self, center: Coordinate, range_km: float) -> list[Target]:
        await self.release.wait()
        return [
            Target(id=i, coordinate=center, star_count=i, display_name=f"Late {i}")
            for i in range(1, 8)
        ]

    async def request_relocation(self, center: Coordinate, range_km: float, star_count: int) -> Relocation:
        await self.release.wait()
        return Relocation(coordinate=center, display_name="Late relocation")


class BrokenStore(InMemorySnapshotStore):
    def save(self, payload):
        raise OSError("disk full")


def _session(store=None, oracle=None) -> GameSession:
    client = LocationOracleClient(oracle or NearbyOracle(), rng=random.Random(1))
    return GameSession(oracle_client=client, store=store or InMemorySnapshotStore())


def _found_targets() -> list[Target]:
    return [
        Target(id=i, coordinate=HOME, star_count=i, display_name=f"Spot {i}", found=True)
        for i in range(1, 8)
    ]


def test_refresh_requires_a_center() -> None:
    session = _session()

    with pytest.raises(NoEffectiveCenter):
        asyncio.run(session.refresh_targets())

    assert session.state.last_error == "Location required."
    assert session.state.targets == []


def test_refresh_replaces_targets_and_persists() -> None:
    store = InMemorySnapshotStore()
    session = _session(store=store)
    session.update_player_position(PlayerPosition(HOME, accuracy_meters=5.0))

    applied = asyncio.run(session.refresh_targets())

    assert applied is True
    assert [t.display_name for t in session.state.targets][0] == "Square 1"
    assert session.state.generation == 1
    assert session.state.loading is False
    assert store.load()["targets"][0]["name"] == "Square 1"


def test_position_updates_collect_and_announce_once() -> None:
    session = _session()
    announcements: list[int] = []
    session.on_all_found(lambda state: announcements.append(state.generation))
    session.update_player_position(PlayerPosition(HOME))
    asyncio.run(session.refresh_targets())

    for target in session.state.targets:
        assert session.update_player_position(PlayerPosition(target.coordinate)) == [target.id]

    assert session.has_all_targets is True
    assert announcements == [1]

    session.update_player_position(PlayerPosition(Coordinate(latitude=-20.0, longitude=57.5)))
    assert session.found_count == 7
    assert announcements == [1]


def test_scan_center_override_is_gated() -> None:
    oracle = NearbyOracle()
    session = _session(oracle=oracle)
    elsewhere = Coordinate(latitude=45.76, longitude=4.83)

    with pytest.raises(FeatureLockedError):
        session.set_scan_parameters(3.0, elsewhere)
    with pytest.raises(ValueError):
        session.set_scan_parameters(0.0)

    session.state.modifiers.unlocked_features.add("tech_custom_zone")
    session.set_scan_parameters(3.0, elsewhere)
    asyncio.run(session.refresh_targets())

    assert session.effective_center == elsewhere
    assert oracle.requests[-1].center == elsewhere
    assert oracle.requests[-1].range_km == 3.0


def test_set_scan_parameters_keeps_targets() -> None:
    session = _session()
    session.state.targets = _found_targets()

    session.set_scan_parameters(25.0)

    assert len(session.state.targets) == 7
    assert session.state.scan.range_km == 25.0


def test_stale_refresh_is_discarded() -> None:
    client = GatedClient()
    session = GameSession(oracle_client=client, store=InMemorySnapshotStore())
    session.state.targets = _found_targets()
    session.update_player_position(PlayerPosition(HOME))

    async def _run() -> bool:
        pending = asyncio.create_task(session.refresh_targets())
        await asyncio.sleep(0)
        assert session.state.loading is True
        assert session.grant_wish("race_namek").granted is True
        client.release.set()
        return await pending

    applied = asyncio.run(_run())

    assert applied is False
    assert session.state.targets == []
    assert session.state.loading is False
    assert session.state.generation == 1


def test_stale_relocation_is_discarded() -> None:
    client = GatedClient()
    session = GameSession(oracle_client=client, store=InMemorySnapshotStore())
    session.state.targets = _found_targets()
    session.update_player_position(PlayerPosition(HOME))

    async def _run() -> bool:
        pending = asyncio.create_task(session.relocate_target(3))
        await asyncio.sleep(0)
        assert session.state.loading is True
        assert session.grant_wish("race_namek").granted is True
        client.release.set()
        return await pending

    applied = asyncio.run(_run())

    assert applied is False
    assert session.state.targets == []
    assert session.state.loading is False


def test_relocate_keeps_identity() -> None:
    session = _session()
    session.update_player_position(PlayerPosition(HOME))
    asyncio.run(session.refresh_targets())
    before = session.state.targets[2]

    applied = asyncio.run(session.relocate_target(3))

    after = session.state.targets[2]
    assert applied is True
    assert (after.id, after.star_count) == (before.id, before.star_count) == (3, 3)
    assert after.display_name == "Bandstand"
    assert after.coordinate == Coordinate(latitude=HOME.latitude, longitude=HOME.longitude + 0.02)

    with pytest.raises(KeyError):
        asyncio.run(session.relocate_target(42))


def test_relocate_without_center_raises() -> None:
    session = _session()
    session.state.targets = _found_targets()

    with pytest.raises(NoEffectiveCenter):
        asyncio.run(session.relocate_target(1))


def test_grant_wish_through_session() -> None:
    store = InMemorySnapshotStore()
    session = _session(store=store)

    refused = session.grant_wish("race_namek")
    assert refused.error is ProgressionError.INSUFFICIENT_TARGETS
    assert store.saves == 0

    session.state.targets = _found_targets()
    granted = session.grant_wish("race_namek")

    assert granted.granted is True
    assert session.state.targets == []
    assert session.state.generation == 1
    assert store.load()["modifiers"]["race"] == "namek"


def test_persistence_failure_is_not_fatal(caplog) -> None:
    session = _session(store=BrokenStore())

    with caplog.at_level(logging.ERROR, logger="dragon_radar.session"):
        session.set_scan_parameters(7.0)

    assert session.state.scan.range_km == 7.0
    assert "snapshot_write_failed" in caplog.text


def test_snapshot_round_trip() -> None:
    state = SessionState(targets=_found_targets())
    state.targets[0].found = False
    state.scan.range_km = 42.0
    state.scan.center_override = Coordinate(latitude=1.5, longitude=-2.5)
    state.modifiers.active_design = RadarDesign.NAMEK
    state.modifiers.active_race = Race.KAIO
    state.modifiers.collection_radius_km = 0.16
    state.modifiers.unlocked_features.update({"race_namek", "dist_namek", "race_kaio"})

    restored = restore_state(snapshot_state(state))

    assert restored.targets == state.targets
    assert restored.scan == state.scan
    assert restored.modifiers == state.modifiers


def test_restore_applies_defaults_to_missing_and_invalid_fields() -> None:
    payload = {
        "targets": [{"id": 1, "lat": 0.0, "lng": 0.0, "stars": 1, "name": "Lonely"}],
        "modifiers": {"race": "android", "unlocked_features": ["race_namek"]},
    }

    restored = restore_state(payload, default_range_km=5.0)

    assert restored.targets == []
    assert restored.scan.range_km == 5.0
    assert restored.scan.center_override is None
    assert restored.modifiers.active_race is Race.TERRIEN
    assert restored.modifiers.active_design is RadarDesign.BULMA
    assert restored.modifiers.unlocked_features == {"race_terrien", "dist_terrien", "race_namek"}
    assert restore_state(None).modifiers.collection_radius_km == 0.2


def test_restore_from_store() -> None:
    original = _session()
    original.state.targets = _found_targets()
    original.set_scan_parameters(12.0)
    store = InMemorySnapshotStore(original.snapshot())

    session = GameSession.restore(oracle_client=LocationOracleClient(NearbyOracle()), store=store)

    assert session.state.scan.range_km == 12.0
    assert session.has_all_targets is True
    assert session.state.player_position is None


def test_restore_only_trusts_boolean_found_flags() -> None:
    payload = {
        "targets": [
            {"id": i, "lat": 0.0, "lng": 0.0, "stars": i, "name": f"Spot {i}", "found": flag}
            for i, flag in enumerate(["false", 1, True, "true", None, False, True], start=1)
        ]
    }

    restored = restore_state(payload)

    assert [target.found for target in restored.targets] == [False, False, True, False, False, False, True]


def test_restore_without_radius_keeps_earned_mastery() -> None:
    payload = {"modifiers": {"unlocked_features": ["race_namek", "dist_namek", "race_zeno", "dist_zeno"]}}

    assert restore_state(payload).modifiers.collection_radius_km == 0.04
    assert restore_state({"modifiers": {"unlocked_features": ["dist_kaio"]}}).modifiers.collection_radius_km == 0.16
    explicit = {"modifiers": {"collection_radius_km": 0.1, "unlocked_features": ["dist_zeno"]}}
    assert restore_state(explicit).modifiers.collection_radius_km == 0.1
