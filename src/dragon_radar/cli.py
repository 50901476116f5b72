"""CLI-side handler wrappers over the async game session."""

from __future__ import annotations

import asyncio
from pathlib import Path

from dragon_radar.models import Coordinate, PlayerPosition
from dragon_radar.progression import WishAvailability, WishResult
from dragon_radar.radar import RadarView, build_radar_view
from dragon_radar.sensor import ReplayPositionSensor, follow_sensor
from dragon_radar.session import GameSession, SessionState


class CliSessionHandler:
    """Simple sync-friendly facade over :class:`GameSession`."""

    def __init__(self, session: GameSession) -> None:
        self._session = session

    @property
    def state(self) -> SessionState:
        return self._session.state

    def locate(self, lat: float | None, lng: float | None, accuracy: float = 0.0) -> list[int]:
        if lat is None or lng is None:
            return []
        position = PlayerPosition(coordinate=Coordinate(latitude=lat, longitude=lng), accuracy_meters=accuracy)
        return self._session.update_player_position(position)

    def configure_scan(
        self,
        range_km: float | None,
        center_lat: float | None = None,
        center_lng: float | None = None,
    ) -> None:
        center = self.state.scan.center_override
        if center_lat is not None and center_lng is not None:
            center = Coordinate(latitude=center_lat, longitude=center_lng)
        if range_km is None and (center_lat is None or center_lng is None):
            return
        self._session.set_scan_parameters(range_km or self.state.scan.range_km, center)

    def scan(self) -> bool:
        return asyncio.run(self._session.refresh_targets())

    def relocate(self, target_id: int) -> bool:
        return asyncio.run(self._session.relocate_target(target_id))

    def wish(self, node_id: str) -> WishResult:
        return self._session.grant_wish(node_id)

    def wishes(self) -> list[WishAvailability]:
        return self._session.graph.availability(self.state)

    def radar(self, zoom_step: int = 0) -> RadarView:
        return build_radar_view(self.state, zoom_step)

    def follow(self, track_path: str | Path, interval_seconds: float = 0.0) -> int:
        sensor = ReplayPositionSensor(track_path, interval_seconds=interval_seconds)
        return asyncio.run(follow_sensor(self._session, sensor))
