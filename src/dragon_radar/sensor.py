"""Position sensor boundary.

A sensor is a push stream of fixes. Until the first fix arrives the session
simply has no position; that is a normal state, not an error.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .models import Coordinate, PlayerPosition
from .session import LOCATION_REQUIRED, GameSession


class PositionSensorError(RuntimeError):
    """Terminal sensor failure, e.g. location permission denied."""


@dataclass(slots=True, frozen=True)
class PositionFix:
    lat: float
    lng: float
    accuracy_meters: float = 0.0

    def to_position(self) -> PlayerPosition:
        return PlayerPosition(
            coordinate=Coordinate(latitude=self.lat, longitude=self.lng),
            accuracy_meters=self.accuracy_meters,
        )


class PositionSensor(Protocol):
    def fixes(self) -> AsyncIterator[PositionFix]:
        """Yield fixes until the stream ends or raises :class:`PositionSensorError`."""


class ReplayPositionSensor:
    """Replays a JSONL track of ``{"lat", "lng", "accuracy"}`` lines."""

    def __init__(self, track_path: str | Path, *, interval_seconds: float = 0.0) -> None:
        self._path = Path(track_path).expanduser()
        self._interval_seconds = interval_seconds

    async def fixes(self) -> AsyncIterator[PositionFix]:
        if not self._path.exists():
            raise PositionSensorError(f"Track file does not exist: {self._path}")

        with self._path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    payload = json.loads(line)
                    fix = PositionFix(
                        lat=float(payload["lat"]),
                        lng=float(payload["lng"]),
                        accuracy_meters=float(payload.get("accuracy", 0.0)),
                    )
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                    raise PositionSensorError(f"Bad fix on line {line_number}: {exc}") from exc
                yield fix
                if self._interval_seconds:
                    await asyncio.sleep(self._interval_seconds)


async def follow_sensor(
    session: GameSession,
    sensor: PositionSensor,
    *,
    logger: logging.Logger | None = None,
) -> int:
    """Feed every fix into ``session``; returns how many fixes were applied."""
    logger = logger or logging.getLogger("dragon_radar.sensor")
    applied = 0
    try:
        async for fix in sensor.fixes():
            try:
                position = fix.to_position()
            except ValueError:
                logger.warning("position_fix_rejected", extra={"lat": fix.lat, "lng": fix.lng})
                continue
            session.update_player_position(position)
            applied += 1
    except PositionSensorError as exc:
        logger.warning("position_sensor_stopped", extra={"reason": str(exc)})
        session.record_error(LOCATION_REQUIRED)
    return applied
