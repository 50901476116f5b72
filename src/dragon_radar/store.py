"""Snapshot persistence for the game session."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

STATE_KEY = "radar_v_progression_final"


class SnapshotStore(Protocol):
    """Key-value persistence contract for the serialized session."""

    def load(self) -> dict[str, Any] | None:
        """Return the last saved snapshot, or ``None`` when nothing usable exists."""

    def save(self, payload: dict[str, Any]) -> None:
        """Persist ``payload`` as the latest snapshot."""


class InMemorySnapshotStore:
    """Keeps the latest snapshot in memory."""

    def __init__(self, payload: dict[str, Any] | None = None) -> None:
        self._payload = payload
        self.saves = 0

    def load(self) -> dict[str, Any] | None:
        return None if self._payload is None else json.loads(json.dumps(self._payload))

    def save(self, payload: dict[str, Any]) -> None:
        self._payload = json.loads(json.dumps(payload))
        self.saves += 1


class JsonFileSnapshotStore:
    """JSON file holding the snapshot under a fixed application key."""

    def __init__(
        self,
        file_path: str | Path,
        *,
        key: str = STATE_KEY,
        logger: logging.Logger | None = None,
    ) -> None:
        self._path = Path(file_path).expanduser()
        self._key = key
        self._logger = logger or logging.getLogger("dragon_radar.store")

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                document = json.load(handle)
        except (OSError, json.JSONDecodeError):
            self._logger.warning("snapshot_unreadable", extra={"path": str(self._path)})
            return None

        payload = document.get(self._key) if isinstance(document, dict) else None
        return payload if isinstance(payload, dict) else None

    def save(self, payload: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump({self._key: payload}, handle, indent=2)
        tmp_path.replace(self._path)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
