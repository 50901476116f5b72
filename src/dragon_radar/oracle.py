"""Location oracle boundary and the validate-or-fallback client in front of it.

The oracle is an external generative service asked for public, land-based
places around a centre. Its output is only shape-checked here: the safety
constraints sent along with each request are advisory and cannot be verified.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import requests
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, TypeAdapter, ValidationError

from .geo import random_point_within_radius
from .models import TARGET_COUNT, Coordinate, Target

FALLBACK_SPREAD = 0.8
RELOCATION_SPREAD = 0.5

PLACE_CONSTRAINTS = (
    "Strictly public places: parks, city squares, public monuments, beaches, open hiking trails.",
    "On dry land, never in lakes, rivers or the sea.",
    "Reachable on foot without climbing fences or breaking laws.",
    "No cemeteries, military bases, hospitals or schools.",
)


class OracleMode(str, Enum):
    LOCAL = "local"
    GLOBAL = "global"


class OracleUnavailable(RuntimeError):
    """Raised when the oracle cannot be reached or is not configured."""


class OracleMalformedResponse(ValueError):
    """Raised when the oracle answered with something that is not a usable place list."""


@dataclass(slots=True, frozen=True)
class OracleRequest:
    center: Coordinate
    range_km: float
    mode: OracleMode = OracleMode.LOCAL
    count: int = TARGET_COUNT


@dataclass(slots=True, frozen=True)
class Relocation:
    coordinate: Coordinate
    display_name: str
    used_fallback: bool = False


class LocationOracle(Protocol):
    """Generative place source; returns decoded JSON."""

    def generate(self, request: OracleRequest) -> Any:
        """Return a list of ``{name, lat, lng}`` objects."""

    def relocate(self, request: OracleRequest) -> Any:
        """Return a single ``{name, lat, lng}`` object."""


class CandidatePlace(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(min_length=1)
    lat: StrictFloat = Field(ge=-90.0, le=90.0, allow_inf_nan=False)
    lng: StrictFloat = Field(ge=-180.0, le=180.0, allow_inf_nan=False)

    def coordinate(self) -> Coordinate:
        return Coordinate(latitude=self.lat, longitude=self.lng)


_CANDIDATE_LIST = TypeAdapter(list[CandidatePlace])


def build_prompt(request: OracleRequest) -> str:
    lines = [
        f"Find {request.count} real-world coordinates for a treasure hunt game.",
        f"CENTER: latitude {request.center.latitude}, longitude {request.center.longitude}",
        f"RADIUS: {request.range_km}km",
    ]
    if request.mode is OracleMode.GLOBAL:
        lines.append(
            "GLOBAL SCAN: choose iconic public landmarks on different continents "
            "to represent a worldwide search."
        )
    lines.append("STRICT CONSTRAINTS:")
    lines.extend(f"{index}. {rule}" for index, rule in enumerate(PLACE_CONSTRAINTS, start=1))
    if request.count > 1:
        lines.append(f"Spread the points across the {request.range_km}km radius.")
    lines.append('Answer with JSON only, objects shaped {"name": str, "lat": number, "lng": number}.')
    return "\n".join(lines)


class HttpLocationOracle:
    """Oracle reached through a JSON-over-HTTP endpoint.

    The endpoint receives ``{"action", "prompt", "center", "range_km", "mode",
    "count"}`` and answers with the place JSON, either directly or wrapped as a
    string in a ``text`` field (raw model output).
    """

    def __init__(
        self,
        endpoint: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 20.0,
        session: requests.Session | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def generate(self, request: OracleRequest) -> Any:
        return self._post("generate", request)

    def relocate(self, request: OracleRequest) -> Any:
        return self._post("relocate", request)

    def _post(self, action: str, request: OracleRequest) -> Any:
        body = {
            "action": action,
            "prompt": build_prompt(request),
            "center": {"lat": request.center.latitude, "lng": request.center.longitude},
            "range_km": request.range_km,
            "mode": request.mode.value,
            "count": request.count,
        }
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = self._session.post(self.endpoint, json=body, headers=headers, timeout=self._timeout_seconds)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise OracleUnavailable(f"{type(exc).__name__}: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise OracleMalformedResponse("Oracle response is not JSON") from exc

        if isinstance(payload, dict) and isinstance(payload.get("text"), str):
            try:
                payload = json.loads(payload["text"])
            except json.JSONDecodeError as exc:
                raise OracleMalformedResponse("Oracle text field is not JSON") from exc
        return payload


class OfflineLocationOracle:
    """Used when no endpoint is configured; every scan is synthesized locally."""

    def generate(self, request: OracleRequest) -> Any:
        raise OracleUnavailable("No location oracle endpoint is configured")

    def relocate(self, request: OracleRequest) -> Any:
        raise OracleUnavailable("No location oracle endpoint is configured")


def parse_candidates(payload: Any) -> list[Target]:
    """Validate a generation payload into exactly seven fresh targets."""
    if not isinstance(payload, list):
        raise OracleMalformedResponse(f"Expected a list of places, got {type(payload).__name__}")
    try:
        places = _CANDIDATE_LIST.validate_python(payload[:TARGET_COUNT])
    except ValidationError as exc:
        raise OracleMalformedResponse(f"Invalid place entry: {exc.error_count()} error(s)") from exc
    if len(places) < TARGET_COUNT:
        raise OracleMalformedResponse(f"Expected {TARGET_COUNT} places, got {len(places)}")

    return [
        Target(id=index, coordinate=place.coordinate(), star_count=index, display_name=place.name)
        for index, place in enumerate(places, start=1)
    ]


def parse_relocation(payload: Any) -> Relocation:
    try:
        place = CandidatePlace.model_validate(payload)
    except ValidationError as exc:
        raise OracleMalformedResponse(f"Invalid relocation payload: {exc.error_count()} error(s)") from exc
    return Relocation(coordinate=place.coordinate(), display_name=place.name)


class LocationOracleClient:
    """Total front for a :class:`LocationOracle`: every call resolves to usable data."""

    def __init__(
        self,
        oracle: LocationOracle,
        *,
        timeout_seconds: float = 20.0,
        global_range_threshold_km: float = 10_000.0,
        rng: random.Random | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._oracle = oracle
        self._timeout_seconds = timeout_seconds
        self._global_range_threshold_km = global_range_threshold_km
        self._rng = rng or random.Random()
        self._logger = logger or logging.getLogger("dragon_radar.oracle")

    def mode_for(self, range_km: float) -> OracleMode:
        return OracleMode.GLOBAL if range_km >= self._global_range_threshold_km else OracleMode.LOCAL

    async def request_candidates(self, center: Coordinate, range_km: float) -> list[Target]:
        """Return seven targets around ``center``; never raises."""
        request = OracleRequest(center=center, range_km=range_km, mode=self.mode_for(range_km))
        try:
            payload = await self._call(self._oracle.generate, request)
            targets = parse_candidates(payload)
        except Exception as exc:  # noqa: BLE001 - every failure resolves to the local fallback.
            self._log_fallback("generate", request, exc)
            return self.fallback_candidates(center, range_km)

        self._logger.info("oracle_candidates_received", extra={"mode": request.mode.value, "range_km": range_km})
        return targets

    async def request_relocation(self, center: Coordinate, range_km: float, star_count: int) -> Relocation:
        """Return one replacement place; never raises. ``star_count`` is only logged."""
        request = OracleRequest(center=center, range_km=range_km, mode=self.mode_for(range_km), count=1)
        try:
            payload = await self._call(self._oracle.relocate, request)
            relocation = parse_relocation(payload)
        except Exception as exc:  # noqa: BLE001 - every failure resolves to the local fallback.
            self._log_fallback("relocate", request, exc, star_count=star_count)
            return self.fallback_relocation(center, range_km)

        self._logger.info("oracle_relocation_received", extra={"star_count": star_count})
        return relocation

    def fallback_candidates(self, center: Coordinate, range_km: float) -> list[Target]:
        return [
            Target(
                id=index,
                coordinate=random_point_within_radius(center, range_km * FALLBACK_SPREAD, self._rng),
                star_count=index,
                display_name=f"Public Green Zone {index}",
            )
            for index in range(1, TARGET_COUNT + 1)
        ]

    def fallback_relocation(self, center: Coordinate, range_km: float) -> Relocation:
        return Relocation(
            coordinate=random_point_within_radius(center, range_km * RELOCATION_SPREAD, self._rng),
            display_name="Recalibrated Public Point",
            used_fallback=True,
        )

    async def _call(self, fn, request: OracleRequest) -> Any:
        return await asyncio.wait_for(asyncio.to_thread(fn, request), timeout=self._timeout_seconds)

    def _log_fallback(self, action: str, request: OracleRequest, exc: Exception, **extra: Any) -> None:
        if isinstance(exc, asyncio.TimeoutError):
            reason = f"timed out after {self._timeout_seconds}s"
        else:
            reason = f"{type(exc).__name__}: {exc}"
        self._logger.warning(
            "oracle_fallback_used",
            extra={"action": action, "mode": request.mode.value, "reason": reason, **extra},
        )
