"""CLI startup entrypoint for Dragon Radar."""

from __future__ import annotations

from dataclasses import asdict

import typer
from rich import print

from dragon_radar.cli import CliSessionHandler
from dragon_radar.config import settings
from dragon_radar.geo import haversine_distance_km
from dragon_radar.oracle import HttpLocationOracle, LocationOracleClient, OfflineLocationOracle
from dragon_radar.radar import format_distance, map_zoom_level
from dragon_radar.session import FeatureLockedError, GameSession, ScanError
from dragon_radar.store import JsonFileSnapshotStore
from dragon_radar.telemetry import configure_logging

app = typer.Typer(help="Dragon Radar: hunt seven Dragon Balls around you")

LatOption = typer.Option(None, help="Current latitude")
LngOption = typer.Option(None, help="Current longitude")


def _build_oracle():
    if settings.oracle_endpoint:
        return HttpLocationOracle(
            settings.oracle_endpoint,
            api_key=settings.oracle_api_key,
            timeout_seconds=settings.oracle_timeout_seconds,
        )
    return OfflineLocationOracle()


def _build_store() -> JsonFileSnapshotStore:
    return JsonFileSnapshotStore(settings.state_path)


def _build_handler() -> CliSessionHandler:
    configure_logging(settings.log_level)
    client = LocationOracleClient(
        _build_oracle(),
        timeout_seconds=settings.oracle_timeout_seconds,
        global_range_threshold_km=settings.global_range_threshold_km,
    )
    session = GameSession.restore(
        oracle_client=client,
        store=_build_store(),
        default_range_km=settings.default_range_km,
    )
    session.on_all_found(lambda _state: print("[bold yellow]All 7 Dragon Balls found. Make a wish![/bold yellow]"))
    return CliSessionHandler(session)


def _describe_targets(handler: CliSessionHandler) -> list[dict]:
    state = handler.state
    position = state.player_position
    rows = []
    for target in state.targets:
        row = {
            "id": target.id,
            "stars": target.star_count,
            "name": target.display_name,
            "found": target.found,
            "lat": round(target.coordinate.latitude, 6),
            "lng": round(target.coordinate.longitude, 6),
        }
        if position is not None:
            row["distance"] = format_distance(haversine_distance_km(position.coordinate, target.coordinate))
        rows.append(row)
    return rows


@app.command()
def start() -> None:
    """Show runtime backend configuration."""
    print(
        {
            "app_name": settings.app_name,
            "oracle_endpoint": settings.oracle_endpoint or "offline (local fallback)",
            "global_range_threshold_km": settings.global_range_threshold_km,
            "state_path": settings.state_path,
        }
    )


@app.command()
def status(lat: float = LatOption, lng: float = LngOption) -> None:
    """Show targets, scan parameters and progression."""
    handler = _build_handler()
    handler.locate(lat, lng)
    state = handler.state
    print(
        {
            "targets": _describe_targets(handler),
            "found": sum(1 for target in state.targets if target.found),
            "scan": asdict(state.scan),
            "design": state.modifiers.active_design.value,
            "race": state.modifiers.active_race.value,
            "collection_radius": format_distance(state.modifiers.collection_radius_km),
            "unlocked_features": sorted(state.modifiers.unlocked_features),
        }
    )


@app.command()
def position(
    lat: float = typer.Option(..., help="Latitude of the fix"),
    lng: float = typer.Option(..., help="Longitude of the fix"),
    accuracy: float = typer.Option(0.0, help="Fix accuracy in meters"),
) -> None:
    """Apply one position fix and report newly collected Dragon Balls."""
    handler = _build_handler()
    newly_found = handler.locate(lat, lng, accuracy)
    print({"newly_found": newly_found, "targets": _describe_targets(handler)})


@app.command()
def scan(
    lat: float = LatOption,
    lng: float = LngOption,
    range_km: float = typer.Option(None, "--range", help="Scan radius in km"),
    center_lat: float = typer.Option(None, help="Custom scan centre latitude (needs the custom zone wish)"),
    center_lng: float = typer.Option(None, help="Custom scan centre longitude (needs the custom zone wish)"),
) -> None:
    """Ask the oracle for a fresh set of seven Dragon Balls."""
    handler = _build_handler()
    try:
        handler.configure_scan(range_km, center_lat, center_lng)
    except (FeatureLockedError, ValueError) as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)
    handler.locate(lat, lng)

    try:
        handler.scan()
    except ScanError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)
    print({"targets": _describe_targets(handler)})


@app.command()
def relocate(
    target_id: int = typer.Argument(..., help="Dragon Ball id (1-7)"),
    lat: float = LatOption,
    lng: float = LngOption,
) -> None:
    """Move one Dragon Ball to a new place."""
    handler = _build_handler()
    handler.locate(lat, lng)
    try:
        handler.relocate(target_id)
    except (ScanError, KeyError) as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)
    print({"targets": _describe_targets(handler)})


@app.command()
def wishes() -> None:
    """List wishes and what blocks each of them."""
    handler = _build_handler()
    print([asdict(row) for row in handler.wishes()])


@app.command()
def wish(node_id: str = typer.Argument(..., help="Wish id, e.g. race_namek")) -> None:
    """Ask Shenron for a wish."""
    handler = _build_handler()
    try:
        result = handler.wish(node_id)
    except KeyError as exc:
        print({"error": str(exc)})
        raise typer.Exit(code=1)
    if not result.granted:
        print({"granted": False, "error": result.error.value, "reason": result.reason})
        raise typer.Exit(code=1)
    print({"granted": True, "node_id": node_id, "unlocked_features": sorted(handler.state.modifiers.unlocked_features)})


@app.command()
def radar(
    lat: float = LatOption,
    lng: float = LngOption,
    step: int = typer.Option(0, help="Zoom step; the last step is the map view"),
) -> None:
    """Show what the radar face displays at a zoom step."""
    handler = _build_handler()
    handler.locate(lat, lng)
    view = handler.radar(step)
    payload = asdict(view)
    if view.map_view:
        payload["map_zoom_level"] = map_zoom_level(handler.state.scan.range_km)
    print(payload)


@app.command()
def follow(
    track: str = typer.Argument(..., help="JSONL file of {lat, lng, accuracy} fixes"),
    interval: float = typer.Option(0.0, help="Seconds to wait between fixes"),
) -> None:
    """Replay a recorded walk through the collection engine."""
    handler = _build_handler()
    applied = handler.follow(track, interval_seconds=interval)
    print({"fixes_applied": applied, "last_error": handler.state.last_error, "targets": _describe_targets(handler)})


@app.command()
def reset() -> None:
    """Forget the saved session."""
    store = _build_store()
    store.clear()
    print({"reset": str(store.path)})


if __name__ == "__main__":
    app()
