from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

TARGET_COUNT = 7


@dataclass(slots=True, frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")


@dataclass(slots=True)
class Target:
    """One Dragon Ball on the map."""

    id: int
    coordinate: Coordinate
    star_count: int
    display_name: str
    found: bool = False


@dataclass(slots=True, frozen=True)
class PlayerPosition:
    coordinate: Coordinate
    accuracy_meters: float = 0.0


@dataclass(slots=True)
class ScanParameters:
    range_km: float = 10.0
    center_override: Coordinate | None = None


class RadarDesign(str, Enum):
    BULMA = "bulma"
    CAPSULE = "capsule"
    SAIYAN = "saiyan"
    NAMEK = "namek"


class Race(str, Enum):
    """Race tiers in progression order."""

    TERRIEN = "terrien"
    NAMEK = "namek"
    KAIO = "kaio"
    CYBORG = "cyborg"
    MAJIN = "majin"
    FROID = "froid"
    SAIYAN = "saiyan"
    HAKAISHIN = "hakaishin"
    ANGE = "ange"
    ZENO = "zeno"


RACE_LABELS: dict[Race, str] = {
    Race.TERRIEN: "Earthlings",
    Race.NAMEK: "Namekians",
    Race.KAIO: "Kaioshins and Kaios",
    Race.CYBORG: "Cyborgs",
    Race.MAJIN: "Wizards, Majins and Demons",
    Race.FROID: "Frost Demons",
    Race.SAIYAN: "Saiyans",
    Race.HAKAISHIN: "Gods of Destruction",
    Race.ANGE: "Angels",
    Race.ZENO: "Zeno",
}

# Collection radius granted by each race's mastery wish. Strictly decreasing
# along the race order so mastery only ever tightens the radius.
MASTERY_RADIUS_KM: dict[Race, float] = {
    Race.TERRIEN: 0.2,
    Race.NAMEK: 0.18,
    Race.KAIO: 0.16,
    Race.CYBORG: 0.14,
    Race.MAJIN: 0.12,
    Race.FROID: 0.1,
    Race.SAIYAN: 0.08,
    Race.HAKAISHIN: 0.06,
    Race.ANGE: 0.05,
    Race.ZENO: 0.04,
}

DEFAULT_UNLOCKED_FEATURES = frozenset({"race_terrien", "dist_terrien"})


@dataclass(slots=True)
class ProgressionModifiers:
    active_design: RadarDesign = RadarDesign.BULMA
    active_race: Race = Race.TERRIEN
    collection_radius_km: float = MASTERY_RADIUS_KM[Race.TERRIEN]
    unlocked_features: set[str] = field(default_factory=lambda: set(DEFAULT_UNLOCKED_FEATURES))

    def is_unlocked(self, feature: str) -> bool:
        return feature in self.unlocked_features
