"""Wish progression: a declarative table of nodes and one evaluator over it.

Nodes are either cosmetic (free selection, no cost) or gated (a spent wish:
all seven targets must be found and the node's prerequisite must hold; the
target set is consumed on success). Prerequisites and effects are plain data
so new tiers are added to the table, not to the evaluator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from graphlib import CycleError, TopologicalSorter
from typing import Protocol

from .collection import all_found
from .models import (
    MASTERY_RADIUS_KM,
    RACE_LABELS,
    ProgressionModifiers,
    Race,
    RadarDesign,
    ScanParameters,
    Target,
)

WORLD_SCAN_RANGE_KM = 20_000.0

CUSTOM_ZONE_FEATURE = "tech_custom_zone"
SCOUTER_FEATURE = "tech_scouter"
WORLD_SCAN_FEATURE = "tech_world_scan"


class WishKind(str, Enum):
    COSMETIC = "cosmetic"
    GATED = "gated"


class ProgressionError(str, Enum):
    INSUFFICIENT_TARGETS = "insufficient_targets"
    PREREQUISITE_NOT_MET = "prerequisite_not_met"


class ProgressionSubject(Protocol):
    """State a wish reads and mutates."""

    targets: list[Target]
    modifiers: ProgressionModifiers
    scan: ScanParameters


class Prerequisite(Protocol):
    def is_met(self, modifiers: ProgressionModifiers) -> bool: ...

    def unmet_reason(self, modifiers: ProgressionModifiers) -> str | None: ...

    def required_features(self) -> tuple[str, ...]: ...

    def required_races(self) -> tuple[Race, ...]: ...


class WishEffect(Protocol):
    def apply(self, modifiers: ProgressionModifiers, scan: ScanParameters) -> None: ...


# -- prerequisites -----------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Always:
    def is_met(self, modifiers: ProgressionModifiers) -> bool:
        return True

    def unmet_reason(self, modifiers: ProgressionModifiers) -> str | None:
        return None

    def required_features(self) -> tuple[str, ...]:
        return ()

    def required_races(self) -> tuple[Race, ...]:
        return ()


@dataclass(slots=True, frozen=True)
class FeatureUnlocked:
    feature: str
    label: str | None = None

    def is_met(self, modifiers: ProgressionModifiers) -> bool:
        return modifiers.is_unlocked(self.feature)

    def unmet_reason(self, modifiers: ProgressionModifiers) -> str | None:
        if self.is_met(modifiers):
            return None
        return f"Requires {self.label or self.feature} to be unlocked first."

    def required_features(self) -> tuple[str, ...]:
        return (self.feature,)

    def required_races(self) -> tuple[Race, ...]:
        return ()


@dataclass(slots=True, frozen=True)
class RaceActive:
    race: Race

    def is_met(self, modifiers: ProgressionModifiers) -> bool:
        return modifiers.active_race == self.race

    def unmet_reason(self, modifiers: ProgressionModifiers) -> str | None:
        if self.is_met(modifiers):
            return None
        return f"Requires the {RACE_LABELS[self.race]} race to be active."

    def required_features(self) -> tuple[str, ...]:
        return ()

    def required_races(self) -> tuple[Race, ...]:
        return (self.race,)


@dataclass(slots=True, frozen=True)
class RadiusAtMost:
    radius_km: float

    def is_met(self, modifiers: ProgressionModifiers) -> bool:
        return modifiers.collection_radius_km <= self.radius_km

    def unmet_reason(self, modifiers: ProgressionModifiers) -> str | None:
        if self.is_met(modifiers):
            return None
        return f"Requires a collection radius of {self.radius_km * 1000:.0f} m or less."

    def required_features(self) -> tuple[str, ...]:
        return ()

    def required_races(self) -> tuple[Race, ...]:
        return ()


@dataclass(slots=True, frozen=True)
class AllOf:
    items: tuple[Prerequisite, ...]

    def is_met(self, modifiers: ProgressionModifiers) -> bool:
        return all(item.is_met(modifiers) for item in self.items)

    def unmet_reason(self, modifiers: ProgressionModifiers) -> str | None:
        for item in self.items:
            reason = item.unmet_reason(modifiers)
            if reason:
                return reason
        return None

    def required_features(self) -> tuple[str, ...]:
        return tuple(feature for item in self.items for feature in item.required_features())

    def required_races(self) -> tuple[Race, ...]:
        return tuple(race for item in self.items for race in item.required_races())


# -- effects -----------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SetDesign:
    design: RadarDesign

    def apply(self, modifiers: ProgressionModifiers, scan: ScanParameters) -> None:
        modifiers.active_design = self.design


@dataclass(slots=True, frozen=True)
class SetRace:
    race: Race

    def apply(self, modifiers: ProgressionModifiers, scan: ScanParameters) -> None:
        modifiers.active_race = self.race


@dataclass(slots=True, frozen=True)
class TightenRadius:
    radius_km: float

    def apply(self, modifiers: ProgressionModifiers, scan: ScanParameters) -> None:
        modifiers.collection_radius_km = min(modifiers.collection_radius_km, self.radius_km)


@dataclass(slots=True, frozen=True)
class SetScanRange:
    range_km: float

    def apply(self, modifiers: ProgressionModifiers, scan: ScanParameters) -> None:
        scan.range_km = self.range_km


@dataclass(slots=True, frozen=True)
class UnlockOnly:
    def apply(self, modifiers: ProgressionModifiers, scan: ScanParameters) -> None:
        return None


@dataclass(slots=True, frozen=True)
class WishNode:
    id: str
    kind: WishKind
    title: str
    prerequisite: Prerequisite = field(default_factory=Always)
    effect: WishEffect = field(default_factory=UnlockOnly)
    one_time: bool = True


@dataclass(slots=True)
class WishResult:
    node_id: str
    granted: bool
    error: ProgressionError | None = None
    reason: str | None = None
    targets_consumed: bool = False


@dataclass(slots=True)
class WishAvailability:
    node_id: str
    title: str
    kind: WishKind
    owned: bool
    grantable: bool
    blocked_by: ProgressionError | None = None
    reason: str | None = None


def race_node_id(race: Race) -> str:
    return f"race_{race.value}"


def mastery_node_id(race: Race) -> str:
    return f"dist_{race.value}"


def default_wish_nodes() -> list[WishNode]:
    nodes = [
        WishNode(
            id=f"design_{design.value}",
            kind=WishKind.COSMETIC,
            title=f"{design.value.replace('_', ' ').title()} radar",
            effect=SetDesign(design),
            one_time=False,
        )
        for design in RadarDesign
    ]

    races = list(Race)
    for index, race in enumerate(races):
        label = RACE_LABELS[race]
        if index == 0:
            race_prerequisite: Prerequisite = Always()
        else:
            previous = races[index - 1]
            race_prerequisite = AllOf(
                (
                    RaceActive(previous),
                    FeatureUnlocked(mastery_node_id(previous), label=f"{RACE_LABELS[previous]} mastery"),
                )
            )
        nodes.append(
            WishNode(
                id=race_node_id(race),
                kind=WishKind.GATED,
                title=label,
                prerequisite=race_prerequisite,
                effect=SetRace(race),
            )
        )
        nodes.append(
            WishNode(
                id=mastery_node_id(race),
                kind=WishKind.GATED,
                title=f"{label} mastery ({MASTERY_RADIUS_KM[race] * 1000:.0f} m)",
                prerequisite=FeatureUnlocked(race_node_id(race), label=f"the {label} race"),
                effect=TightenRadius(MASTERY_RADIUS_KM[race]),
            )
        )

    nodes.append(
        WishNode(
            id=CUSTOM_ZONE_FEATURE,
            kind=WishKind.GATED,
            title="Custom scan zone",
            prerequisite=FeatureUnlocked(mastery_node_id(Race.NAMEK), label="Namekians mastery"),
        )
    )
    nodes.append(
        WishNode(
            id=SCOUTER_FEATURE,
            kind=WishKind.GATED,
            title="Scouter",
            prerequisite=FeatureUnlocked(CUSTOM_ZONE_FEATURE, label="the custom scan zone"),
        )
    )
    every_tier = tuple(
        FeatureUnlocked(node_id)
        for race in races
        for node_id in (race_node_id(race), mastery_node_id(race))
    )
    nodes.append(
        WishNode(
            id=WORLD_SCAN_FEATURE,
            kind=WishKind.GATED,
            title="World scan",
            prerequisite=AllOf(every_tier + (RadiusAtMost(MASTERY_RADIUS_KM[races[-1]]),)),
            effect=SetScanRange(WORLD_SCAN_RANGE_KM),
        )
    )
    return nodes


class ProgressionGraph:
    """Evaluates wishes against a validated, acyclic node table."""

    def __init__(self, nodes: list[WishNode] | None = None) -> None:
        nodes = default_wish_nodes() if nodes is None else nodes
        self._nodes: dict[str, WishNode] = {}
        for node in nodes:
            if node.id in self._nodes:
                raise ValueError(f"Duplicate wish node id: {node.id}")
            self._nodes[node.id] = node
        self._order = self._validate()

    @property
    def nodes(self) -> list[WishNode]:
        return [self._nodes[node_id] for node_id in self._order]

    def get(self, node_id: str) -> WishNode:
        if node_id not in self._nodes:
            raise KeyError(f"Unknown wish node id: {node_id}")
        return self._nodes[node_id]

    def dependencies(self, node_id: str) -> set[str]:
        node = self.get(node_id)
        deps = set(node.prerequisite.required_features())
        race_providers = self._race_providers()
        deps.update(race_providers[race] for race in node.prerequisite.required_races() if race in race_providers)
        deps.discard(node_id)
        return deps

    def grant_wish(self, node_id: str, subject: ProgressionSubject) -> WishResult:
        node = self.get(node_id)
        if node.kind is WishKind.COSMETIC:
            node.effect.apply(subject.modifiers, subject.scan)
            return WishResult(node_id=node_id, granted=True)

        blocked_by, reason = self._check_gate(node, subject)
        if blocked_by is not None:
            return WishResult(node_id=node_id, granted=False, error=blocked_by, reason=reason)

        node.effect.apply(subject.modifiers, subject.scan)
        if node.one_time:
            subject.modifiers.unlocked_features.add(node.id)
        subject.targets = []
        return WishResult(node_id=node_id, granted=True, targets_consumed=True)

    def availability(self, subject: ProgressionSubject) -> list[WishAvailability]:
        rows: list[WishAvailability] = []
        for node in self.nodes:
            owned = subject.modifiers.is_unlocked(node.id)
            if node.kind is WishKind.COSMETIC:
                rows.append(
                    WishAvailability(
                        node_id=node.id,
                        title=node.title,
                        kind=node.kind,
                        owned=subject.modifiers.active_design == getattr(node.effect, "design", None),
                        grantable=True,
                    )
                )
                continue
            blocked_by, reason = self._check_gate(node, subject)
            rows.append(
                WishAvailability(
                    node_id=node.id,
                    title=node.title,
                    kind=node.kind,
                    owned=owned,
                    grantable=blocked_by is None,
                    blocked_by=blocked_by,
                    reason=reason,
                )
            )
        return rows

    @staticmethod
    def _check_gate(node: WishNode, subject: ProgressionSubject) -> tuple[ProgressionError | None, str | None]:
        if not all_found(subject.targets):
            return ProgressionError.INSUFFICIENT_TARGETS, "Collect all 7 Dragon Balls to make a wish."
        if not node.prerequisite.is_met(subject.modifiers):
            reason = node.prerequisite.unmet_reason(subject.modifiers)
            return ProgressionError.PREREQUISITE_NOT_MET, reason or f"{node.title} is locked."
        return None, None

    def _race_providers(self) -> dict[Race, str]:
        return {
            node.effect.race: node.id
            for node in self._nodes.values()
            if isinstance(node.effect, SetRace)
        }

    def _validate(self) -> list[str]:
        graph: dict[str, set[str]] = {}
        for node_id, node in self._nodes.items():
            for feature in node.prerequisite.required_features():
                if feature not in self._nodes:
                    raise ValueError(f"Wish node {node_id} depends on unknown node {feature}")
            graph[node_id] = self.dependencies(node_id)
        try:
            return list(TopologicalSorter(graph).static_order())
        except CycleError as exc:
            raise ValueError(f"Wish dependencies contain a cycle: {exc.args[1]}") from exc
