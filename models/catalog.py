# models/catalog.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Tuple


EFFECT_TYPES = {"rate", "time", "animals"}
PERMIT_EFFECT_TYPES = ("rate", "animals", "time", "map")


@dataclass(frozen=True)
class UnitType:
    """
    Automated rescue unit sold in the shop.

    Fields:
        name: Display name, unique within the catalog.
        base_cost: Coins for the first purchase.
        base_rate: Animals rescued per minute per owned unit.
        cost_multiplier: Growth factor of the cost curve.
    """
    name: str
    base_cost: int
    base_rate: float
    cost_multiplier: float = 1.15

    def __post_init__(self) -> None:
        if self.base_cost < 0:
            raise ValueError("base_cost must be >= 0.")
        if self.base_rate < 0:
            raise ValueError("base_rate must be >= 0.")
        if self.cost_multiplier < 1:
            raise ValueError("cost_multiplier must be >= 1.")


@dataclass(frozen=True)
class UpgradeType:
    """Global upgrade; each purchase adds effect_value to the matching bonus."""
    name: str
    effect_type: str
    effect_value: float
    base_cost: int
    cost_multiplier: float

    def __post_init__(self) -> None:
        if self.effect_type not in EFFECT_TYPES:
            raise ValueError(f"Unknown effect_type: {self.effect_type!r}")


@dataclass(frozen=True)
class PermitUpgradeType:
    """Permanent upgrade bought with permits; survives prestige."""
    name: str
    effect_type: str
    effect_value: float
    base_cost: int = 1
    cost_multiplier: float = 2

    def __post_init__(self) -> None:
        if self.effect_type not in PERMIT_EFFECT_TYPES:
            raise ValueError(f"Unknown permit effect_type: {self.effect_type!r}")


@dataclass(frozen=True)
class Mission:
    """Timed rescue mission. duration is in seconds before time reduction."""
    name: str
    duration: float
    base_risk: int
    difficulty: float
    species: str

    def __post_init__(self) -> None:
        if self.duration <= 0:
            raise ValueError("duration must be > 0.")


@dataclass
class Species:
    """
    Rescuable species. `saved` flips once, on the first completed mission
    naming it, and the species bonus applies from then on.
    """
    name: str
    bonus: str
    effect_type: str
    effect_value: float
    saved: bool = False

    def __post_init__(self) -> None:
        if self.effect_type not in EFFECT_TYPES:
            raise ValueError(f"Unknown effect_type: {self.effect_type!r}")

    def copy(self) -> "Species":
        return Species(self.name, self.bonus, self.effect_type, self.effect_value, self.saved)


@dataclass(frozen=True)
class Biome:
    """
    Unlockable content pack. Each species also brings one mission of its own
    (see `missions()`).
    """
    id: str
    name: str
    cost: int
    species: Tuple[Species, ...]
    units: Tuple[UnitType, ...]
    species_colors: Dict[str, str] = field(default_factory=dict)

    def missions(self, duration: float, base_risk: int, difficulty: float) -> List[Mission]:
        return [
            Mission(f"{sp.name} Rescue", duration, base_risk, difficulty, sp.name)
            for sp in self.species
        ]


UNITS: Tuple[UnitType, ...] = (
    UnitType("Pickup Truck", 50, 1),
    UnitType("Boat", 250, 4),
    UnitType("Helicopter", 1000, 12),
    UnitType("Cargo Plane", 5000, 30),
    UnitType("Rescue Team", 20000, 75),
    UnitType("Supply Drop Drone", 100000, 200),
)

UPGRADES: Tuple[UpgradeType, ...] = (
    UpgradeType("Faster Engines", "rate", 0.10, 500, 1.25),
    UpgradeType("Rescue Crates", "animals", 0.05, 1500, 1.25),
    UpgradeType("GPS Tracking", "time", 0.05, 5000, 1.30),
    UpgradeType("Animal Care Kit", "animals", 0.05, 10000, 1.30),
    UpgradeType("Emergency Sirens", "rate", 0.10, 25000, 1.40),
)

MISSIONS: Tuple[Mission, ...] = (
    Mission("Jungle Fire", 120, 20, 1.0, "Koala"),
    Mission("Coastal Flood", 150, 30, 1.1, "Sea Turtle"),
    Mission("Mountain Avalanche", 90, 15, 1.3, "Panda"),
    Mission("Arctic Ice Break", 180, 25, 1.2, "Penguin"),
)

# Species are mutable; GameState copies these templates.
SPECIES: Tuple[Species, ...] = (
    Species("Koala", "+2% fire rescue speed", "time", 0.02),
    Species("Panda", "+5% food gathering speed", "rate", 0.05),
    Species("Sea Turtle", "+5% boat rescue capacity", "rate", 0.05),
    Species("Tiger", "+10% ground rescue speed", "rate", 0.10),
    Species("Penguin", "+5% ice terrain speed", "time", 0.05),
    Species("Elephant", "+15% vehicle capacity", "animals", 0.15),
    Species("Parrot", "+3% fuel gathering", "rate", 0.03),
    Species("Dolphin", "+10% boat speed", "rate", 0.10),
)

SPECIES_COLORS: Dict[str, str] = {
    "Koala": "#5ec962",
    "Panda": "#4ac0ff",
    "Sea Turtle": "#2fbf71",
    "Tiger": "#ff7f51",
    "Penguin": "#6f85ff",
    "Elephant": "#b07f62",
    "Parrot": "#ffd166",
    "Dolphin": "#00d1d1",
}

PERMIT_UPGRADES: Tuple[PermitUpgradeType, ...] = (
    PermitUpgradeType("Rate Boost", "rate", 0.05),
    PermitUpgradeType("Animal Boost", "animals", 0.10),
    PermitUpgradeType("Time Reduction", "time", 0.05),
    PermitUpgradeType("Map Upgrade", "map", 0.0),
)

BIOMES: Tuple[Biome, ...] = (
    Biome(
        id="savannah",
        name="Savannah",
        cost=3,
        species=(
            Species("Giraffe", "+8% ground rescue speed", "rate", 0.08),
            Species("Zebra", "+5% animals per mission", "animals", 0.05),
            Species("Rhinoceros", "-5% mission time", "time", 0.05),
        ),
        units=(
            UnitType("Safari Jeep", 2000, 15),
            UnitType("Off-Road Truck", 10000, 40),
        ),
        species_colors={
            "Giraffe": "#fdd835",
            "Zebra": "#d1c4e9",
            "Rhinoceros": "#8d6e63",
        },
    ),
)


def biome_by_id(biome_id: str):
    """Return the Biome with the given id, or None."""
    return next((b for b in BIOMES if b.id == biome_id), None)
