# models/bonus.py
"""
Additive bonus stacking.

Five independent sources feed the same three knobs (rate, time, animals).
Sources are peers: their values are summed, never multiplied together, and
the summed time reduction is clamped only where a duration is computed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Tuple

from services.economy import Economy, clamp


SOURCES: Tuple[str, ...] = ("global", "species", "permits", "events", "achievements")


@dataclass(frozen=True)
class BonusTriple:
    """Fractional bonuses from one source, e.g. rate=0.10 means +10%."""
    rate: float = 0.0
    time: float = 0.0
    animals: float = 0.0

    def __add__(self, other: "BonusTriple") -> "BonusTriple":
        return BonusTriple(
            self.rate + other.rate,
            self.time + other.time,
            self.animals + other.animals,
        )

    def to_dict(self) -> Dict[str, float]:
        return {"rate": self.rate, "time": self.time, "animals": self.animals}


def accumulate(effects: Iterable[Tuple[str, float]]) -> BonusTriple:
    """
    Sum (effect_type, value) pairs into a BonusTriple.

    Types other than rate/time/animals (coins, permit, map) are not bonuses
    and are skipped.
    """
    rate = time = animals = 0.0
    for effect_type, value in effects:
        if effect_type == "rate":
            rate += value
        elif effect_type == "time":
            time += value
        elif effect_type == "animals":
            animals += value
    return BonusTriple(rate, time, animals)


@dataclass(frozen=True)
class BonusLedger:
    """
    Read-only view over the per-source bonuses of one moment in the game.

    Build one with GameState.bonus_ledger(); it is cheap and should not be
    cached across state changes.
    """
    sources: Dict[str, BonusTriple] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.sources) - set(SOURCES)
        if unknown:
            raise ValueError(f"Unknown bonus sources: {sorted(unknown)}")

    def source(self, name: str) -> BonusTriple:
        return self.sources.get(name, BonusTriple())

    def totals(self) -> BonusTriple:
        """Raw, unclamped sums over all sources."""
        total = BonusTriple()
        for name in SOURCES:
            total = total + self.source(name)
        return total

    @property
    def rate_multiplier(self) -> float:
        return 1 + self.totals().rate

    @property
    def animal_multiplier(self) -> float:
        return 1 + self.totals().animals

    @property
    def time_reduction(self) -> float:
        """Summed time reduction, clamped to [0, MAX_TIME_REDUCTION]."""
        return clamp(self.totals().time, 0.0, Economy.MAX_TIME_REDUCTION)

    def effective_duration(self, base_duration: float) -> float:
        """Mission duration after time reduction; never below 10% of base."""
        return base_duration * (1 - self.time_reduction)

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {name: self.source(name).to_dict() for name in SOURCES}
