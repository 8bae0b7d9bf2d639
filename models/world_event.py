# models/world_event.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import random

from models.bonus import BonusTriple


@dataclass(frozen=True)
class WorldEvent:
    """Catalog entry for a rotating world event. duration is in seconds."""
    id: str
    name: str
    duration: int
    rate_bonus: float = 0.0
    animal_bonus: float = 0.0
    time_reduction: float = 0.0


@dataclass
class ActiveEvent:
    """
    The world event currently running.

    Fields:
        id, name: Copied from the WorldEvent definition.
        rate_bonus, animal_bonus, time_reduction: Bonuses while active.
        end_time: Epoch seconds at which the event expires.
    """
    id: str
    name: str
    rate_bonus: float
    animal_bonus: float
    time_reduction: float
    end_time: float

    def is_expired(self, now: float) -> bool:
        return now >= self.end_time

    def remaining(self, now: float) -> int:
        """Seconds left, clamped to >= 0."""
        raw = self.end_time - now
        return 0 if raw <= 0 else int(raw)

    def bonus(self, now: float) -> BonusTriple:
        """Bonuses granted at `now`; zero once expired."""
        if self.is_expired(now):
            return BonusTriple()
        return BonusTriple(self.rate_bonus, self.time_reduction, self.animal_bonus)

    def to_dict(self) -> Dict[str, object]:
        """Serialize with end_time in epoch milliseconds."""
        return {
            "id": self.id,
            "name": self.name,
            "rate_bonus": self.rate_bonus,
            "animal_bonus": self.animal_bonus,
            "time_reduction": self.time_reduction,
            "end_time": int(self.end_time * 1000),
        }

    @staticmethod
    def from_dict(d: Optional[Dict[str, object]]) -> Optional["ActiveEvent"]:
        """Deserialize; returns None for null or incomplete records."""
        if not d or "end_time" not in d or "id" not in d:
            return None
        return ActiveEvent(
            id=str(d["id"]),
            name=str(d.get("name", d["id"])),
            rate_bonus=float(d.get("rate_bonus", 0.0) or 0.0),
            animal_bonus=float(d.get("animal_bonus", 0.0) or 0.0),
            time_reduction=float(d.get("time_reduction", 0.0) or 0.0),
            end_time=float(d["end_time"]) / 1000.0,
        )


EVENTS: Tuple[WorldEvent, ...] = (
    WorldEvent("flood", "Coastal Flood", 7200, rate_bonus=0.20, animal_bonus=0.10),
    WorldEvent("wildfire", "Wildfire", 7200, rate_bonus=0.15, time_reduction=0.10),
    WorldEvent("ice", "Ice Melt", 7200, time_reduction=0.20),
    WorldEvent("storm", "Storm Season", 7200, rate_bonus=0.10, animal_bonus=0.05, time_reduction=0.05),
)


def start_event(now: float, rng: random.Random, catalog: Tuple[WorldEvent, ...] = EVENTS) -> ActiveEvent:
    """Pick an event uniformly at random and start it at `now`."""
    ev = rng.choice(catalog)
    return ActiveEvent(
        id=ev.id,
        name=ev.name,
        rate_bonus=ev.rate_bonus,
        animal_bonus=ev.animal_bonus,
        time_reduction=ev.time_reduction,
        end_time=now + ev.duration,
    )
