# models/mission.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from models.catalog import Mission
from services.economy import round_half_up


@dataclass
class MissionRunState:
    """
    Countdown of the one mission currently running.

    Fields:
        mission_index: Index into GameState.missions.
        active: True while the countdown is running.
        time_left: Seconds until the mission ends on its own.
        animals_at_risk: Animals still to rescue, 0 <= at_risk <= total.
        total_animals: Animals at risk when the mission started.
    """
    mission_index: int = 0
    active: bool = False
    time_left: float = 0.0
    animals_at_risk: float = 0.0
    total_animals: int = 0

    def __post_init__(self) -> None:
        if self.mission_index < 0:
            raise ValueError("mission_index must be >= 0.")
        if self.total_animals < 0:
            raise ValueError("total_animals must be >= 0.")
        self.animals_at_risk = max(0.0, min(float(self.animals_at_risk), float(self.total_animals)))

    def start(self, mission: Mission, duration: float) -> None:
        """Arm the countdown for `mission` with an already-reduced duration."""
        if duration <= 0:
            raise ValueError("duration must be > 0.")
        self.active = True
        self.time_left = float(duration)
        self.total_animals = round_half_up(mission.base_risk * mission.difficulty)
        self.animals_at_risk = float(self.total_animals)

    def deplete(self, amount: float) -> None:
        """Rescue `amount` animals from the current mission, floored at 0."""
        if amount < 0:
            raise ValueError("amount must be >= 0.")
        self.animals_at_risk = max(0.0, self.animals_at_risk - amount)

    def advance(self, seconds: float) -> None:
        self.time_left -= seconds

    def is_complete(self) -> bool:
        return self.active and (self.time_left <= 0 or self.animals_at_risk <= 0)

    @property
    def rescued(self) -> float:
        """Animals rescued during this mission so far."""
        return self.total_animals - self.animals_at_risk

    def progress(self) -> float:
        """Fraction of the at-risk animals already rescued, in [0, 1]."""
        if self.total_animals <= 0:
            return 0.0
        return self.rescued / self.total_animals

    def reset(self) -> None:
        self.mission_index = 0
        self.active = False
        self.time_left = 0.0
        self.animals_at_risk = 0.0
        self.total_animals = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "mission_index": self.mission_index,
            "active": self.active,
            "time_left": self.time_left,
            "animals_at_risk": self.animals_at_risk,
            "total_animals": self.total_animals,
        }

    @staticmethod
    def from_dict(d: Optional[Dict[str, object]], mission_count: int) -> "MissionRunState":
        """
        Deserialize, tolerating missing fields. An index past the end of the
        mission catalog restarts at mission 0 with no active countdown.
        """
        d = d or {}
        index = int(d.get("mission_index", 0))
        if not 0 <= index < max(mission_count, 1):
            return MissionRunState()
        return MissionRunState(
            mission_index=index,
            active=bool(d.get("active", False)),
            time_left=float(d.get("time_left", 0.0)),
            animals_at_risk=float(d.get("animals_at_risk", 0.0)),
            total_animals=int(d.get("total_animals", 0)),
        )


def mission_reward(rescued: float, animal_multiplier: float) -> int:
    """
    Animals credited when a mission ends.

    Only the risk removed during the mission converts to reward; production
    beyond the mission total is not rewarded here.
    """
    if rescued <= 0:
        return 0
    return int(rescued * animal_multiplier)
