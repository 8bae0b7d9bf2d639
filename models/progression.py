# models/progression.py
"""
Achievements, the "Rebuild the Reef" questline and onboarding tasks.

Each entry pairs a pure predicate over the game state with a reward. The
predicates only read state; GameState applies rewards and owns the claimed
flags.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Tuple

if TYPE_CHECKING:
    from services.state import GameState


REWARD_TYPES = {"coins", "rate", "time", "animals", "permit"}

Predicate = Callable[["GameState"], bool]


@dataclass(frozen=True)
class Achievement:
    id: str
    description: str
    check: Predicate
    reward_type: str
    reward_value: float

    def __post_init__(self) -> None:
        if self.reward_type not in REWARD_TYPES - {"permit"}:
            raise ValueError(f"Unsupported achievement reward: {self.reward_type!r}")


@dataclass(frozen=True)
class QuestStep:
    description: str
    check: Predicate
    reward_type: str
    reward_value: float

    def __post_init__(self) -> None:
        if self.reward_type not in REWARD_TYPES:
            raise ValueError(f"Unsupported quest reward: {self.reward_type!r}")


@dataclass(frozen=True)
class Task:
    """Onboarding checklist item; latches once its predicate holds."""
    id: str
    description: str
    check: Predicate


def _units_owned(st: "GameState", name: str) -> int:
    index = st.unit_index(name)
    return st.units_owned[index] if index is not None else 0


ACHIEVEMENTS: Tuple[Achievement, ...] = (
    Achievement("save100", "Save 100 animals",
                lambda st: st.lifetime_animals_saved >= 100, "coins", 100),
    Achievement("own10Units", "Own 10 rescue units",
                lambda st: sum(st.units_owned) >= 10, "rate", 0.02),
    Achievement("complete5Missions", "Complete 5 missions",
                lambda st: st.missions_completed >= 5, "animals", 0.05),
    Achievement("saveAllSpecies", "Save all species",
                lambda st: all(sp.saved for sp in st.species), "time", 0.05),
    Achievement("earn1Permit", "Earn 1 permit",
                lambda st: st.permits_total >= 1, "coins", 200),
)

QUEST_NAME = "Rebuild the Reef"

QUEST_STEPS: Tuple[QuestStep, ...] = (
    QuestStep("Save 50 animals",
              lambda st: st.lifetime_animals_saved >= 50, "coins", 100),
    QuestStep("Own 2 Boats",
              lambda st: _units_owned(st, "Boat") >= 2, "coins", 200),
    QuestStep("Save 5 Sea Turtles",
              lambda st: st.reserve_counts.get("Sea Turtle", 0) >= 5, "rate", 0.02),
    QuestStep("Own 1 Helicopter",
              lambda st: _units_owned(st, "Helicopter") >= 1, "permit", 1),
    QuestStep("Save 100 animals",
              lambda st: st.lifetime_animals_saved >= 100, "animals", 0.05),
)

TASKS: Tuple[Task, ...] = (
    Task("save10", "Save 10 animals", lambda st: st.animals_saved >= 10),
    Task("buyPickup", "Buy a Pickup Truck", lambda st: _units_owned(st, "Pickup Truck") >= 1),
    Task("completeMission1", "Complete your first mission", lambda st: st.missions_completed >= 1),
)


def achievement_by_id(aid: str) -> Optional[Achievement]:
    return next((a for a in ACHIEVEMENTS if a.id == aid), None)
