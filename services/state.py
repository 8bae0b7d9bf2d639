# services/state.py
from __future__ import annotations

import math
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Tuple
from zoneinfo import ZoneInfo

from kivy.logger import Logger

from models.bonus import BonusLedger, BonusTriple, accumulate
from models.catalog import (
    MISSIONS,
    PERMIT_EFFECT_TYPES,
    PERMIT_UPGRADES,
    SPECIES,
    SPECIES_COLORS,
    UNITS,
    UPGRADES,
    Biome,
    Mission,
    Species,
    UnitType,
    UpgradeType,
    biome_by_id,
)
from models.mission import MissionRunState, mission_reward
from models.progression import ACHIEVEMENTS, QUEST_STEPS, TASKS, QuestStep, achievement_by_id
from models.world_event import ActiveEvent, start_event
from services.economy import Economy, scaled_cost


@dataclass(frozen=True)
class MissionOutcome:
    """What a finished mission produced, for toasts and logs."""
    mission: str
    species: str
    saved: int
    new_species: bool


def local_date_string(ts: float, tz: str = Economy.DAILY_BONUS_TZ) -> str:
    """Calendar date of epoch-seconds `ts` in time zone `tz`, as YYYY-MM-DD."""
    return datetime.fromtimestamp(ts, ZoneInfo(tz)).date().isoformat()


def generate_player_id(rng: random.Random) -> str:
    """Random base-36 player id used by friend codes."""
    alphabet = string.digits + string.ascii_lowercase
    return "".join(rng.choice(alphabet) for _ in range(Economy.PLAYER_ID_LENGTH))


def _amount(raw: object) -> float:
    """Saved tally as a non-negative float. Raises ValueError on NaN/inf."""
    value = float(raw or 0)  # type: ignore[arg-type]
    if not math.isfinite(value):
        raise ValueError(f"non-finite value in save: {raw!r}")
    return max(0.0, value)


def _counts(raw: object, length: int) -> List[int]:
    """Ownership counts padded with zeros (or truncated) to `length`."""
    values = [int(_amount(x)) for x in list(raw or [])][:length]
    return values + [0] * (length - len(values))


@dataclass
class GameState:
    """
    Single aggregate holding every catalog and counter of one save slot.

    All mutation goes through the action methods below; widgets only read
    attributes. Observers can subscribe to state changes via add_observer().
    Time comes from `clock` (epoch seconds) and randomness from `rng`, so both
    can be replaced in tests.
    """
    coins: float = 0.0
    animals_saved: float = 0.0
    lifetime_animals_saved: float = 0.0
    season_animals_saved: float = 0.0
    best_season_total: float = 0.0

    units: List[UnitType] = field(default_factory=lambda: list(UNITS))
    units_owned: List[int] = field(default_factory=list)
    unit_costs: List[int] = field(default_factory=list)
    upgrades: List[UpgradeType] = field(default_factory=lambda: list(UPGRADES))
    upgrades_owned: List[int] = field(default_factory=list)
    upgrade_costs: List[int] = field(default_factory=list)
    species: List[Species] = field(default_factory=lambda: [sp.copy() for sp in SPECIES])
    species_colors: Dict[str, str] = field(default_factory=lambda: dict(SPECIES_COLORS))
    missions: List[Mission] = field(default_factory=lambda: list(MISSIONS))

    mission: MissionRunState = field(default_factory=MissionRunState)
    missions_completed: int = 0
    reserve_counts: Dict[str, float] = field(default_factory=dict)
    tasks_completed: Dict[str, bool] = field(default_factory=dict)

    permits_total: int = 0
    permits_available: int = 0
    permit_upgrades: Dict[str, int] = field(default_factory=lambda: {t: 0 for t in PERMIT_EFFECT_TYPES})
    permit_upgrade_costs: List[int] = field(default_factory=list)

    biomes_unlocked: Dict[str, bool] = field(default_factory=dict)
    achievements_completed: Dict[str, bool] = field(default_factory=dict)
    current_quest_step: int = 0
    quest_steps_claimed: Dict[int, bool] = field(default_factory=dict)

    active_event: Optional[ActiveEvent] = None
    last_daily_bonus_date: Optional[str] = None
    player_id: str = ""
    tip_link: str = ""
    meta: Dict[str, object] = field(default_factory=dict)

    clock: Callable[[], float] = field(default=time.time, repr=False, compare=False)
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)
    _observers: List[Callable[[], None]] = field(default_factory=list, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._sync_costs()

    # --- Observers ---
    def add_observer(self, cb: Callable[[], None]) -> None:
        """Register a no-arg callback invoked after successful mutations."""
        if cb not in self._observers:
            self._observers.append(cb)

    def _notify(self) -> None:
        """Invoke all registered observers; a failing observer is logged and skipped."""
        for cb in list(self._observers):
            try:
                cb()
            except Exception:
                Logger.exception("GameState: observer %r failed", cb)

    # --- Queries ---
    def unit_index(self, name: str) -> Optional[int]:
        return next((i for i, u in enumerate(self.units) if u.name == name), None)

    def species_by_name(self, name: str) -> Optional[Species]:
        return next((sp for sp in self.species if sp.name == name), None)

    @property
    def current_mission(self) -> Mission:
        return self.missions[self.mission.mission_index]

    def bonus_ledger(self, now: Optional[float] = None) -> BonusLedger:
        """
        Derive all five bonus sources from current state.

        Every source is a function of ownership and flags, so calling this
        after any change (species saved, biome unlocked, permit bought) gives
        the same answer regardless of the order those changes happened in.
        """
        now = self.clock() if now is None else now
        sources = {
            "global": accumulate(
                (upg.effect_type, upg.effect_value * n)
                for upg, n in zip(self.upgrades, self.upgrades_owned)
            ),
            "species": accumulate(
                (sp.effect_type, sp.effect_value) for sp in self.species if sp.saved
            ),
            "permits": accumulate(
                (pu.effect_type, pu.effect_value * self.permit_upgrades.get(pu.effect_type, 0))
                for pu in PERMIT_UPGRADES
            ),
            "events": self.active_event.bonus(now) if self.active_event else BonusTriple(),
            "achievements": accumulate(self._claimed_rewards()),
        }
        return BonusLedger(sources)

    def _claimed_rewards(self) -> Iterator[Tuple[str, float]]:
        for ach in ACHIEVEMENTS:
            if self.achievements_completed.get(ach.id):
                yield ach.reward_type, ach.reward_value
        for i, step in enumerate(QUEST_STEPS):
            if self.quest_steps_claimed.get(i):
                yield step.reward_type, step.reward_value

    def compute_rescue_rate(self, now: Optional[float] = None) -> float:
        """Animals (and coins) produced per second by owned units."""
        per_minute = sum(n * u.base_rate for u, n in zip(self.units, self.units_owned))
        return per_minute / 60 * self.bonus_ledger(now).rate_multiplier

    def pending_permits(self) -> int:
        """Permits a prestige would grant right now."""
        target = int(self.lifetime_animals_saved // Economy.ANIMALS_PER_PERMIT)
        return max(0, target - self.permits_total)

    def achievement_ready(self, aid: str) -> bool:
        ach = achievement_by_id(aid)
        return ach is not None and not self.achievements_completed.get(aid) and ach.check(self)

    @property
    def current_quest(self) -> Optional[QuestStep]:
        if self.current_quest_step >= len(QUEST_STEPS):
            return None
        return QUEST_STEPS[self.current_quest_step]

    def quest_ready(self) -> bool:
        step = self.current_quest
        return (
            step is not None
            and not self.quest_steps_claimed.get(self.current_quest_step)
            and step.check(self)
        )

    # --- Mutations: economy ---
    def seed_new_game(self) -> None:
        """Initialize a fresh save: a player id and the first mission."""
        if not self.player_id:
            self.player_id = generate_player_id(self.rng)
        self.mission.reset()
        self.start_mission()
        self._notify()

    def purchase_unit(self, index: int) -> bool:
        """Buy one unit if coins allow; the next cost follows the unit's curve."""
        if not 0 <= index < len(self.units):
            return False
        cost = self.unit_costs[index]
        if self.coins < cost:
            return False
        unit = self.units[index]
        self.coins -= cost
        self.units_owned[index] += 1
        self.unit_costs[index] = scaled_cost(unit.base_cost, unit.cost_multiplier, self.units_owned[index])
        self._update_tasks()
        self._notify()
        return True

    def purchase_upgrade(self, index: int) -> bool:
        """
        Buy one global upgrade if coins allow.

        The effect joins the global bonus source; the time cap is applied
        when a duration is computed, not here.
        """
        if not 0 <= index < len(self.upgrades):
            return False
        cost = self.upgrade_costs[index]
        if self.coins < cost:
            return False
        upg = self.upgrades[index]
        self.coins -= cost
        self.upgrades_owned[index] += 1
        self.upgrade_costs[index] = scaled_cost(upg.base_cost, upg.cost_multiplier, self.upgrades_owned[index])
        self._notify()
        return True

    def _credit(self, amount: float, season: bool = True) -> None:
        """Add rescued animals to coins (1 coin each) and every tally."""
        self.coins += amount
        self.animals_saved += amount
        self.lifetime_animals_saved += amount
        if season:
            self.season_animals_saved += amount
            if self.season_animals_saved > self.best_season_total:
                self.best_season_total = self.season_animals_saved

    # --- Mutations: missions ---
    def start_mission(self, now: Optional[float] = None) -> None:
        """Arm the mission at mission.mission_index with the reduced duration."""
        run = self.mission
        run.mission_index %= len(self.missions)
        m = self.missions[run.mission_index]
        run.start(m, self.bonus_ledger(now).effective_duration(m.duration))

    def finish_mission(self, now: Optional[float] = None) -> MissionOutcome:
        """
        Pay out the current mission and start the next one in catalog order.

        Only animals removed from risk during the mission count; when none
        were, the mission still rotates but grants nothing.
        """
        outcome = self._finish_mission(now)
        self._notify()
        return outcome

    def _finish_mission(self, now: Optional[float]) -> MissionOutcome:
        run = self.mission
        m = self.missions[run.mission_index]
        run.active = False
        saved_now = 0
        new_species = False
        if run.rescued > 0:
            saved_now = mission_reward(run.rescued, self.bonus_ledger(now).animal_multiplier)
            self._credit(saved_now)
            self.missions_completed += 1
            sp = self.species_by_name(m.species)
            if sp is not None and not sp.saved:
                sp.saved = True
                new_species = True
            self.reserve_counts[m.species] = self.reserve_counts.get(m.species, 0) + saved_now
        Logger.info("GameState: mission %r finished, %d %s saved", m.name, saved_now, m.species)
        run.mission_index = (run.mission_index + 1) % len(self.missions)
        self.start_mission(now)
        self._update_tasks()
        return MissionOutcome(m.name, m.species, saved_now, new_species)

    def tick(self, now: Optional[float] = None, seconds: float = Economy.TICK_SECONDS) -> Optional[MissionOutcome]:
        """
        Advance the simulation by one tick.

        Order: rotate an expired world event, produce, deplete mission risk,
        check completion, latch tasks. Returns the finished mission, if any.
        """
        now = self.clock() if now is None else float(now)
        self._refresh_event(now)
        produced = self.compute_rescue_rate(now) * seconds
        self.coins += produced
        self.animals_saved += produced
        self.lifetime_animals_saved += produced

        outcome = None
        run = self.mission
        if run.active:
            run.deplete(produced)
            run.advance(seconds)
            if run.is_complete():
                outcome = self._finish_mission(now)
        self._update_tasks()
        self._notify()
        return outcome

    def manual_rescue(self) -> Optional[MissionOutcome]:
        """Rescue one animal by hand; it also counts against the mission."""
        self._credit(Economy.MANUAL_RESCUE)
        outcome = None
        run = self.mission
        if run.active and run.animals_at_risk > 0:
            run.deplete(1)
            if run.is_complete():
                outcome = self._finish_mission(None)
        self._update_tasks()
        self._notify()
        return outcome

    # --- Mutations: prestige ---
    def prestige(self) -> int:
        """
        Convert lifetime progress into permits and restart the run.

        Permits, permit upgrades, lifetime total, best season, achievements,
        quest progress and biome unlocks survive. Returns the permits granted.
        """
        target = int(self.lifetime_animals_saved // Economy.ANIMALS_PER_PERMIT)
        new_permits = max(0, target - self.permits_total)
        self.permits_total = max(self.permits_total, target)
        self.permits_available += new_permits

        self.coins = 0.0
        self.animals_saved = 0.0
        self.units_owned = [0] * len(self.units)
        self.upgrades_owned = [0] * len(self.upgrades)
        for sp in self.species:
            sp.saved = False
        self.tasks_completed = {}
        self.missions_completed = 0
        self.reserve_counts = {}
        self._sync_costs()

        if self.season_animals_saved > self.best_season_total:
            self.best_season_total = self.season_animals_saved
        self.season_animals_saved = 0.0

        self.mission.reset()
        self.start_mission()
        Logger.info("GameState: prestige granted %d permits (%d total)", new_permits, self.permits_total)
        self._notify()
        return new_permits

    def purchase_permit_upgrade(self, index: int) -> bool:
        """Spend permits on a permanent upgrade."""
        if not 0 <= index < len(PERMIT_UPGRADES):
            return False
        cost = self.permit_upgrade_costs[index]
        if self.permits_available < cost:
            return False
        pu = PERMIT_UPGRADES[index]
        self.permits_available -= cost
        self.permit_upgrades[pu.effect_type] = self.permit_upgrades.get(pu.effect_type, 0) + 1
        self.permit_upgrade_costs[index] = scaled_cost(
            pu.base_cost, pu.cost_multiplier, self.permit_upgrades[pu.effect_type]
        )
        self._notify()
        return True

    # --- Mutations: progression ---
    def _apply_reward(self, reward_type: str, value: float) -> None:
        # rate/time/animals rewards are derived from the claimed flags in bonus_ledger()
        if reward_type == "coins":
            self.coins += value
        elif reward_type == "permit":
            self.permits_available += int(value)
            self.permits_total += int(value)

    def claim_achievement(self, aid: str) -> bool:
        """Claim an achievement once its predicate holds; idempotent."""
        if not self.achievement_ready(aid):
            return False
        ach = achievement_by_id(aid)
        self.achievements_completed[aid] = True
        self._apply_reward(ach.reward_type, ach.reward_value)
        Logger.info("GameState: achievement %r claimed", aid)
        self._notify()
        return True

    def claim_quest_step(self) -> bool:
        """Claim the current quest step and advance to the next one."""
        if not self.quest_ready():
            return False
        step = QUEST_STEPS[self.current_quest_step]
        self.quest_steps_claimed[self.current_quest_step] = True
        self._apply_reward(step.reward_type, step.reward_value)
        self.current_quest_step += 1
        self._notify()
        return True

    def _update_tasks(self) -> None:
        for task in TASKS:
            if not self.tasks_completed.get(task.id) and task.check(self):
                self.tasks_completed[task.id] = True

    def _merge_biome(self, biome: Biome) -> None:
        """Append the biome's catalog entries that are not present yet, by name."""
        for spec in biome.species:
            if self.species_by_name(spec.name) is None:
                self.species.append(Species(spec.name, spec.bonus, spec.effect_type, spec.effect_value))
        self.species_colors.update(biome.species_colors)
        for unit in biome.units:
            if self.unit_index(unit.name) is None:
                self.units.append(unit)
                self.units_owned.append(0)
                self.unit_costs.append(unit.base_cost)
        known = {m.species for m in self.missions}
        for m in biome.missions(
            Economy.BIOME_MISSION_DURATION_S,
            Economy.BIOME_MISSION_RISK,
            Economy.BIOME_MISSION_DIFFICULTY,
        ):
            if m.species not in known:
                self.missions.append(m)

    def unlock_biome(self, biome_id: str) -> bool:
        """Spend permits to unlock a biome; unknown or unlocked ids are no-ops."""
        biome = biome_by_id(biome_id)
        if biome is None or self.biomes_unlocked.get(biome_id):
            return False
        if self.permits_available < biome.cost:
            return False
        self.permits_available -= biome.cost
        self.biomes_unlocked[biome_id] = True
        self._merge_biome(biome)
        Logger.info("GameState: biome %r unlocked", biome_id)
        self._notify()
        return True

    def _refresh_event(self, now: float) -> bool:
        if self.active_event is not None and not self.active_event.is_expired(now):
            return False
        self.active_event = start_event(now, self.rng)
        Logger.info("GameState: world event %r started", self.active_event.id)
        return True

    def refresh_event(self, now: Optional[float] = None) -> bool:
        """Start a new world event when none is running or it expired."""
        changed = self._refresh_event(self.clock() if now is None else now)
        if changed:
            self._notify()
        return changed

    def grant_daily_bonus_if_needed(self, today: Optional[str] = None) -> int:
        """Grant the daily coin bonus once per calendar day. Returns coins granted."""
        today = today or local_date_string(self.clock())
        if self.last_daily_bonus_date == today:
            return 0
        self.coins += Economy.DAILY_BONUS
        self.last_daily_bonus_date = today
        self._notify()
        return Economy.DAILY_BONUS

    def set_tip_link(self, link: str) -> bool:
        link = (link or "").strip()
        if not link:
            return False
        self.tip_link = link
        self._notify()
        return True

    # --- Offline / session start ---
    def apply_offline_progress(self, last_save: float, now: Optional[float] = None) -> float:
        """
        Credit production for the time since `last_save` (epoch seconds).

        The window is clamped to [0, OFFLINE_CAP_S]. The rate comes from the
        fully restored state, with the world event as it stood at last_save.
        Returns the animals credited.
        """
        now = self.clock() if now is None else now
        window = min(max(0.0, now - last_save), Economy.OFFLINE_CAP_S)
        earned = self.compute_rescue_rate(last_save) * window
        if earned > 0:
            self._credit(earned)
            Logger.info("GameState: %.1f animals rescued while away (%ds)", earned, window)
        return earned

    def resume(self, now: Optional[float] = None) -> int:
        """
        Bring a loaded or freshly seeded state up to `now`: daily bonus,
        world event, running mission. Returns the daily bonus granted.
        """
        now = self.clock() if now is None else now
        bonus = self.grant_daily_bonus_if_needed(local_date_string(now))
        self._refresh_event(now)
        if not self.mission.active:
            self.start_mission(now)
        self._update_tasks()
        self._notify()
        return bonus

    def _sync_costs(self) -> None:
        """Size ownership arrays to the catalogs and recompute every next cost."""
        self.units_owned = _counts(self.units_owned, len(self.units))
        self.unit_costs = [
            scaled_cost(u.base_cost, u.cost_multiplier, n) for u, n in zip(self.units, self.units_owned)
        ]
        self.upgrades_owned = _counts(self.upgrades_owned, len(self.upgrades))
        self.upgrade_costs = [
            scaled_cost(u.base_cost, u.cost_multiplier, n) for u, n in zip(self.upgrades, self.upgrades_owned)
        ]
        self.permit_upgrade_costs = [
            scaled_cost(pu.base_cost, pu.cost_multiplier, self.permit_upgrades.get(pu.effect_type, 0))
            for pu in PERMIT_UPGRADES
        ]

    # --- Serialization ---
    def to_dict(self, now: Optional[float] = None) -> Dict[str, object]:
        """Serialize the entire game state to a JSON-friendly dict."""
        now = self.clock() if now is None else now
        return {
            "coins": self.coins,
            "animals_saved": self.animals_saved,
            "lifetime_animals_saved": self.lifetime_animals_saved,
            "season_animals_saved": self.season_animals_saved,
            "best_season_total": self.best_season_total,
            "units_owned": list(self.units_owned),
            "unit_costs": list(self.unit_costs),
            "upgrades_owned": list(self.upgrades_owned),
            "upgrade_costs": list(self.upgrade_costs),
            "species": [{"name": sp.name, "saved": sp.saved} for sp in self.species],
            "mission": self.mission.to_dict(),
            "missions_completed": self.missions_completed,
            "reserve_counts": dict(self.reserve_counts),
            "tasks_completed": dict(self.tasks_completed),
            "permits_total": self.permits_total,
            "permits_available": self.permits_available,
            "permit_upgrades": dict(self.permit_upgrades),
            "permit_upgrade_costs": list(self.permit_upgrade_costs),
            "biomes_unlocked": dict(self.biomes_unlocked),
            "achievements_completed": dict(self.achievements_completed),
            "current_quest_step": self.current_quest_step,
            "quest_steps_claimed": {str(k): v for k, v in self.quest_steps_claimed.items()},
            "active_event": self.active_event.to_dict() if self.active_event else None,
            # Snapshot for readers of the save file; recomputed on load.
            "bonuses": self.bonus_ledger(now).to_dict(),
            "last_save": int(now * 1000),
            "last_daily_bonus_date": self.last_daily_bonus_date,
            "player_id": self.player_id,
            "tip_link": self.tip_link,
        }

    @staticmethod
    def from_dict(
        d: Dict[str, object],
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ) -> "GameState":
        """
        Build a GameState from a dict produced by to_dict().

        Missing fields default safely. Unlocked biomes are merged before the
        ownership arrays are restored so indices line up with the catalogs;
        next costs and bonuses are recomputed rather than trusted.
        Raises ValueError/TypeError/KeyError on malformed input.
        """
        if not isinstance(d, dict):
            raise TypeError("save data must be a JSON object.")
        st = GameState(clock=clock, rng=rng or random.Random())

        for bid, unlocked in dict(d.get("biomes_unlocked") or {}).items():
            biome = biome_by_id(str(bid))
            if unlocked and biome is not None:
                st.biomes_unlocked[biome.id] = True
                st._merge_biome(biome)

        st.units_owned = _counts(d.get("units_owned"), len(st.units))
        st.upgrades_owned = _counts(d.get("upgrades_owned"), len(st.upgrades))
        raw_permits = dict(d.get("permit_upgrades") or {})
        st.permit_upgrades = {t: int(_amount(raw_permits.get(t))) for t in PERMIT_EFFECT_TYPES}
        st._sync_costs()

        saved = {str(x["name"]): bool(x.get("saved", False)) for x in list(d.get("species") or [])}
        for sp in st.species:
            sp.saved = saved.get(sp.name, False)

        st.coins = _amount(d.get("coins"))
        st.animals_saved = _amount(d.get("animals_saved"))
        lifetime = d.get("lifetime_animals_saved")
        st.lifetime_animals_saved = _amount(lifetime) if lifetime is not None else st.animals_saved
        st.season_animals_saved = _amount(d.get("season_animals_saved"))
        st.best_season_total = _amount(d.get("best_season_total"))

        st.mission = MissionRunState.from_dict(d.get("mission"), len(st.missions))
        st.missions_completed = int(_amount(d.get("missions_completed")))
        st.reserve_counts = {str(k): _amount(v) for k, v in dict(d.get("reserve_counts") or {}).items()}
        st.tasks_completed = {str(k): bool(v) for k, v in dict(d.get("tasks_completed") or {}).items()}

        st.permits_total = int(_amount(d.get("permits_total")))
        st.permits_available = int(_amount(d.get("permits_available")))

        st.achievements_completed = {
            str(k): bool(v) for k, v in dict(d.get("achievements_completed") or {}).items()
        }
        st.current_quest_step = min(max(0, int(d.get("current_quest_step", 0) or 0)), len(QUEST_STEPS))
        st.quest_steps_claimed = {
            int(k): bool(v) for k, v in dict(d.get("quest_steps_claimed") or {}).items()
        }

        st.active_event = ActiveEvent.from_dict(d.get("active_event"))  # type: ignore[arg-type]
        st.last_daily_bonus_date = d.get("last_daily_bonus_date") or None  # type: ignore[assignment]
        st.player_id = str(d.get("player_id") or "") or generate_player_id(st.rng)
        st.tip_link = str(d.get("tip_link") or "")
        return st
