# ui/components.py
from __future__ import annotations

from typing import Callable, List, Optional

from kivy.app import App
from kivy.metrics import dp
from kivymd.toast import toast
from kivymd.uix.bottomnavigation import MDBottomNavigationItem
from kivymd.uix.boxlayout import MDBoxLayout
from kivymd.uix.button import MDRaisedButton
from kivymd.uix.label import MDLabel
from kivymd.uix.progressbar import MDProgressBar
from kivymd.uix.scrollview import MDScrollView
from kivymd.uix.textfield import MDTextField

from models.catalog import BIOMES, PERMIT_UPGRADES
from models.progression import ACHIEVEMENTS, QUEST_NAME, TASKS
from services.economy import Economy
from services.friend_code import FriendCodeError, compare_friend_code, encode_friend_code
from services.state import GameState

EFFECT_LABELS = {
    "rate": "+{pct}% rescue rate",
    "time": "-{pct}% mission time",
    "animals": "+{pct}% animals per mission",
    "map": "map upgrade",
}


# ---------------------------------------------------------------------------
# Utilities
# ---------------------------------------------------------------------------
def _state() -> Optional[GameState]:
    """Return the GameState stored on the running App (if present)."""
    return getattr(App.get_running_app(), "state", None)


def show_toast(msg: str) -> None:
    toast(msg)


def _effect(effect_type: str, value: float) -> str:
    return EFFECT_LABELS[effect_type].format(pct=round(value * 100))


def _label(text: str = "", height: float = 28, **kwargs) -> MDLabel:
    return MDLabel(text=text, size_hint_y=None, height=dp(height), **kwargs)


class ActionRow(MDBoxLayout):
    """One line of text with a button on the right."""

    def __init__(self, on_press: Callable[[], None], **kwargs) -> None:
        super().__init__(orientation="horizontal", size_hint_y=None, height=dp(56),
                         spacing=dp(8), padding=(dp(8), 0), **kwargs)
        self.info = MDLabel(text="")
        self.button = MDRaisedButton(text="", pos_hint={"center_y": 0.5})
        self.button.bind(on_release=lambda *_: on_press())
        self.add_widget(self.info)
        self.add_widget(self.button)

    def update(self, info: str, button: str, enabled: bool) -> None:
        self.info.text = info
        self.button.text = button
        self.button.disabled = not enabled


# ---------------------------------------------------------------------------
# Top bar
# ---------------------------------------------------------------------------
class TopBar(MDBoxLayout):
    def __init__(self, **kwargs) -> None:
        super().__init__(orientation="horizontal", size_hint_y=None, height=dp(48),
                         padding=(dp(12), 0), **kwargs)
        self._coins = MDLabel(text="Coins: 0")
        self._rate = MDLabel(text="Rate: 0.00/s")
        self._permits = MDLabel(text="Permits: 0")
        for w in (self._coins, self._rate, self._permits):
            self.add_widget(w)

    def refresh(self, st: GameState) -> None:
        self._coins.text = f"Coins: {st.coins:.1f}"
        self._rate.text = f"Rate: {st.compute_rescue_rate():.2f}/s"
        self._permits.text = f"Permits: {st.permits_available}"


# ---------------------------------------------------------------------------
# Tabs
# ---------------------------------------------------------------------------
class BaseTab(MDBottomNavigationItem):
    """Scrollable column of widgets; subclasses fill `self.body`."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        scroll = MDScrollView()
        self.body = MDBoxLayout(orientation="vertical", size_hint_y=None,
                                padding=dp(12), spacing=dp(6))
        self.body.bind(minimum_height=self.body.setter("height"))
        scroll.add_widget(self.body)
        self.add_widget(scroll)

    def refresh(self) -> None:  # overridden by children
        pass


class RescueTab(BaseTab):
    """Current mission, manual rescue, world event and onboarding tasks."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.mission_label = _label(font_style="H6")
        self.mission_info = _label()
        self.progress = MDProgressBar(value=0, max=100, size_hint_y=None, height=dp(8))
        self.rescue_btn = MDRaisedButton(text="Rescue an animal")
        self.rescue_btn.bind(on_release=lambda *_: self.on_manual_rescue())
        self.event_label = _label()
        self.tasks_box = MDBoxLayout(orientation="vertical", size_hint_y=None)
        self.tasks_box.bind(minimum_height=self.tasks_box.setter("height"))
        self._task_labels = [_label() for _ in TASKS]
        for label in self._task_labels:
            self.tasks_box.add_widget(label)
        for w in (self.mission_label, self.mission_info, self.progress, self.rescue_btn,
                  self.event_label, _label("Getting started", font_style="Subtitle1"), self.tasks_box):
            self.body.add_widget(w)

    def on_manual_rescue(self) -> None:
        st = _state()
        if not st:
            return
        outcome = st.manual_rescue()
        if outcome and outcome.saved:
            show_toast(f"{outcome.mission}: {outcome.saved} {outcome.species} saved!")

    def refresh(self) -> None:
        st = _state()
        if not st:
            return
        run = st.mission
        self.mission_label.text = f"Mission: {st.current_mission.name}"
        self.mission_info.text = (
            f"Time left: {max(0, int(run.time_left))}s • At risk: {max(0, int(run.animals_at_risk + 0.999))}"
        )
        self.progress.value = max(0.0, min(100.0, run.progress() * 100))
        ev = st.active_event
        if ev is None:
            self.event_label.text = ""
        else:
            secs = ev.remaining(st.clock())
            self.event_label.text = f"Event: {ev.name} ({secs // 3600:02d}:{secs % 3600 // 60:02d}:{secs % 60:02d})"
        for label, task in zip(self._task_labels, TASKS):
            mark = "[x]" if st.tasks_completed.get(task.id) else "[ ]"
            label.text = f"{mark} {task.description}"


class ShopTab(BaseTab):
    """Rescue units and global upgrades."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._unit_rows: List[ActionRow] = []
        self._upgrade_rows: List[ActionRow] = []

    def _rebuild(self, st: GameState) -> None:
        self.body.clear_widgets()
        self.body.add_widget(_label("Rescue units", font_style="Subtitle1"))
        self._unit_rows = []
        for i in range(len(st.units)):
            row = ActionRow(lambda i=i: self._buy(lambda s: s.purchase_unit(i)))
            self._unit_rows.append(row)
            self.body.add_widget(row)
        self.body.add_widget(_label("Upgrades", font_style="Subtitle1"))
        self._upgrade_rows = []
        for i in range(len(st.upgrades)):
            row = ActionRow(lambda i=i: self._buy(lambda s: s.purchase_upgrade(i)))
            self._upgrade_rows.append(row)
            self.body.add_widget(row)

    @staticmethod
    def _buy(action: Callable[[GameState], bool]) -> None:
        st = _state()
        if st and not action(st):
            show_toast("Not enough coins.")

    def refresh(self) -> None:
        st = _state()
        if not st:
            return
        if len(self._unit_rows) != len(st.units) or len(self._upgrade_rows) != len(st.upgrades):
            self._rebuild(st)
        for row, unit, owned, cost in zip(self._unit_rows, st.units, st.units_owned, st.unit_costs):
            row.update(
                f"{unit.name} • Owned: {owned} • {unit.base_rate * owned:.1f} animals/min",
                f"Buy ({cost})", st.coins >= cost,
            )
        for row, upg, owned, cost in zip(self._upgrade_rows, st.upgrades, st.upgrades_owned, st.upgrade_costs):
            row.update(
                f"{upg.name} • Owned: {owned} • {_effect(upg.effect_type, upg.effect_value)}",
                f"Buy ({cost})", st.coins >= cost,
            )


class PermitsTab(BaseTab):
    """Prestige, permit upgrades and biome unlocks."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.info = _label(height=48)
        self.prestige_row = ActionRow(self.on_prestige)
        self.body.add_widget(self.info)
        self.body.add_widget(self.prestige_row)
        self.body.add_widget(_label("Permit upgrades", font_style="Subtitle1"))
        self.permit_rows = []
        for i in range(len(PERMIT_UPGRADES)):
            row = ActionRow(lambda i=i: self._spend(lambda s: s.purchase_permit_upgrade(i)))
            self.permit_rows.append(row)
            self.body.add_widget(row)
        self.body.add_widget(_label("Biomes", font_style="Subtitle1"))
        self.biome_rows = []
        for biome in BIOMES:
            row = ActionRow(lambda bid=biome.id: self._spend(lambda s: s.unlock_biome(bid)))
            self.biome_rows.append(row)
            self.body.add_widget(row)

    @staticmethod
    def _spend(action: Callable[[GameState], bool]) -> None:
        st = _state()
        if st and not action(st):
            show_toast("Not enough permits.")

    def on_prestige(self) -> None:
        st = _state()
        if not st:
            return
        granted = st.prestige()
        show_toast(f"New season! +{granted} permits")

    def refresh(self) -> None:
        st = _state()
        if not st:
            return
        self.info.text = (
            f"Lifetime saved: {int(st.lifetime_animals_saved)} • "
            f"Permits: {st.permits_available} available / {st.permits_total} earned"
        )
        self.prestige_row.update(
            f"Prestige now for {st.pending_permits()} permits "
            f"(1 per {Economy.ANIMALS_PER_PERMIT} animals)",
            "Prestige", True,
        )
        for i, (row, pu) in enumerate(zip(self.permit_rows, PERMIT_UPGRADES)):
            cost = st.permit_upgrade_costs[i]
            row.update(
                f"{pu.name} • Owned: {st.permit_upgrades.get(pu.effect_type, 0)} • "
                f"{_effect(pu.effect_type, pu.effect_value)}",
                f"Buy ({cost})", st.permits_available >= cost,
            )
        for row, biome in zip(self.biome_rows, BIOMES):
            if st.biomes_unlocked.get(biome.id):
                row.update(f"{biome.name} • Unlocked", "Unlocked", False)
            else:
                row.update(f"{biome.name} • Cost: {biome.cost} permits",
                           f"Unlock ({biome.cost})", st.permits_available >= biome.cost)


class ProgressTab(BaseTab):
    """Achievements and the questline."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.body.add_widget(_label("Achievements", font_style="Subtitle1"))
        self.achievement_rows = []
        for ach in ACHIEVEMENTS:
            row = ActionRow(lambda aid=ach.id: _state() and _state().claim_achievement(aid))
            self.achievement_rows.append(row)
            self.body.add_widget(row)
        self.body.add_widget(_label(QUEST_NAME, font_style="Subtitle1"))
        self.quest_row = ActionRow(lambda: _state() and _state().claim_quest_step())
        self.body.add_widget(self.quest_row)

    def refresh(self) -> None:
        st = _state()
        if not st:
            return
        for row, ach in zip(self.achievement_rows, ACHIEVEMENTS):
            done = bool(st.achievements_completed.get(ach.id))
            row.update(ach.description, "Claimed" if done else "Claim", st.achievement_ready(ach.id))
        step = st.current_quest
        if step is None:
            self.quest_row.update("Congratulations! The reef has been rebuilt!", "Done", False)
        else:
            ready = st.quest_ready()
            self.quest_row.update(
                f"{step.description} • {'Ready' if ready else 'In progress…'}",
                "Claim Reward", ready,
            )


class SanctuaryTab(BaseTab):
    """Saved species, season stats, friend codes and the tip link."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.season_label = _label()
        self.species_box = MDBoxLayout(orientation="vertical", size_hint_y=None)
        self.species_box.bind(minimum_height=self.species_box.setter("height"))
        self._species_labels: List[MDLabel] = []
        self.code_label = _label(height=40)
        self.code_input = MDTextField(hint_text="Friend code", size_hint_y=None, height=dp(48))
        self.compare_btn = MDRaisedButton(text="Compare")
        self.compare_btn.bind(on_release=lambda *_: self.on_compare())
        self.tip_input = MDTextField(hint_text="Tip link", size_hint_y=None, height=dp(48))
        self.tip_btn = MDRaisedButton(text="Set tip link")
        self.tip_btn.bind(on_release=lambda *_: self.on_set_tip_link())
        for w in (self.season_label, self.species_box, self.code_label, self.code_input,
                  self.compare_btn, self.tip_input, self.tip_btn):
            self.body.add_widget(w)

    def on_compare(self) -> None:
        st = _state()
        if not st:
            return
        try:
            show_toast(compare_friend_code(self.code_input.text, st.best_season_total).message)
        except FriendCodeError as e:
            show_toast(str(e))

    def on_set_tip_link(self) -> None:
        st = _state()
        if st and st.set_tip_link(self.tip_input.text):
            self.tip_input.text = ""

    def refresh(self) -> None:
        st = _state()
        if not st:
            return
        self.season_label.text = (
            f"Season saved: {int(st.season_animals_saved)} (Best: {int(st.best_season_total)})"
        )
        # biomes only ever append species
        while len(self._species_labels) < len(st.species):
            label = _label()
            self._species_labels.append(label)
            self.species_box.add_widget(label)
        for label, sp in zip(self._species_labels, st.species):
            count = int(st.reserve_counts.get(sp.name, 0))
            status = f"saved • {count} in reserve • {sp.bonus}" if sp.saved else "not yet rescued"
            label.text = f"{sp.name}: {status}"
        self.code_label.text = f"Your code: {encode_friend_code(st.player_id, st.best_season_total)}"
        self.tip_input.hint_text = f"Tip link ({st.tip_link})" if st.tip_link else "Tip link"
