# main.py
from __future__ import annotations

from kivy.clock import Clock
from kivy.core.window import Window
from kivy.logger import Logger
from kivy.utils import platform
from kivymd.app import MDApp
from kivymd.uix.bottomnavigation import MDBottomNavigation
from kivymd.uix.boxlayout import MDBoxLayout

from services.economy import Economy
from services.persistence import Persistence
from services.state import GameState, MissionOutcome
from ui.components import (
    BaseTab,
    PermitsTab,
    ProgressTab,
    RescueTab,
    SanctuaryTab,
    ShopTab,
    TopBar,
    show_toast,
)


class RescueApp(MDApp):
    title = "Rescue Reserve"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.state: GameState | None = None
        self.persistence: Persistence | None = None
        self.topbar: TopBar | None = None
        self.nav: MDBottomNavigation | None = None
        self.tabs: list[BaseTab] = []

    # ---------- Persistence helpers ----------
    def _save(self, *_) -> None:
        if self.state is not None and self.persistence is not None:
            self.persistence.save(self.state)

    def _load_or_seed(self) -> None:
        """Load the save (with offline credit) or seed a fresh game."""
        self.persistence = Persistence()
        state = self.persistence.load()
        if state is None:
            state = GameState()
            state.seed_new_game()
            state.meta["first_run"] = True
        else:
            state.meta["first_run"] = False
        self.state = state
        bonus = state.resume()
        if bonus:
            Clock.schedule_once(lambda *_: show_toast(f"Daily bonus: +{bonus} coins for returning!"), 0.5)
        self._save()

    # ---------- App lifecycle ----------
    def build(self):
        self.theme_cls.theme_style = "Dark"
        self.theme_cls.primary_palette = "Teal"
        if platform not in ("android", "ios"):
            Window.size = (420, 780)

        self._load_or_seed()

        root = MDBoxLayout(orientation="vertical")
        self.topbar = TopBar()
        self.nav = MDBottomNavigation()
        self.tabs = [
            RescueTab(name="rescue", text="Rescue", icon="lifebuoy"),
            ShopTab(name="shop", text="Shop", icon="cart"),
            PermitsTab(name="permits", text="Permits", icon="certificate"),
            ProgressTab(name="progress", text="Goals", icon="trophy"),
            SanctuaryTab(name="sanctuary", text="Sanctuary", icon="paw"),
        ]
        for tab in self.tabs:
            self.nav.add_widget(tab)
        root.add_widget(self.topbar)
        root.add_widget(self.nav)

        self.state.add_observer(self._refresh_all)
        Clock.schedule_interval(self._tick, Economy.TICK_SECONDS)
        self._refresh_all()
        return root

    def on_start(self):
        if self.state is not None and self.state.meta.get("first_run"):
            show_toast("Welcome! Your first mission has started.")

    def on_pause(self):
        self._save()
        return True

    def on_stop(self):
        self._save()

    # ---------- Tick ----------
    def _tick(self, dt: float) -> None:
        outcome = self.state.tick()
        self._save()
        if outcome is not None:
            self._announce(outcome)

    @staticmethod
    def _announce(outcome: MissionOutcome) -> None:
        if outcome.new_species:
            show_toast(f"{outcome.species} rescued for the first time!")
        elif outcome.saved:
            show_toast(f"{outcome.mission}: {outcome.saved} animals saved")
        Logger.debug("RescueApp: %r", outcome)

    # ---------- UI updates ----------
    def _refresh_all(self) -> None:
        if self.topbar is not None:
            self.topbar.refresh(self.state)
        for tab in self.tabs:
            tab.refresh()


if __name__ == "__main__":
    RescueApp().run()
