# tests/conftest.py
import os

# Must be set before anything imports kivy: keep Kivy away from pytest's argv
# and from writing log files during the test run.
os.environ.setdefault("KIVY_NO_ARGS", "1")
os.environ.setdefault("KIVY_NO_FILELOG", "1")
os.environ.setdefault("KIVY_NO_CONSOLELOG", "1")

import random

import pytest

from models.world_event import ActiveEvent
from services.state import GameState

START_TS = 1_700_000_000.0


class FakeClock:
    """Callable clock returning a settable epoch-seconds timestamp."""

    def __init__(self, now: float = START_TS) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def calm_event(now: float) -> ActiveEvent:
    """A world event that grants nothing and never expires during a test."""
    return ActiveEvent("calm", "Calm Skies", 0.0, 0.0, 0.0, end_time=now + 10**9)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def state(clock) -> GameState:
    """Fresh game with no active bonuses and mission 0 (Jungle Fire) running."""
    st = GameState(clock=clock, rng=random.Random(7))
    st.active_event = calm_event(clock.now)
    st.seed_new_game()
    return st
