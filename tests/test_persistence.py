import json
import random

import pytest

from conftest import FakeClock, calm_event
from services.economy import Economy, scaled_cost
from services.persistence import Persistence
from services.state import GameState


@pytest.fixture
def store(tmp_path) -> Persistence:
    return Persistence(path=str(tmp_path / "save.json"))


def _write(store: Persistence, payload) -> None:
    with open(store.path, "w", encoding="utf-8") as f:
        f.write(payload if isinstance(payload, str) else json.dumps(payload))


def test_round_trip(state, store, clock):
    state.coins = 1000
    state.purchase_unit(1)
    state.purchase_upgrade(0)
    state.mission.animals_at_risk = 0
    state.finish_mission()
    state.lifetime_animals_saved = 120
    state.claim_achievement("save100")
    state.grant_daily_bonus_if_needed("2023-11-14")

    assert store.save(state)
    loaded = store.load(clock=clock, rng=random.Random(1))
    assert loaded is not None
    assert loaded.to_dict(clock.now) == state.to_dict(clock.now)


def test_save_document_format(state, store, clock):
    assert store.save(state)
    doc = store.read()
    assert doc["last_save"] == int(clock.now * 1000)
    assert doc["active_event"]["end_time"] == int((clock.now + 10**9) * 1000)
    assert set(doc["bonuses"]) == {"global", "species", "permits", "events", "achievements"}
    assert doc["player_id"] == state.player_id


def test_save_leaves_no_temp_files(state, store, tmp_path):
    assert store.save(state)
    assert store.save(state)
    assert [p.name for p in tmp_path.iterdir()] == ["save.json"]


def test_offline_credit_is_capped(state, store, clock):
    state.units_owned[0] = 6  # 0.1 animals/s
    assert store.save(state)
    clock.advance(5 * 3600)
    loaded = store.load(clock=clock)
    expected = 0.1 * Economy.OFFLINE_CAP_S
    assert loaded.coins == pytest.approx(expected)
    assert loaded.lifetime_animals_saved == pytest.approx(expected)
    assert loaded.season_animals_saved == pytest.approx(expected)


def test_offline_credit_uses_event_at_last_save(state, store, clock):
    state.units_owned[0] = 6
    state.active_event = calm_event(clock.now)
    state.active_event.rate_bonus = 0.5
    state.active_event.end_time = clock.now + 60
    assert store.save(state)
    clock.advance(3600)
    loaded = store.load(clock=clock)
    assert loaded.coins == pytest.approx(0.1 * 1.5 * 3600)


def test_clock_going_backwards_credits_nothing(state, store, clock):
    state.units_owned[0] = 6
    assert store.save(state)
    clock.advance(-600)
    loaded = store.load(clock=clock)
    assert loaded.coins == 0


def test_missing_fields_default(store, clock):
    _write(store, {"animals_saved": 42, "coins": 5})
    loaded = store.load(clock=clock)
    assert loaded.lifetime_animals_saved == 42
    assert loaded.coins == 5
    assert len(loaded.player_id) == Economy.PLAYER_ID_LENGTH
    assert loaded.units_owned == [0] * len(loaded.units)
    assert not loaded.mission.active


def test_out_of_range_mission_restarts(store, clock):
    _write(store, {"mission": {"mission_index": 40, "active": True, "time_left": 5}})
    loaded = store.load(clock=clock)
    assert loaded.mission.mission_index == 0
    assert not loaded.mission.active
    loaded.resume()
    assert loaded.mission.active
    assert loaded.mission.total_animals == 20


def test_stored_bonuses_and_costs_are_recomputed(state, store, clock):
    state.units_owned[0] = 3
    assert store.save(state)
    doc = store.read()
    doc["bonuses"]["global"]["rate"] = 50.0
    doc["unit_costs"][0] = 1
    _write(store, doc)
    loaded = store.load(clock=clock)
    assert loaded.bonus_ledger().rate_multiplier == 1.0
    assert loaded.unit_costs[0] == scaled_cost(50, 1.15, 3)


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        "[1, 2, 3]",
        json.dumps({"units_owned": "abc"}),
        json.dumps({"coins": "lots"}),
        '{"permits_total": 1e400}',
        '{"lifetime_animals_saved": NaN}',
        '{"best_season_total": Infinity}',
        json.dumps({"units_owned": [6000]}),
        json.dumps({"mission": {"mission_index": 0, "total_animals": 1e400}}),
    ],
)
def test_malformed_save_loads_as_none(store, clock, payload):
    _write(store, payload)
    assert store.load(clock=clock) is None


def test_negative_tallies_are_floored(store, clock):
    _write(store, {
        "lifetime_animals_saved": -5000,
        "season_animals_saved": -1,
        "best_season_total": -2,
        "permits_total": -3,
        "permits_available": -4,
        "missions_completed": -5,
        "reserve_counts": {"Koala": -6},
        "permit_upgrades": {"rate": -1},
    })
    loaded = store.load(clock=clock)
    assert loaded.lifetime_animals_saved == 0
    assert loaded.season_animals_saved == 0
    assert loaded.best_season_total == 0
    assert loaded.permits_total == 0
    assert loaded.permits_available == 0
    assert loaded.missions_completed == 0
    assert loaded.reserve_counts == {"Koala": 0}
    assert loaded.permit_upgrades["rate"] == 0
    assert loaded.prestige() == 0


def test_non_finite_lifetime_never_reaches_prestige(store, clock):
    _write(store, '{"lifetime_animals_saved": NaN, "coins": 10}')
    assert store.load(clock=clock) is None


def test_missing_save_is_none(store, clock):
    assert store.load(clock=clock) is None


def test_failed_save_returns_false(state, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    store = Persistence(path=str(blocker / "save.json"))
    assert store.save(state) is False


def test_biome_content_aligned_after_reload(state, store, clock):
    state.permits_available = 3
    assert state.unlock_biome("savannah")
    jeep = state.unit_index("Safari Jeep")
    state.coins = 2000
    assert state.purchase_unit(jeep)
    state.species_by_name("Zebra").saved = True
    assert store.save(state)

    loaded = store.load(clock=clock)
    assert loaded.biomes_unlocked == {"savannah": True}
    assert loaded.unit_index("Safari Jeep") == jeep
    assert loaded.units_owned[jeep] == 1
    assert loaded.unit_costs[jeep] == scaled_cost(2000, 1.15, 1)
    assert loaded.species_by_name("Zebra").saved
    assert [m.name for m in loaded.missions] == [m.name for m in state.missions]


def test_load_and_continue_playing(state, store):
    clock = FakeClock()
    state.units_owned[5] = 6
    assert store.save(state, now=clock.now)
    loaded = store.load(clock=clock)
    outcome = loaded.tick()
    assert outcome is not None and outcome.saved == 20
    assert isinstance(loaded, GameState)
