import pytest

from models.catalog import MISSIONS, Mission
from models.mission import MissionRunState, mission_reward


def test_new_game_starts_first_mission(state):
    run = state.mission
    assert run.active
    assert run.mission_index == 0
    assert run.time_left == 120
    assert run.total_animals == 20
    assert run.animals_at_risk == 20


def test_mission_reward_only_counts_rescued():
    assert mission_reward(20, 1.0) == 20
    assert mission_reward(20, 1.5) == 30
    assert mission_reward(7, 1.1) == 7
    assert mission_reward(0, 2.0) == 0
    assert mission_reward(-3, 2.0) == 0


def test_run_state_clamps_and_validates():
    run = MissionRunState(total_animals=10, animals_at_risk=15)
    assert run.animals_at_risk == 10
    run.deplete(25)
    assert run.animals_at_risk == 0
    with pytest.raises(ValueError):
        run.deplete(-1)
    with pytest.raises(ValueError):
        run.start(MISSIONS[0], 0)


def test_finish_pays_rescued_animals(state):
    state.coins = 5
    state.mission.animals_at_risk = 0
    outcome = state.finish_mission()
    assert outcome.saved == 20
    assert outcome.new_species
    assert state.coins == 25
    assert state.animals_saved == 20
    assert state.lifetime_animals_saved == 20
    assert state.season_animals_saved == 20
    assert state.best_season_total == 20
    assert state.missions_completed == 1
    assert state.species_by_name("Koala").saved
    assert state.reserve_counts["Koala"] == 20


def test_finish_advances_and_restarts(state):
    state.mission.animals_at_risk = 0
    state.finish_mission()
    run = state.mission
    assert run.active
    assert run.mission_index == 1
    assert run.total_animals == 33
    # Koala (-2% time) was saved by the first mission
    assert run.time_left == pytest.approx(150 * 0.98)


def test_missions_wrap_around(state):
    state.mission.mission_index = len(state.missions) - 1
    state.start_mission()
    state.finish_mission()
    assert state.mission.mission_index == 0


def test_half_risk_rounds_up(state):
    state.mission.mission_index = 2  # Mountain Avalanche: 15 x 1.3 = 19.5
    state.start_mission()
    assert state.mission.total_animals == 20


def test_tick_completes_on_depleted_risk(state):
    state.units_owned[5] = 6  # 6 drones: 1200/min = 20/s
    outcome = state.tick()
    assert outcome is not None
    assert outcome.mission == "Jungle Fire"
    assert outcome.saved == 20
    assert state.coins == pytest.approx(40)
    assert state.lifetime_animals_saved == pytest.approx(40)
    assert state.season_animals_saved == 20
    assert state.mission.mission_index == 1


def test_observers_notified_once_per_action(state):
    calls = []
    state.add_observer(lambda: calls.append(1))
    state.units_owned[5] = 6
    assert state.tick() is not None
    assert len(calls) == 1

    state.mission.animals_at_risk = 1
    assert state.manual_rescue() is not None
    assert len(calls) == 2

    state.finish_mission()
    assert len(calls) == 3


def test_timeout_grants_nothing(state):
    state.mission.time_left = 1
    outcome = state.tick()
    assert outcome is not None
    assert outcome.saved == 0
    assert not outcome.new_species
    assert state.coins == 0
    assert state.missions_completed == 0
    assert not state.species_by_name("Koala").saved
    assert state.mission.mission_index == 1


def test_invariants_hold_every_tick(state):
    state.units_owned[0] = 5
    state.units_owned[1] = 1
    prev_time = state.mission.time_left
    for _ in range(600):
        run = state.mission
        produced = state.compute_rescue_rate()
        expect_done = run.time_left - 1 <= 0 or run.animals_at_risk - produced <= 0
        outcome = state.tick()
        assert (outcome is not None) == expect_done
        run = state.mission
        assert 0 <= run.animals_at_risk <= run.total_animals
        if outcome is None:
            assert run.time_left <= prev_time
        prev_time = run.time_left
    assert state.missions_completed > 0


def test_manual_rescue(state):
    outcome = state.manual_rescue()
    assert outcome is None
    assert state.coins == 1
    assert state.animals_saved == 1
    assert state.lifetime_animals_saved == 1
    assert state.season_animals_saved == 1
    assert state.mission.animals_at_risk == 19


def test_manual_rescue_can_finish_mission(state):
    state.mission.animals_at_risk = 1
    outcome = state.manual_rescue()
    assert outcome is not None
    assert outcome.saved == 20
    assert state.coins == 21


def test_effective_duration_never_below_floor(state):
    state.species_by_name("Koala").saved = True
    state.species_by_name("Penguin").saved = True
    state.permit_upgrades["time"] = 30
    state.start_mission()
    assert state.mission.time_left == pytest.approx(12.0)


def test_mission_requires_positive_duration():
    with pytest.raises(ValueError):
        Mission("Nowhere", 0, 10, 1.0, "Koala")
