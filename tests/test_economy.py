import math
import random

import pytest

from models.catalog import UNITS, UPGRADES, UnitType
from services.economy import Economy, clamp, round_half_up, scaled_cost


def test_economy_is_not_instantiable():
    with pytest.raises(TypeError):
        Economy()


def test_helpers():
    assert clamp(1.2, 0, 0.9) == 0.9
    assert clamp(-1, 0, 0.9) == 0
    assert scaled_cost(50, 1.15, 0) == 50
    assert scaled_cost(50, 1.15, 1) == 57
    assert scaled_cost(1, 2, 3) == 8
    assert round_half_up(19.5) == 20
    assert round_half_up(33.000000000000004) == 33
    with pytest.raises(ValueError):
        scaled_cost(50, 1.15, -1)


def test_unit_type_validation():
    with pytest.raises(ValueError):
        UnitType("Broken", -1, 1)
    with pytest.raises(ValueError):
        UnitType("Broken", 10, 1, cost_multiplier=0.5)


def test_buy_first_pickup_truck(state):
    state.coins = 50
    assert state.purchase_unit(0) is True
    assert state.coins == 0
    assert state.units_owned[0] == 1
    assert state.unit_costs[0] == 57


def test_purchase_refused_without_coins(state):
    state.coins = 49
    assert state.purchase_unit(0) is False
    assert state.coins == 49
    assert state.units_owned[0] == 0
    assert state.unit_costs[0] == 50


def test_purchase_rejects_unknown_index(state):
    state.coins = 10**9
    assert state.purchase_unit(len(state.units)) is False
    assert state.purchase_unit(-1) is False
    assert state.purchase_upgrade(99) is False
    assert state.coins == 10**9


@pytest.mark.parametrize("index", range(len(UNITS)))
def test_next_cost_follows_curve(state, index):
    unit = UNITS[index]
    state.coins = 10**12
    for n in range(1, 15):
        assert state.purchase_unit(index)
        assert state.unit_costs[index] == math.floor(unit.base_cost * unit.cost_multiplier ** n)


def test_upgrade_purchase_feeds_global_bonus(state):
    state.coins = 500
    assert state.purchase_upgrade(0)
    assert state.coins == 0
    assert state.upgrades_owned[0] == 1
    assert state.upgrade_costs[0] == math.floor(500 * 1.25)
    assert state.bonus_ledger().source("global").rate == pytest.approx(0.10)


def test_coins_never_negative_over_random_purchases(state):
    rng = random.Random(3)
    for _ in range(500):
        state.coins += rng.uniform(0, 3000)
        if rng.random() < 0.7:
            state.purchase_unit(rng.randrange(len(state.units)))
        else:
            state.purchase_upgrade(rng.randrange(len(UPGRADES)))
        assert state.coins >= 0


def test_rescue_rate(state):
    assert state.compute_rescue_rate() == 0
    state.units_owned[0] = 3
    state.units_owned[1] = 1
    assert state.compute_rescue_rate() == pytest.approx(7 / 60)
    state.upgrades_owned[0] = 1
    assert state.compute_rescue_rate() == pytest.approx(7 / 60 * 1.10)


def test_rescue_rate_is_pure(state):
    state.units_owned[2] = 4
    before = state.to_dict()
    first = state.compute_rescue_rate()
    assert state.compute_rescue_rate() == first
    assert state.to_dict() == before
