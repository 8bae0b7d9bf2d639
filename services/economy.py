# services/economy.py
"""
Economy configuration constants for the rescue game.

Provides the fixed rewards, caps and timing values that define the game's
economic balance, plus the small numeric helpers shared by every cost curve.
This module is pure Python and intended to be imported wherever economic
values are needed.
"""

import math
from typing import Final


class Economy:
    """Namespace container for game economy constants. Not meant to be instantiated."""

    # Clock
    TICK_SECONDS: Final[float] = 1.0          # Period of the simulation tick
    OFFLINE_CAP_S: Final[int] = 4 * 3600      # Max offline catch-up window

    # Bonuses
    MAX_TIME_REDUCTION: Final[float] = 0.9    # Missions never drop below 10% of base

    # Prestige
    ANIMALS_PER_PERMIT: Final[int] = 1000     # Lifetime animals per permit

    # Rewards (in coins)
    MANUAL_RESCUE: Final[int] = 1             # Per tap on the rescue button
    DAILY_BONUS: Final[int] = 50              # Once per calendar day
    DAILY_BONUS_TZ: Final[str] = "America/Chicago"

    # Biome missions
    BIOME_MISSION_DURATION_S: Final[int] = 120
    BIOME_MISSION_RISK: Final[int] = 20
    BIOME_MISSION_DIFFICULTY: Final[float] = 1.0

    # Player id
    PLAYER_ID_LENGTH: Final[int] = 10

    def __new__(cls, *args, **kwargs):
        raise TypeError(f"{cls.__name__} is not instantiable")


def clamp(n: float, lo: float, hi: float) -> float:
    """
    Clamp a value between inclusive lower and upper bounds.

    Examples:
        >>> clamp(1.2, 0, 0.9)
        0.9
        >>> clamp(-5, 0, 100)
        0
    """
    return max(lo, min(n, hi))


def scaled_cost(base_cost: int, multiplier: float, count: int) -> int:
    """
    Cost of the next purchase after `count` purchases.

    Every shop in the game uses the same exponential curve:
    floor(base_cost * multiplier ** count).

    Examples:
        >>> scaled_cost(50, 1.15, 1)
        57
        >>> scaled_cost(1, 2, 3)
        8
    """
    if count < 0:
        raise ValueError("count must be >= 0.")
    return int(math.floor(base_cost * multiplier ** count))


def round_half_up(x: float) -> int:
    """Round to the nearest integer with halves going up (19.5 -> 20)."""
    return int(math.floor(x + 0.5))
