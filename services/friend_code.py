# services/friend_code.py
"""
Friend codes: an offline way to compare best seasons.

A code is the base64 text of a small JSON object {"id": ..., "best": ...}.
Importing one never touches the game state; it only produces a comparison
against the local best season total.
"""

from __future__ import annotations

import base64
import binascii
import json
import math
from dataclasses import dataclass


INVALID_CODE_MESSAGE = "Invalid friend code.\nPlease make sure you entered it correctly."
EMPTY_CODE_MESSAGE = "Please enter a friend code to compare."


class FriendCodeError(ValueError):
    """Raised for codes that cannot be decoded; str(err) is user-facing."""


@dataclass(frozen=True)
class FriendComparison:
    """Outcome of comparing a friend's best season with ours."""
    friend_best: int
    our_best: int

    @property
    def result(self) -> str:
        """'ahead', 'behind' or 'tie', from our point of view."""
        if self.friend_best > self.our_best:
            return "behind"
        if self.friend_best < self.our_best:
            return "ahead"
        return "tie"

    @property
    def message(self) -> str:
        if self.result == "behind":
            return (
                f"Your friend's best season saved {self.friend_best} animals. "
                f"That's more than your record of {self.our_best}! Time to rescue more!"
            )
        if self.result == "ahead":
            return (
                f"You're ahead! Your best season saved {self.our_best} animals, "
                f"while your friend saved {self.friend_best}."
            )
        return f"It's a tie! Both you and your friend have saved {self.our_best} animals in your best seasons."


def encode_friend_code(player_id: str, best_season_total: float) -> str:
    """Build the shareable code for a player's best season."""
    payload = json.dumps({"id": player_id, "best": best_season_total or 0}, separators=(",", ":"))
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_friend_code(code: str) -> int:
    """
    Return the floored best season total carried by `code`.

    Raises:
        FriendCodeError: if the code is empty, not base64, not JSON, or has
            no non-negative numeric "best".
    """
    code = (code or "").strip()
    if not code:
        raise FriendCodeError(EMPTY_CODE_MESSAGE)
    try:
        data = json.loads(base64.b64decode(code, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise FriendCodeError(INVALID_CODE_MESSAGE) from e
    best = data.get("best") if isinstance(data, dict) else None
    if isinstance(best, bool) or not isinstance(best, (int, float)) or not math.isfinite(best) or best < 0:
        raise FriendCodeError(INVALID_CODE_MESSAGE)
    return int(math.floor(best))


def compare_friend_code(code: str, our_best: float) -> FriendComparison:
    """Decode `code` and compare it with our best season total."""
    return FriendComparison(decode_friend_code(code), int(math.floor(our_best or 0)))
