"""
Advance and loop policy for the playlist engine.

The player does not push a reliable end-of-video signal in time to avoid
trailing silence, so the engine polls the position and switches when less
than a threshold remains.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

END_OF_ITEM_THRESHOLD_SECONDS = 1.0


class AdvanceAction(Enum):
    ADVANCE = "advance"
    PAUSE = "pause"


@dataclass(frozen=True)
class AdvanceDecision:
    action: AdvanceAction
    index: int


def _valid_positive(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value) and not math.isinf(value) and value > 0


def is_end_of_item(
    current_time: Any, duration: Any, threshold: float = END_OF_ITEM_THRESHOLD_SECONDS
) -> bool:
    """
    True when the current item is within threshold seconds of its end.

    Both values must be valid positive numbers; anything else (None, NaN,
    zero before the player knows the duration) is never an end.
    """
    if not _valid_positive(current_time) or not _valid_positive(duration):
        return False
    return duration - current_time < threshold


def next_index(index: int, length: int) -> int:
    """Index after `index`, wrapping from the last item to the first."""
    if length <= 0:
        raise ValueError("next_index on an empty list")
    return 0 if index >= length - 1 else index + 1


def previous_index(index: int, length: int) -> int:
    """Index before `index`, wrapping from the first item to the last."""
    if length <= 0:
        raise ValueError("previous_index on an empty list")
    return length - 1 if index <= 0 else index - 1


def decide_advance(index: int, length: int, repeat_enabled: bool) -> AdvanceDecision:
    """
    What to do when the item at `index` ends.

    Mid-list, or anywhere with repeat on, move to the next index (wrapping).
    At the last index without repeat, pause and stay.
    """
    if index < length - 1 or repeat_enabled:
        return AdvanceDecision(AdvanceAction.ADVANCE, next_index(index, length))
    return AdvanceDecision(AdvanceAction.PAUSE, index)
