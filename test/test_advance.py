"""
Unit tests for the advance and loop policy.
"""

import math

import pytest

from eventjam.advance import (
    AdvanceAction,
    decide_advance,
    is_end_of_item,
    next_index,
    previous_index,
)


@pytest.mark.parametrize(
    "current_time,duration,expected",
    [
        (179.2, 180.0, True),
        (178.9, 180.0, False),
        (179.0, 180.0, False),  # exactly one second left
        (180.0, 180.0, True),
        (0.5, 1.2, True),
    ],
)
def test_end_of_item_threshold(current_time, duration, expected):
    assert is_end_of_item(current_time, duration) is expected


@pytest.mark.parametrize(
    "current_time,duration",
    [
        (None, 180.0),
        (179.5, None),
        (179.5, 0),
        (0, 0.5),
        (float("nan"), 180.0),
        (179.5, math.inf),
        (-1.0, 0.5),
        (True, 1.5),
        ("179.5", 180.0),
    ],
)
def test_invalid_positions_never_end(current_time, duration):
    assert is_end_of_item(current_time, duration) is False


def test_custom_threshold():
    assert is_end_of_item(177.5, 180.0, threshold=3.0)
    assert not is_end_of_item(177.5, 180.0, threshold=2.0)


@pytest.mark.parametrize("length", [1, 2, 5])
def test_next_and_previous_are_circular_inverses(length):
    for index in range(length):
        nxt = next_index(index, length)
        prev = previous_index(index, length)
        assert 0 <= nxt < length
        assert 0 <= prev < length
        assert previous_index(nxt, length) == index
        assert next_index(prev, length) == index


def test_wraparound():
    assert next_index(2, 3) == 0
    assert previous_index(0, 3) == 2
    assert next_index(0, 1) == 0


def test_empty_list_has_no_neighbours():
    with pytest.raises(ValueError):
        next_index(0, 0)
    with pytest.raises(ValueError):
        previous_index(0, 0)


def test_decide_mid_list_advances():
    decision = decide_advance(0, 3, repeat_enabled=False)
    assert decision.action == AdvanceAction.ADVANCE
    assert decision.index == 1


def test_decide_last_without_repeat_pauses():
    decision = decide_advance(2, 3, repeat_enabled=False)
    assert decision.action == AdvanceAction.PAUSE
    assert decision.index == 2


def test_decide_last_with_repeat_wraps():
    decision = decide_advance(2, 3, repeat_enabled=True)
    assert decision.action == AdvanceAction.ADVANCE
    assert decision.index == 0


def test_single_item_with_repeat_restarts_it():
    decision = decide_advance(0, 1, repeat_enabled=True)
    assert decision.action == AdvanceAction.ADVANCE
    assert decision.index == 0
