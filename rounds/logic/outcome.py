"""Colour and size badges derived from an outcome digit."""

from enum import StrEnum

MIN_OUTCOME = 0
MAX_OUTCOME = 9

_VIOLET_OUTCOMES = frozenset({0, 5})
_BIG_THRESHOLD = 5


class Color(StrEnum):
    VIOLET = "violet"
    GREEN = "green"
    RED = "red"


class Size(StrEnum):
    SMALL = "Small"
    BIG = "Big"


def derive_color_and_size(outcome_number: int) -> tuple[Color, Size]:
    """
    Map an outcome digit to its colour and size.

    0 and 5 are violet, other odd digits green, other even digits red;
    digits below 5 are Small, the rest Big.
    """
    if not MIN_OUTCOME <= outcome_number <= MAX_OUTCOME:
        raise ValueError(f"outcome must be {MIN_OUTCOME}-{MAX_OUTCOME}, got {outcome_number}")

    if outcome_number in _VIOLET_OUTCOMES:
        color = Color.VIOLET
    elif outcome_number % 2 == 1:
        color = Color.GREEN
    else:
        color = Color.RED

    size = Size.SMALL if outcome_number < _BIG_THRESHOLD else Size.BIG
    return color, size
