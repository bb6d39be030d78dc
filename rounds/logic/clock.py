"""Reconcile a round's anchor instant with the local wall clock."""

import math
from datetime import datetime


def compute_remaining(anchor: datetime, duration_seconds: int, now: datetime) -> int:
    """
    Return whole seconds left in the round, wrapped into [0, duration_seconds).

    The raw difference is floored and then reduced modulo the duration, so an
    announcement that arrives early (raw > duration) or late (raw < 0) still
    yields a countdown inside the round window instead of a clamped or
    oversized value.
    """
    if duration_seconds <= 0:
        raise ValueError(f"duration must be positive, got {duration_seconds}")
    raw = math.floor((anchor - now).total_seconds())
    # Python's % already returns a non-negative result for a positive modulus.
    return raw % duration_seconds
