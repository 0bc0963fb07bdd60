"""Randomized wait sampling."""
from __future__ import annotations

import random
from typing import Callable

MICROS_PER_SECOND = 1_000_000

Sampler = Callable[[float, float], float]


def _to_micros(seconds: float) -> int:
    return int(round(seconds * MICROS_PER_SECOND))


def validate_range(min_seconds: float, max_seconds: float) -> None:
    """Reject negative bounds and ranges with ``min > max``."""
    if min_seconds < 0 or max_seconds < 0:
        raise ValueError(f"Durations must be non-negative, got ({min_seconds}, {max_seconds}).")
    if min_seconds > max_seconds:
        raise ValueError(f"Expected min <= max, got ({min_seconds}, {max_seconds}).")


def random_duration(min_seconds: float, max_seconds: float) -> float:
    """Sample a duration uniformly from ``[min_seconds, max_seconds]``.

    The range is sampled at microsecond resolution with both ends included,
    using the global ``random`` generator.

    Args:
        min_seconds: Lower bound in seconds.
        max_seconds: Upper bound in seconds.

    Returns:
        Sampled duration in seconds.
    """
    validate_range(min_seconds, max_seconds)
    if min_seconds == max_seconds:
        return float(min_seconds)
    low = _to_micros(min_seconds)
    high = _to_micros(max_seconds)
    return random.randint(low, high) / MICROS_PER_SECOND
