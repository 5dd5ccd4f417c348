# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rounding helpers for reported aggregates.

Rates and averages are rounded half up so that displayed figures match
the way academy staff compute them by hand.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable


def round_half_up(value: float, digits: int = 0) -> float:
    """Round to `digits` decimals, halves away from zero."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def percent(part: int | float, whole: int | float) -> float:
    """part / whole as a percentage with one decimal; 0.0 when whole is 0."""
    if not whole:
        return 0.0
    return round_half_up(part / whole * 100, 1)


def mean(values: Iterable[float]) -> float | None:
    """Arithmetic mean, or None for an empty input."""
    items = list(values)
    if not items:
        return None
    return sum(items) / len(items)


def mean_rounded(values: Iterable[float], digits: int = 0) -> float | None:
    """Mean rounded half up; whole-day averages use digits=0."""
    result = mean(values)
    if result is None:
        return None
    return round_half_up(result, digits)
