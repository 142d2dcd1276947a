"""Currency helpers for the store.

All prices are Vietnamese dong (VND). The dong has no minor unit in
circulation, so every amount the store computes is rounded to a whole dong.
Loyalty points convert to dong at a fixed rate.

Conversion chain
----------------
Points × 100 → VND
VND ÷ 100 → Points (floor)
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Union

# ─── constants ───────────────────────────────────────────────────────────────

VND_PER_POINT: int = 100
ZERO = Decimal("0")

Number = Union[int, float, str, Decimal]


# ─── conversion helpers ───────────────────────────────────────────────────────


def to_vnd(amount: Number) -> Decimal:
    """Round any amount to a whole dong (half-up)."""
    return Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def percent_of(amount: Number, rate: Number) -> Decimal:
    """``amount × rate`` rounded half-up to a whole dong."""
    return to_vnd(Decimal(str(amount)) * Decimal(str(rate)))


def points_to_vnd(points: int) -> Decimal:
    """1 point = 100 VND."""
    return Decimal(points * VND_PER_POINT)


def vnd_to_points(amount: Number) -> int:
    """How many whole points an amount is worth (floor)."""
    value = Decimal(str(amount)) / VND_PER_POINT
    return int(value.to_integral_value(rounding=ROUND_FLOOR))
