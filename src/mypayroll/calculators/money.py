"""Decimal rounding helpers shared by the calculators.

Conventions:
- Ringgit amounts persist with 2 decimals, half-up
- EPF contributions are whole ringgit
- PCB parts are truncated to the sen, the monthly total rounds up to 5 sen
- Hours are floored to half-hour steps
"""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")
RINGGIT = Decimal("1")
FIVE_SEN = Decimal("0.05")
HALF_HOUR = Decimal("0.5")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce a DB/JSON value to Decimal. ``None`` becomes ``default``."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_to_cents(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places (sen)."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def floor_to_cents(amount: Decimal) -> Decimal:
    """Truncate towards negative infinity at 2 decimal places."""
    return amount.quantize(CENT, rounding=ROUND_FLOOR)


def round_up_to_ringgit(amount: Decimal) -> Decimal:
    """Any fraction of a ringgit becomes the next ringgit."""
    return amount.quantize(RINGGIT, rounding=ROUND_CEILING)


def round_up_to_five_sen(amount: Decimal) -> Decimal:
    """Round up to the next multiple of RM0.05."""
    steps = (amount / FIVE_SEN).quantize(RINGGIT, rounding=ROUND_CEILING)
    return round_to_cents(steps * FIVE_SEN)


def floor_to_half_hour(hours: Decimal) -> Decimal:
    """Floor hours to 0.5 increments (1.75 -> 1.5)."""
    if hours <= ZERO:
        return ZERO
    halves = (hours / HALF_HOUR).quantize(RINGGIT, rounding=ROUND_DOWN)
    return (halves * HALF_HOUR).quantize(Decimal("0.1"))


def minutes_to_hours(minutes: int | Decimal) -> Decimal:
    return Decimal(minutes) / Decimal(60)


def percent(part: Decimal, whole: Decimal) -> Decimal:
    """``part / whole * 100`` rounded to 2 decimals; 0 when whole is 0."""
    if whole == ZERO:
        return ZERO
    return round_to_cents(part / whole * Decimal(100))
