"""
Decimal helpers for monetary arithmetic.

WHY: Floating point cannot represent most cent values exactly. Every
amount in this service is a Decimal, and rounding happens once, when a
figure is stored, using round-half-away-from-zero (ROUND_HALF_UP in the
decimal module rounds ties away from zero for negative values too).
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable

from chaching.core.exceptions import ValidationError

ZERO = Decimal("0")
ONE_HUNDRED = Decimal("100")
CENT = Decimal("0.01")
RATE_QUANTUM = Decimal("0.00000001")


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a number to Decimal without going through binary floats.

    Floats are converted through their repr so that 0.1 becomes
    Decimal("0.1") rather than 0.1000000000000000055511151231257827.

    Raises:
        ValidationError: If value is not numeric
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError(message="Boolean is not a monetary amount", value=value)
    try:
        if isinstance(value, float):
            return Decimal(repr(value))
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(message="Value is not a valid number", value=value)


def round_money(value: Any) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_rate(value: Any) -> Decimal:
    """Round an exchange rate to 8 decimal places."""
    return to_decimal(value).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, rate_percent: Decimal) -> Decimal:
    """Unrounded `amount * rate_percent / 100`."""
    return amount * rate_percent / ONE_HUNDRED


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Exact sum starting from Decimal zero."""
    return sum(values, ZERO)
