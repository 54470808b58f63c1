"""Two-decimal money helpers shared by the distribution engine.

Every amount is a ``Decimal`` quantized to cents.  Rounding is
ROUND_HALF_UP, which in the ``decimal`` module rounds half away from zero
(``2.345 -> 2.35``, ``-2.345 -> -2.35``) without any floating-point fudge.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
EPSILON = Decimal("0.01")
# Largest amount accepted from requests; cents must still fit the default context.
MAX_AMOUNT = Decimal("999999999999999.99")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convert *value* to ``Decimal`` going through ``str`` for floats."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round2(value: Number) -> Decimal:
    """Round to two decimals, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_or_zero(value: object) -> Decimal:
    """Best-effort conversion used for values coming back from the ledger."""
    if value is None:
        return ZERO
    try:
        result = to_decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError, ValueError):
        return ZERO
    if not result.is_finite():
        return ZERO
    try:
        return round2(result)
    except InvalidOperation:
        return ZERO


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Sum then round once at the end."""
    return round2(sum(values, ZERO))


def is_within_tolerance(difference: Decimal, tolerance: Decimal = EPSILON) -> bool:
    return abs(difference) <= tolerance
