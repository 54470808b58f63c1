"""Free-text amount normalisation.

Payroll exports and cashier input mix locale conventions, so the same
digits can arrive as ``1.234,56``, ``1,234.56`` or ``1234,56``.  The rule
applied here is fixed and must not drift, because changing it silently
changes how much money lands on a loan:

1. Keep only digits, ``,``, ``.`` and ``-``.
2. If both ``,`` and ``.`` appear, whichever occurs *last* is the decimal
   point; every occurrence of the other one is a grouping mark and is
   dropped.
3. If only ``,`` appears it is the decimal point.
4. If only ``.`` appears the string is left as-is.
5. The result must be a finite number greater than zero and no larger than
   ``MAX_AMOUNT``; it is rounded to two decimals, half away from zero.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from app.services.distribution.money import MAX_AMOUNT, ZERO, round2, to_decimal

logger = logging.getLogger(__name__)

_DISALLOWED = re.compile(r"[^\d,.-]")


class AmountParseError(ValueError):
    """Base class for amount normalisation failures."""

    code = "invalid_amount"


class EmptyAmount(AmountParseError):
    code = "empty_amount"


class NotFinite(AmountParseError):
    code = "not_finite"


class NonPositive(AmountParseError):
    code = "non_positive"


def normalize_separators(raw: str) -> str:
    """Strip noise and resolve the decimal separator (steps 1-4 above)."""
    cleaned = _DISALLOWED.sub("", raw.strip())
    last_comma = cleaned.rfind(",")
    last_dot = cleaned.rfind(".")

    if last_comma != -1 and last_dot != -1:
        if last_comma > last_dot:
            return cleaned.replace(".", "").replace(",", ".", 1)
        return cleaned.replace(",", "")
    if last_comma != -1:
        return cleaned.replace(",", ".", 1)
    return cleaned


def parse_amount(raw: str) -> Decimal:
    """Parse *raw* into a positive two-decimal amount.

    Raises EmptyAmount, NotFinite or NonPositive.
    """
    normalized = normalize_separators(raw)
    if not normalized:
        raise EmptyAmount(f"No numeric content in {raw!r}")

    try:
        value = Decimal(normalized)
    except InvalidOperation:
        raise NotFinite(f"{raw!r} is not a number") from None
    if not value.is_finite():
        raise NotFinite(f"{raw!r} is not a finite number")
    if value <= 0:
        raise NonPositive(f"{raw!r} must be greater than zero")
    if value > MAX_AMOUNT:
        raise NotFinite(f"{raw!r} exceeds the largest supported amount")

    return round2(value)


def try_parse_amount(raw: str) -> Optional[Decimal]:
    """Like :func:`parse_amount` but returns ``None`` on failure."""
    try:
        return parse_amount(raw)
    except AmountParseError as exc:
        logger.debug("Amount rejected (%s): %s", exc.code, exc)
        return None


def parse_amount_lenient(value: object) -> Decimal:
    """Normalise an edited form value; blank, negative or junk means zero.

    Numbers are taken as-is; strings go through the separator rule.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, (int, float, Decimal)):
        try:
            number = to_decimal(value)
        except (InvalidOperation, ValueError):
            return ZERO
        if not number.is_finite() or number < 0 or number > MAX_AMOUNT:
            return ZERO
        return round2(number)
    parsed = try_parse_amount(str(value))
    return parsed if parsed is not None else ZERO
