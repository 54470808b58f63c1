"""Payment-method allocation for a single manual loan payment.

The cashier records what was received (amount applied to the loan plus any
overpaid excess) and then splits it across payment methods.  The split has
to add up to the amount received within one cent.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from app.services.distribution.distributor import Distribution, distribute
from app.services.distribution.models import AllocationLine
from app.services.distribution.money import EPSILON, ZERO, Number, is_within_tolerance, round2

DUPLICATE_METHOD_MESSAGE = "A payment method cannot be used more than once"
NON_POSITIVE_LINE_MESSAGE = "Every payment method amount must be greater than zero"
MISSING_LINES_MESSAGE = "At least one payment method is required"
UNBALANCED_MESSAGE = (
    "The payment methods must add up to the total received (payment + overpaid)"
)


@dataclass(frozen=True)
class AllocationSummary:
    total_payment: Decimal
    total_allocated: Decimal
    difference: Decimal

    def is_balanced(self, tolerance: Decimal = EPSILON) -> bool:
        return is_within_tolerance(self.difference, tolerance)


def allocation_summary(
    amount: Number,
    overpaid_amount: Number,
    lines: Sequence[AllocationLine],
) -> AllocationSummary:
    """Compare the sum of *lines* against ``amount + overpaid_amount``.

    The running total is re-rounded after every line.
    """
    total_payment = round2(round2(amount) + round2(overpaid_amount))
    total_allocated = ZERO
    for line in lines:
        total_allocated = round2(total_allocated + round2(line.amount))
    return AllocationSummary(
        total_payment=total_payment,
        total_allocated=total_allocated,
        difference=round2(total_payment - total_allocated),
    )


def validate_allocation(
    amount: Number,
    overpaid_amount: Number,
    lines: Sequence[AllocationLine],
    tolerance: Decimal = EPSILON,
) -> list[str]:
    """Return user-facing validation messages; an empty list means valid."""
    errors: list[str] = []
    if not lines:
        return [MISSING_LINES_MESSAGE]

    seen: set[int] = set()
    for line in lines:
        if line.method_id in seen:
            errors.append(DUPLICATE_METHOD_MESSAGE)
            break
        seen.add(line.method_id)

    if any(round2(line.amount) <= 0 for line in lines):
        errors.append(NON_POSITIVE_LINE_MESSAGE)

    if not allocation_summary(amount, overpaid_amount, lines).is_balanced(tolerance):
        errors.append(UNBALANCED_MESSAGE)
    return errors


def clamp_to_balance(
    amount: Number,
    balance: Number,
    tolerance: Decimal = EPSILON,
) -> Distribution:
    """Single-loan entry: only excess beyond the tolerance moves to overpaid."""
    gross = max(ZERO, round2(amount))
    if gross - round2(balance) > tolerance:
        return distribute(gross, balance)
    return Distribution(applied=gross, overpaid=ZERO)
