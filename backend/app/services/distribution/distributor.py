"""Split a collected amount between a loan's balance and an overpaid bucket."""

from dataclasses import dataclass
from decimal import Decimal

from app.services.distribution.money import ZERO, Number, round2


@dataclass(frozen=True)
class Distribution:
    applied: Decimal
    overpaid: Decimal

    @property
    def total(self) -> Decimal:
        return round2(self.applied + self.overpaid)


def distribute(amount: Number, balance: Number) -> Distribution:
    """Cap the applied part at *balance*; the remainder is overpaid.

    Negative amounts count as zero and a negative balance is treated as
    fully paid, so both outputs are always non-negative.
    """
    gross = max(ZERO, round2(amount))
    cap = max(ZERO, round2(balance))
    if gross > cap:
        return Distribution(applied=cap, overpaid=round2(gross - cap))
    return Distribution(applied=gross, overpaid=ZERO)
