"""Reconciliation totals for a batch of candidate rows."""

from decimal import Decimal
from typing import Iterable

from app.services.distribution.models import CandidateRow, ReconciliationResult
from app.services.distribution.money import Number, round2, sum_money


def rows_to_process(rows: Iterable[CandidateRow]) -> list[CandidateRow]:
    """Rows with something assigned; the rest are not sent for processing."""
    return [row for row in rows if row.has_assignment]


def compute_totals(rows: Iterable[CandidateRow], target_amount: Number) -> ReconciliationResult:
    """Aggregate applied/overpaid amounts and compare with *target_amount*.

    Each bucket is summed in full and rounded once; the difference is
    ``target - assigned`` so a positive value means money still to place.
    """
    selected = rows_to_process(rows)
    total_applied = sum_money(row.applied_amount for row in selected)
    total_overpaid = sum_money(row.overpaid_amount for row in selected)
    total_assigned = round2(total_applied + total_overpaid)
    target = round2(target_amount) if target_amount is not None else Decimal("0.00")

    return ReconciliationResult(
        total_applied=total_applied,
        total_overpaid=total_overpaid,
        total_assigned=total_assigned,
        target_amount=target,
        difference=round2(target - total_assigned),
        credit_count=len(selected),
    )
