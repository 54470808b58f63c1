"""Dataclasses for the distribution engine: rows, allocation lines, totals."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from app.services.distribution.money import EPSILON, ZERO, is_within_tolerance


def normalize_key(identifier: object) -> str:
    """Join key for credit numbers: trimmed and upper-cased."""
    return str(identifier).strip().upper()


@dataclass(frozen=True)
class CandidateRow:
    """A loan under consideration in a payroll batch."""

    loan_id: int
    credit_number: str
    balance: Decimal
    borrower_name: str = ""
    applied_amount: Decimal = ZERO
    overpaid_amount: Decimal = ZERO

    @property
    def key(self) -> str:
        return normalize_key(self.credit_number)

    @property
    def has_assignment(self) -> bool:
        return self.applied_amount > 0 or self.overpaid_amount > 0


@dataclass(frozen=True)
class AllocationLine:
    """One payment method's share of the amount received."""

    method_id: int
    amount: Decimal
    reference: Optional[str] = None


@dataclass(frozen=True)
class ReconciliationResult:
    total_applied: Decimal
    total_overpaid: Decimal
    total_assigned: Decimal
    target_amount: Decimal
    difference: Decimal
    credit_count: int = 0

    def is_balanced(self, tolerance: Decimal = EPSILON) -> bool:
        return is_within_tolerance(self.difference, tolerance)

    def is_submittable(self, tolerance: Decimal = EPSILON) -> bool:
        return self.credit_count > 0 and self.is_balanced(tolerance)


@dataclass(frozen=True)
class BalanceSummary:
    """Per-loan balance as reported by the ledger."""

    current_balance: Decimal = ZERO
    overdue_balance: Decimal = ZERO
    current_due_balance: Decimal = ZERO
    open_installments: int = 0
    next_due_date: Optional[date] = None


@dataclass(frozen=True)
class LoanRecord:
    """Loan header as listed by the ledger."""

    id: int
    credit_number: str
    status: str = ""
    borrower_name: str = ""
    borrower_document_number: Optional[str] = None
    employer_document_number: Optional[str] = None
    third_party_id: Optional[int] = None
    agreement_id: Optional[int] = None
    principal_amount: Decimal = ZERO
