"""Multi-loan refinancing aggregation.

Starting from one loan (the origin), collect every active loan of the same
borrower with its balances, let the user pick which ones to fold into the
new loan, and aggregate the principal to refinance.  The projected
schedule comes from the ledger's simulation endpoint.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional, Sequence

from app.config import settings
from app.services.distribution.matcher import (
    CandidateLookupError,
    NoCandidatesError,
    fetch_balances,
)
from app.services.distribution.models import LoanRecord
from app.services.distribution.money import ZERO, round2, sum_money
from app.services.ledger_api.adapter import LedgerClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefinancingCandidate:
    loan_id: int
    credit_number: str
    status: str
    principal_amount: Decimal
    current_balance: Decimal
    overdue_balance: Decimal
    current_due_balance: Decimal
    open_installments: int
    next_due_date: Optional[date]
    is_origin: bool = False


@dataclass(frozen=True)
class RefinancingConsult:
    origin: LoanRecord
    candidates: tuple[RefinancingCandidate, ...]

    @property
    def default_selection(self) -> list[int]:
        return [self.origin.id]


@dataclass(frozen=True)
class SelectionTotals:
    total_current_balance: Decimal
    total_overdue_balance: Decimal
    total_current_due_balance: Decimal
    total_open_installments: int
    estimated_principal: Decimal
    loan_count: int


async def consult_refinancing(client: LedgerClient, credit_number: str) -> RefinancingConsult:
    """Find the origin loan and all active loans of its borrower."""
    credit_number = credit_number.strip()
    if not credit_number:
        raise NoCandidatesError("A credit number is required")

    try:
        origins = await client.list_loans(credit_number=credit_number, statuses=(), limit=1)
    except Exception as exc:
        raise CandidateLookupError(f"Could not look up credit {credit_number}: {exc}") from exc
    if not origins:
        raise NoCandidatesError(f"Credit {credit_number} was not found")
    origin = origins[0]

    try:
        loans = await client.list_loans(
            third_party_id=origin.third_party_id,
            limit=settings.refinancing_query_limit,
        )
    except Exception as exc:
        raise CandidateLookupError(f"Could not list the borrower's loans: {exc}") from exc

    balances = await fetch_balances(client, loans)
    candidates = tuple(
        RefinancingCandidate(
            loan_id=loan.id,
            credit_number=loan.credit_number,
            status=loan.status,
            principal_amount=max(ZERO, round2(loan.principal_amount)),
            current_balance=max(ZERO, round2(summary.current_balance)),
            overdue_balance=max(ZERO, round2(summary.overdue_balance)),
            current_due_balance=max(ZERO, round2(summary.current_due_balance)),
            open_installments=summary.open_installments,
            next_due_date=summary.next_due_date,
            is_origin=loan.id == origin.id,
        )
        for loan, summary in zip(loans, balances)
    )
    logger.info(
        "Refinancing consult for %s: %d borrower loans", credit_number, len(candidates),
    )
    return RefinancingConsult(origin=origin, candidates=candidates)


def toggle_selection(
    selected_ids: Sequence[int],
    candidate: RefinancingCandidate,
    checked: bool,
) -> list[int]:
    """Add or remove *candidate*; the origin loan always stays selected."""
    if candidate.is_origin:
        return list(selected_ids)
    if checked:
        return list(dict.fromkeys([*selected_ids, candidate.loan_id]))
    return [loan_id for loan_id in selected_ids if loan_id != candidate.loan_id]


def selection_totals(
    candidates: Iterable[RefinancingCandidate],
    selected_ids: Iterable[int],
    include_overdue_balance: bool,
) -> SelectionTotals:
    chosen_ids = set(selected_ids)
    chosen = [c for c in candidates if c.loan_id in chosen_ids]
    total_current = sum_money(c.current_balance for c in chosen)
    total_current_due = sum_money(c.current_due_balance for c in chosen)
    return SelectionTotals(
        total_current_balance=total_current,
        total_overdue_balance=sum_money(c.overdue_balance for c in chosen),
        total_current_due_balance=total_current_due,
        total_open_installments=sum(c.open_installments for c in chosen),
        estimated_principal=total_current if include_overdue_balance else total_current_due,
        loan_count=len(chosen),
    )


def build_simulation_request(
    *,
    origin_loan_id: int,
    selected_loan_ids: Sequence[int],
    include_overdue_balance: bool,
    credit_product_id: int,
    category_code: str,
    installments: int,
    payment_frequency_id: int,
    first_payment_date: date,
    insurance_company_id: Optional[int] = None,
    principal_to_refinance: Decimal = ZERO,
) -> Dict[str, Any]:
    selected = list(dict.fromkeys([origin_loan_id, *selected_loan_ids]))
    return {
        "originLoanId": origin_loan_id,
        "selectedLoanIds": selected,
        "includeOverdueBalance": include_overdue_balance,
        "creditProductId": credit_product_id,
        "categoryCode": category_code,
        "installments": installments,
        "paymentFrequencyId": payment_frequency_id,
        "firstPaymentDate": first_payment_date.isoformat(),
        "insuranceCompanyId": insurance_company_id,
        "principalToRefinance": float(principal_to_refinance),
    }
