"""Refinancing endpoints: borrower loan consult, selection totals, simulation."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_ledger
from app.schemas import (
    RefinancingCandidateSchema,
    RefinancingConsultRequest,
    RefinancingConsultResponse,
    RefinancingOriginResponse,
    RefinancingSimulationRequest,
    RefinancingTotalsRequest,
    RefinancingTotalsResponse,
)
from app.services.distribution.matcher import CandidateLookupError, NoCandidatesError
from app.services.distribution.money import to_decimal
from app.services.distribution.refinancing import (
    RefinancingCandidate,
    build_simulation_request,
    consult_refinancing,
    selection_totals,
)
from app.services.error_logger import log_error
from app.services.ledger_api.adapter import LedgerClient, LedgerClientError

logger = logging.getLogger(__name__)

router = APIRouter()


def _candidate_schema(c: RefinancingCandidate) -> RefinancingCandidateSchema:
    return RefinancingCandidateSchema(
        loan_id=c.loan_id,
        credit_number=c.credit_number,
        status=c.status,
        principal_amount=float(c.principal_amount),
        current_balance=float(c.current_balance),
        overdue_balance=float(c.overdue_balance),
        current_due_balance=float(c.current_due_balance),
        open_installments=c.open_installments,
        next_due_date=c.next_due_date,
        is_origin=c.is_origin,
    )


def _candidate_from_schema(s: RefinancingCandidateSchema) -> RefinancingCandidate:
    return RefinancingCandidate(
        loan_id=s.loan_id,
        credit_number=s.credit_number,
        status=s.status,
        principal_amount=to_decimal(s.principal_amount),
        current_balance=to_decimal(s.current_balance),
        overdue_balance=to_decimal(s.overdue_balance),
        current_due_balance=to_decimal(s.current_due_balance),
        open_installments=s.open_installments,
        next_due_date=s.next_due_date,
        is_origin=s.is_origin,
    )


@router.post("/consult", response_model=RefinancingConsultResponse)
async def consult(
    data: RefinancingConsultRequest,
    ledger: LedgerClient = Depends(get_ledger),
):
    """Find a credit's borrower and list all of their active loans with balances."""
    try:
        result = await consult_refinancing(ledger, data.credit_number)
    except NoCandidatesError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CandidateLookupError as e:
        log_error(e, module="api.refinancing", function_name="consult")
        raise HTTPException(status_code=502, detail=str(e))

    origin = result.origin
    return RefinancingConsultResponse(
        origin=RefinancingOriginResponse(
            id=origin.id,
            credit_number=origin.credit_number,
            status=origin.status,
            borrower_name=origin.borrower_name,
            borrower_document_number=origin.borrower_document_number,
        ),
        candidates=[_candidate_schema(c) for c in result.candidates],
        selected_loan_ids=result.default_selection,
    )


@router.post("/totals", response_model=RefinancingTotalsResponse)
async def totals(data: RefinancingTotalsRequest):
    """Aggregate the balances of the selected loans."""
    candidates = [_candidate_from_schema(c) for c in data.candidates]
    # The origin loan is always part of the selection.
    selected = list(data.selected_loan_ids) + [c.loan_id for c in candidates if c.is_origin]
    result = selection_totals(candidates, selected, data.include_overdue_balance)
    return RefinancingTotalsResponse(
        total_current_balance=float(result.total_current_balance),
        total_overdue_balance=float(result.total_overdue_balance),
        total_current_due_balance=float(result.total_current_due_balance),
        total_open_installments=result.total_open_installments,
        estimated_principal=float(result.estimated_principal),
        loan_count=result.loan_count,
    )


@router.post("/simulate")
async def simulate(
    data: RefinancingSimulationRequest,
    ledger: LedgerClient = Depends(get_ledger),
):
    """Forward the simulation parameters to the ledger and return its projection."""
    payload = build_simulation_request(
        origin_loan_id=data.origin_loan_id,
        selected_loan_ids=data.selected_loan_ids,
        include_overdue_balance=data.include_overdue_balance,
        credit_product_id=data.credit_product_id,
        category_code=data.category_code,
        installments=data.installments,
        payment_frequency_id=data.payment_frequency_id,
        first_payment_date=data.first_payment_date,
        insurance_company_id=data.insurance_company_id,
        principal_to_refinance=data.estimated_principal,
    )
    try:
        return await ledger.simulate_refinancing(payload)
    except LedgerClientError as e:
        log_error(e, module="api.refinancing", function_name="simulate")
        raise HTTPException(status_code=502, detail=str(e))
