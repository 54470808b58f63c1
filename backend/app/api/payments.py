"""Single-loan payment helpers: amount normalisation, balance split, method allocation."""

import logging

from fastapi import APIRouter, HTTPException

from app.config import settings
from app.schemas import (
    AllocationCheckRequest,
    AllocationCheckResponse,
    AmountParseRequest,
    AmountParseResponse,
    DistributeRequest,
    DistributionResponse,
)
from app.services.distribution.allocation import (
    allocation_summary,
    clamp_to_balance,
    validate_allocation,
)
from app.services.distribution.amount_parser import (
    AmountParseError,
    normalize_separators,
    parse_amount,
    parse_amount_lenient,
)
from app.services.distribution.distributor import Distribution, distribute
from app.services.distribution.models import AllocationLine
from app.services.distribution.money import ZERO

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/amounts/parse", response_model=AmountParseResponse)
async def parse_raw_amount(data: AmountParseRequest):
    """Normalise free-text money input to a two-decimal amount."""
    try:
        amount = parse_amount(data.raw)
    except AmountParseError as e:
        raise HTTPException(status_code=422, detail={"code": e.code, "message": str(e)})
    return AmountParseResponse(
        raw=data.raw,
        normalized=normalize_separators(data.raw),
        amount=float(amount),
    )


@router.post("/distribute", response_model=DistributionResponse)
async def distribute_amount(data: DistributeRequest):
    """Split an amount into the part applied to the balance and the overpaid excess."""
    split = distribute(data.amount, data.balance)
    return DistributionResponse(
        applied_amount=float(split.applied),
        overpaid_amount=float(split.overpaid),
    )


@router.post("/allocations/check", response_model=AllocationCheckResponse)
async def check_allocations(data: AllocationCheckRequest):
    """Validate a manual payment's split across payment methods.

    When the loan balance is given, an amount above it is clamped and the
    excess is added to the overpaid amount before the split is checked.
    """
    entered = parse_amount_lenient(data.amount)
    if data.balance is not None:
        split = clamp_to_balance(entered, data.balance, settings.amount_tolerance)
        if split.overpaid > ZERO:
            logger.info("Payment of %s exceeds balance %s, clamped", entered, data.balance)
    else:
        split = Distribution(applied=entered, overpaid=ZERO)

    overpaid = split.overpaid if split.overpaid > ZERO else parse_amount_lenient(data.overpaid_amount)
    lines = [
        AllocationLine(
            method_id=line.collection_method_id,
            amount=parse_amount_lenient(line.amount),
            reference=line.tender_reference,
        )
        for line in data.allocations
    ]

    summary = allocation_summary(split.applied, overpaid, lines)
    errors = validate_allocation(split.applied, overpaid, lines, settings.amount_tolerance)
    if split.applied <= ZERO:
        errors.insert(0, "The payment amount must be greater than zero")

    return AllocationCheckResponse(
        applied_amount=float(split.applied),
        overpaid_amount=float(overpaid),
        total_payment=float(summary.total_payment),
        total_allocated=float(summary.total_allocated),
        difference=float(summary.difference),
        is_balanced=summary.is_balanced(settings.amount_tolerance),
        errors=errors,
    )
