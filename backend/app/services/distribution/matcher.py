"""Candidate loading and batch matching.

Candidates are fetched from the ledger and enriched with one balance
lookup per loan.  The lookups run concurrently and are joined
all-or-nothing: if any of them fails the whole consult fails and no
partial candidate list is returned.  There is no retry and no partial
tolerance; callers must surface the error and keep their previous state.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Mapping, Optional, Sequence

from app.services.distribution.distributor import distribute
from app.services.distribution.models import (
    BalanceSummary,
    CandidateRow,
    LoanRecord,
    normalize_key,
)
from app.services.distribution.money import ZERO, round2
from app.services.ledger_api.adapter import LedgerClient

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")


class DistributionError(Exception):
    """Base exception for distribution engine errors."""


class CandidateLookupError(DistributionError):
    """A loan or balance lookup failed; the consult is void."""


class NoCandidatesError(DistributionError):
    """The criterion matched no active loans."""


@dataclass(frozen=True)
class PayrollCriterion:
    """Which loans a payroll batch covers: an agreement, an employer, or both."""

    agreement_id: Optional[int] = None
    company_document_number: Optional[str] = None

    @property
    def normalized_document(self) -> str:
        return normalize_document_number(self.company_document_number or "")

    @property
    def is_empty(self) -> bool:
        return not self.agreement_id and not self.normalized_document


@dataclass(frozen=True)
class BatchMatchResult:
    rows: tuple[CandidateRow, ...]
    matched_count: int = 0
    unmatched_keys: list[str] = field(default_factory=list)


def normalize_document_number(value: str) -> str:
    return _NON_ALNUM.sub("", value.strip()).upper()


async def fetch_balances(
    client: LedgerClient, loans: Sequence[LoanRecord]
) -> list[BalanceSummary]:
    """Look up every loan's balance concurrently; fail if any lookup fails."""
    try:
        return list(
            await asyncio.gather(*(client.get_balance_summary(loan.id) for loan in loans))
        )
    except Exception as exc:
        logger.error("Balance lookup failed for %d candidate loans: %s", len(loans), exc)
        raise CandidateLookupError(f"Could not load loan balances: {exc}") from exc


async def load_payroll_candidates(
    client: LedgerClient,
    criterion: PayrollCriterion,
    *,
    agreement_limit: int = 500,
    open_limit: int = 2000,
) -> tuple[CandidateRow, ...]:
    """Active loans for *criterion*, each with its current balance."""
    limit = agreement_limit if criterion.agreement_id else open_limit
    try:
        loans = await client.list_loans(agreement_id=criterion.agreement_id, limit=limit)
    except Exception as exc:
        logger.error("Loan listing failed for %s: %s", criterion, exc)
        raise CandidateLookupError(f"Could not list loans: {exc}") from exc

    document = criterion.normalized_document
    if document:
        loans = [
            loan for loan in loans
            if normalize_document_number(loan.employer_document_number or "") == document
        ]

    if not loans:
        raise NoCandidatesError("No active loans were found for the selected criterion")

    balances = await fetch_balances(client, loans)
    return tuple(
        CandidateRow(
            loan_id=loan.id,
            credit_number=loan.credit_number,
            borrower_name=loan.borrower_name,
            balance=max(ZERO, round2(summary.current_balance)),
        )
        for loan, summary in zip(loans, balances)
    )


def reconcile_batch(
    candidates: Sequence[CandidateRow],
    batch: Mapping[str, Decimal],
) -> BatchMatchResult:
    """Apply batch amounts to the matching candidates.

    Matched rows get both buckets replaced by the distribution of the batch
    amount against their balance.  Rows absent from the batch are returned
    untouched, and batch keys without a candidate are reported, not raised.
    """
    batch_by_key = {normalize_key(key): amount for key, amount in batch.items()}
    applied: set[str] = set()
    rows = []
    for row in candidates:
        amount = batch_by_key.get(row.key)
        if amount is None:
            rows.append(row)
            continue
        applied.add(row.key)
        split = distribute(amount, row.balance)
        rows.append(replace(row, applied_amount=split.applied, overpaid_amount=split.overpaid))

    unmatched = [key for key in batch_by_key if key not in applied]
    if unmatched:
        logger.warning(
            "%d batch credit number(s) not found among candidates: %s",
            len(unmatched), ", ".join(unmatched[:20]),
        )
    return BatchMatchResult(rows=tuple(rows), matched_count=len(applied), unmatched_keys=unmatched)
