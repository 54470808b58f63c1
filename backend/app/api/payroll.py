"""Payroll batch endpoints: consult loans, distribute amounts, import a file, submit."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile

from app.config import settings
from app.dependencies import get_ledger, get_session_store
from app.rate_limit import limiter
from app.schemas import (
    CandidateRowResponse,
    ImportedFileResponse,
    PayrollHeaderResponse,
    PayrollHeaderUpdate,
    PayrollRowUpdate,
    PayrollSessionResponse,
    PayrollSubmissionResponse,
    ReconciliationTotalsResponse,
)
from app.services.distribution.batch_file import decode_batch_bytes
from app.services.distribution.matcher import CandidateLookupError, NoCandidatesError
from app.services.distribution.payroll_session import (
    ImportedFileInfo,
    MissingCriterionError,
    PayrollBatchSession,
    PayrollSessionStore,
    SessionError,
    SessionNotFoundError,
    UnknownRowError,
)
from app.services.error_logger import log_error
from app.services.ledger_api.adapter import LedgerClient, LedgerClientError

logger = logging.getLogger(__name__)

router = APIRouter()


def _file_response(info: Optional[ImportedFileInfo]) -> Optional[ImportedFileResponse]:
    if info is None:
        return None
    return ImportedFileResponse(
        file_name=info.file_name,
        matched_count=info.matched_count,
        unmatched_keys=info.unmatched_keys,
        delimiter=info.parse.delimiter,
        header_skipped=info.parse.header_skipped,
        data_lines=info.parse.data_lines,
        skipped_lines=info.parse.skipped_lines,
        duplicate_keys=info.parse.duplicate_keys,
    )


def _session_response(session: PayrollBatchSession) -> PayrollSessionResponse:
    header = session.header
    totals = session.totals
    return PayrollSessionResponse(
        id=session.id,
        state=session.state.value,
        header=PayrollHeaderResponse(
            agreement_id=header.agreement_id,
            company_document_number=header.company_document_number,
            receipt_type_id=header.receipt_type_id,
            gl_account_id=header.gl_account_id,
            collection_method_id=header.collection_method_id,
            collection_date=header.collection_date,
            reference_number=header.reference_number,
            collection_amount=float(header.collection_amount),
        ),
        rows=[
            CandidateRowResponse(
                loan_id=row.loan_id,
                credit_number=row.credit_number,
                borrower_name=row.borrower_name,
                balance=float(row.balance),
                applied_amount=float(row.applied_amount),
                overpaid_amount=float(row.overpaid_amount),
            )
            for row in session.rows
        ],
        totals=ReconciliationTotalsResponse(
            total_applied=float(totals.total_applied),
            total_overpaid=float(totals.total_overpaid),
            total_assigned=float(totals.total_assigned),
            target_amount=float(totals.target_amount),
            difference=float(totals.difference),
            credit_count=totals.credit_count,
            is_balanced=totals.is_balanced(session.tolerance),
            is_submittable=totals.is_submittable(session.tolerance),
        ),
        file_info=_file_response(session.file_info),
        last_result=session.last_result,
    )


def _get_session(store: PayrollSessionStore, session_id: str) -> PayrollBatchSession:
    try:
        return store.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/sessions", response_model=PayrollSessionResponse, status_code=201)
async def create_session(store: PayrollSessionStore = Depends(get_session_store)):
    """Open a new, empty payroll batch session."""
    session = store.create()
    logger.info("Opened payroll session %s", session.id)
    return _session_response(session)


@router.get("/sessions/{session_id}", response_model=PayrollSessionResponse)
async def get_session(
    session_id: str,
    store: PayrollSessionStore = Depends(get_session_store),
):
    return _session_response(_get_session(store, session_id))


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(
    session_id: str,
    store: PayrollSessionStore = Depends(get_session_store),
):
    store.discard(session_id)


@router.patch("/sessions/{session_id}/header", response_model=PayrollSessionResponse)
async def update_header(
    session_id: str,
    data: PayrollHeaderUpdate,
    store: PayrollSessionStore = Depends(get_session_store),
):
    """Edit the collection header; changing agreement/employer clears the loans."""
    session = _get_session(store, session_id)
    session.update_header(**data.model_dump(exclude_unset=True))
    return _session_response(session)


@router.post("/sessions/{session_id}/consult", response_model=PayrollSessionResponse)
async def consult_loans(
    session_id: str,
    store: PayrollSessionStore = Depends(get_session_store),
    ledger: LedgerClient = Depends(get_ledger),
):
    """Load active loans for the header criterion together with their balances."""
    session = _get_session(store, session_id)
    try:
        await session.consult(ledger)
    except MissingCriterionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NoCandidatesError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CandidateLookupError as e:
        log_error(e, module="api.payroll", function_name="consult_loans")
        raise HTTPException(status_code=502, detail=str(e))
    return _session_response(session)


@router.patch("/sessions/{session_id}/rows/{loan_id}", response_model=PayrollSessionResponse)
async def update_row(
    session_id: str,
    loan_id: int,
    data: PayrollRowUpdate,
    store: PayrollSessionStore = Depends(get_session_store),
):
    """Manually set a loan's applied and/or overpaid amount."""
    session = _get_session(store, session_id)
    try:
        if data.applied_amount is not None:
            session.set_applied_amount(loan_id, data.applied_amount)
        if data.overpaid_amount is not None:
            session.set_overpaid_amount(loan_id, data.overpaid_amount)
    except UnknownRowError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _session_response(session)


@router.post("/sessions/{session_id}/file", response_model=PayrollSessionResponse)
@limiter.limit("30/minute")
async def import_file(
    request: Request,
    session_id: str,
    file: UploadFile = File(...),
    store: PayrollSessionStore = Depends(get_session_store),
):
    """Distribute a credit-number/amount file over the consulted loans."""
    session = _get_session(store, session_id)
    # One byte past the limit is enough to detect an oversized upload.
    payload = await file.read(settings.max_upload_size_bytes + 1)
    if len(payload) > settings.max_upload_size_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    try:
        info = session.apply_file(file.filename or "batch.txt", decode_batch_bytes(payload))
    except SessionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if info.unmatched_keys:
        logger.warning(
            "Session %s: %d credit number(s) in %s were not found for this criterion",
            session.id, len(info.unmatched_keys), info.file_name,
        )
    return _session_response(session)


@router.post("/sessions/{session_id}/submit", response_model=PayrollSubmissionResponse)
async def submit_batch(
    session_id: str,
    store: PayrollSessionStore = Depends(get_session_store),
    ledger: LedgerClient = Depends(get_ledger),
):
    """Send the reconciled batch to the ledger for posting."""
    session = _get_session(store, session_id)
    try:
        outcome = await session.submit(ledger)
    except LedgerClientError as e:
        log_error(e, module="api.payroll", function_name="submit_batch")
        raise HTTPException(status_code=502, detail=str(e))

    if not outcome.accepted:
        raise HTTPException(status_code=422, detail={"errors": outcome.errors})

    return PayrollSubmissionResponse(
        accepted=outcome.accepted,
        errors=outcome.errors,
        result=outcome.result,
        session=_session_response(session),
    )
