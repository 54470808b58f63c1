"""Payroll batch session: the transient object a user edits before submitting.

State flow::

    EMPTY ──consult──▶ QUERIED ──edit/file──▶ DISTRIBUTED ◀──▶ RECONCILED ──submit──▶ SUBMITTED

RECONCILED is derived: the totals are within tolerance and at least one
row carries an amount.  Any further edit re-evaluates it, so an edit that
breaks the balance drops the session back to DISTRIBUTED.  Changing the
criterion (agreement or employer document) clears the rows and returns to
EMPTY.

Rows are immutable; every edit builds a new tuple.
"""

import enum
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from app.config import settings
from app.services.distribution.amount_parser import parse_amount_lenient
from app.services.distribution.batch_file import BatchParseResult, parse_batch_file
from app.services.distribution.distributor import distribute
from app.services.distribution.matcher import (
    CandidateLookupError,
    DistributionError,
    NoCandidatesError,
    PayrollCriterion,
    load_payroll_candidates,
    reconcile_batch,
)
from app.services.distribution.models import CandidateRow, ReconciliationResult
from app.services.distribution.money import ZERO
from app.services.distribution.totals import compute_totals, rows_to_process
from app.services.ledger_api.adapter import LedgerClient

logger = logging.getLogger(__name__)

NO_ROWS_MESSAGE = "Assign a payment amount to at least one loan"
UNBALANCED_MESSAGE = "The distributed total must equal the collection amount"
MISSING_CRITERION_MESSAGE = "Provide an agreement or an employer document number"
MAX_REFERENCE_LENGTH = 7


class SessionState(str, enum.Enum):
    EMPTY = "empty"
    QUERIED = "queried"
    DISTRIBUTED = "distributed"
    RECONCILED = "reconciled"
    SUBMITTED = "submitted"


class SessionError(DistributionError):
    """Invalid operation on a payroll session."""


class UnknownRowError(SessionError):
    """The loan is not among the session's candidates."""


class MissingCriterionError(SessionError):
    """Neither an agreement nor an employer document was given."""


class SessionNotFoundError(SessionError):
    pass


@dataclass
class PayrollHeader:
    agreement_id: Optional[int] = None
    company_document_number: Optional[str] = None
    receipt_type_id: Optional[int] = None
    gl_account_id: Optional[int] = None
    collection_method_id: Optional[int] = None
    collection_date: date = field(default_factory=date.today)
    reference_number: str = ""
    collection_amount: Decimal = ZERO

    @property
    def criterion(self) -> PayrollCriterion:
        document = (self.company_document_number or "").strip() or None
        return PayrollCriterion(agreement_id=self.agreement_id, company_document_number=document)

    def validation_errors(self) -> list[str]:
        errors = []
        if self.criterion.is_empty:
            errors.append(MISSING_CRITERION_MESSAGE)
        if not self.receipt_type_id:
            errors.append("Receipt type is required")
        if not self.collection_method_id:
            errors.append("Collection method is required")
        reference = self.reference_number.strip()
        if not reference or len(reference) > MAX_REFERENCE_LENGTH:
            errors.append(f"Reference number must have 1 to {MAX_REFERENCE_LENGTH} characters")
        if self.collection_amount <= 0:
            errors.append("Collection amount must be greater than zero")
        return errors


@dataclass
class ImportedFileInfo:
    file_name: str
    matched_count: int
    unmatched_keys: list[str]
    parse: BatchParseResult


@dataclass
class SubmissionOutcome:
    accepted: bool
    errors: list[str] = field(default_factory=list)
    result: Optional[Dict[str, Any]] = None


_CRITERION_FIELDS = {"agreement_id", "company_document_number"}


class PayrollBatchSession:
    def __init__(self, session_id: Optional[str] = None, tolerance: Optional[Decimal] = None):
        self.id = session_id or uuid.uuid4().hex
        self.tolerance = tolerance if tolerance is not None else settings.amount_tolerance
        self.state = SessionState.EMPTY
        self.header = PayrollHeader()
        self.rows: tuple[CandidateRow, ...] = ()
        self.file_info: Optional[ImportedFileInfo] = None
        self.last_result: Optional[Dict[str, Any]] = None

    # ── Derived values ────────────────────────────────

    @property
    def totals(self) -> ReconciliationResult:
        return compute_totals(self.rows, self.header.collection_amount)

    def _reevaluate(self) -> None:
        if not self.rows:
            return
        if not rows_to_process(self.rows) and self.state == SessionState.QUERIED:
            return
        if self.totals.is_submittable(self.tolerance):
            self.state = SessionState.RECONCILED
        else:
            self.state = SessionState.DISTRIBUTED

    def _clear_rows(self) -> None:
        self.rows = ()
        self.file_info = None
        self.state = SessionState.EMPTY

    def _row_index(self, loan_id: int) -> int:
        for index, row in enumerate(self.rows):
            if row.loan_id == loan_id:
                return index
        raise UnknownRowError(f"Loan {loan_id} is not part of this batch")

    def _replace_row(self, index: int, row: CandidateRow) -> None:
        self.rows = self.rows[:index] + (row,) + self.rows[index + 1:]
        self.last_result = None
        self._reevaluate()

    # ── Header ────────────────────────────────────────

    def update_header(self, **changes: Any) -> None:
        """Apply header changes; a new criterion discards the loaded rows."""
        criterion_before = self.header.criterion
        for name, value in changes.items():
            if not hasattr(self.header, name):
                raise SessionError(f"Unknown header field {name!r}")
            if name == "collection_amount":
                value = parse_amount_lenient(value)
            setattr(self.header, name, value)

        if _CRITERION_FIELDS & changes.keys() and self.header.criterion != criterion_before:
            logger.info("Session %s criterion changed, clearing %d rows", self.id, len(self.rows))
            self._clear_rows()
        else:
            self._reevaluate()

    def set_collection_amount(self, value: object) -> Decimal:
        self.update_header(collection_amount=value)
        return self.header.collection_amount

    # ── Consult ───────────────────────────────────────

    async def consult(self, client: LedgerClient) -> tuple[CandidateRow, ...]:
        """Load candidates for the header's criterion.

        On a lookup failure the session keeps whatever it had before; when
        the criterion matches nothing the rows are cleared.
        """
        criterion = self.header.criterion
        if criterion.is_empty:
            raise MissingCriterionError(MISSING_CRITERION_MESSAGE)

        try:
            rows = await load_payroll_candidates(
                client,
                criterion,
                agreement_limit=settings.payroll_agreement_query_limit,
                open_limit=settings.payroll_open_query_limit,
            )
        except NoCandidatesError:
            self._clear_rows()
            raise
        except CandidateLookupError:
            logger.error("Session %s consult failed, keeping previous state", self.id)
            raise

        self.rows = rows
        self.file_info = None
        self.last_result = None
        self.state = SessionState.QUERIED
        logger.info("Session %s loaded %d candidate loans", self.id, len(rows))
        return rows

    # ── Edits ─────────────────────────────────────────

    def set_applied_amount(self, loan_id: int, value: object) -> CandidateRow:
        """Manual edit of the applied amount.

        Above the balance the whole value is redistributed; otherwise only
        the applied bucket changes and the overpaid amount is kept.
        """
        index = self._row_index(loan_id)
        row = self.rows[index]
        amount = parse_amount_lenient(value)
        if amount > row.balance:
            split = distribute(amount, row.balance)
            updated = replace(row, applied_amount=split.applied, overpaid_amount=split.overpaid)
        else:
            updated = replace(row, applied_amount=amount)
        self._replace_row(index, updated)
        return updated

    def set_overpaid_amount(self, loan_id: int, value: object) -> CandidateRow:
        index = self._row_index(loan_id)
        updated = replace(self.rows[index], overpaid_amount=parse_amount_lenient(value))
        self._replace_row(index, updated)
        return updated

    def apply_file(self, file_name: str, content: str) -> ImportedFileInfo:
        """Distribute a batch file over the loaded candidates."""
        if not self.rows:
            raise SessionError("Consult the loans before importing a file")

        parsed = parse_batch_file(content)
        if parsed.is_empty:
            logger.warning("Session %s: file %s has no valid rows", self.id, file_name)
            self.file_info = ImportedFileInfo(file_name, 0, [], parsed)
            return self.file_info

        match = reconcile_batch(self.rows, parsed.amounts)
        self.rows = match.rows
        self.file_info = ImportedFileInfo(
            file_name, match.matched_count, match.unmatched_keys, parsed,
        )
        self.last_result = None
        self._reevaluate()
        return self.file_info

    # ── Submission ────────────────────────────────────

    def submission_blockers(self) -> list[str]:
        errors = self.header.validation_errors()
        totals = self.totals
        if totals.credit_count == 0:
            errors.append(NO_ROWS_MESSAGE)
        elif not totals.is_balanced(self.tolerance):
            errors.append(UNBALANCED_MESSAGE)
        return errors

    def build_payload(self) -> Dict[str, Any]:
        header = self.header
        return {
            "agreementId": header.agreement_id,
            "companyDocumentNumber": (header.company_document_number or "").strip() or None,
            "receiptTypeId": header.receipt_type_id,
            "glAccountId": header.gl_account_id,
            "collectionMethodId": header.collection_method_id,
            "collectionDate": header.collection_date.isoformat(),
            "referenceNumber": header.reference_number.strip(),
            "collectionAmount": float(header.collection_amount),
            "rows": [
                {
                    "loanId": row.loan_id,
                    "creditNumber": row.credit_number,
                    "paymentAmount": float(row.applied_amount),
                    "overpaidAmount": float(row.overpaid_amount),
                }
                for row in rows_to_process(self.rows)
            ],
        }

    async def submit(self, client: LedgerClient) -> SubmissionOutcome:
        """Send the batch if it reconciles; otherwise report why not.

        The client is never called for a blocked batch.
        """
        errors = self.submission_blockers()
        if errors:
            logger.info("Session %s submission blocked: %s", self.id, "; ".join(errors))
            return SubmissionOutcome(accepted=False, errors=errors)

        result = await client.process_payroll_batch(self.build_payload())
        self.last_result = result
        if int(result.get("processedRows") or 0) > 0:
            kept = self.header
            self.header = PayrollHeader(
                receipt_type_id=kept.receipt_type_id,
                gl_account_id=kept.gl_account_id,
                collection_method_id=kept.collection_method_id,
            )
            self.rows = ()
            self.file_info = None
            self.state = SessionState.SUBMITTED
        return SubmissionOutcome(accepted=True, result=result)


class PayrollSessionStore:
    """Process-local registry of open payroll sessions."""

    def __init__(self):
        self._sessions: Dict[str, PayrollBatchSession] = {}

    def create(self) -> PayrollBatchSession:
        session = PayrollBatchSession()
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> PayrollBatchSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(f"Payroll session {session_id} not found") from None

    def discard(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


session_store = PayrollSessionStore()
