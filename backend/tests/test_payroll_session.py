"""Tests for the payroll batch session state machine.

Tests cover:
- EMPTY → QUERIED → DISTRIBUTED ⇄ RECONCILED → SUBMITTED
- A criterion change clears the rows
- Lookup failures keep the previous state
- Submission is blocked (and the ledger never called) until totals reconcile
"""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

from app.services.distribution.matcher import CandidateLookupError, NoCandidatesError
from app.services.distribution.models import BalanceSummary, LoanRecord
from app.services.distribution.payroll_session import (
    MISSING_CRITERION_MESSAGE,
    NO_ROWS_MESSAGE,
    UNBALANCED_MESSAGE,
    MissingCriterionError,
    PayrollBatchSession,
    PayrollSessionStore,
    SessionError,
    SessionNotFoundError,
    SessionState,
    UnknownRowError,
)
from app.services.ledger_api.mock_ledger import MockLedgerClient

D = Decimal


def _ledger():
    loans = [
        LoanRecord(id=1, credit_number="1", status="ACTIVE", borrower_name="Ana",
                   employer_document_number="900123456", agreement_id=7),
        LoanRecord(id=2, credit_number="AB002", status="ACCOUNTED", borrower_name="Luis",
                   employer_document_number="900123456", agreement_id=7),
    ]
    balances = {
        1: BalanceSummary(current_balance=D("80.00")),
        2: BalanceSummary(current_balance=D("500.00")),
    }
    return MockLedgerClient(loans=loans, balances=balances)


def _ready_header(session, amount="120"):
    session.update_header(
        agreement_id=7,
        receipt_type_id=1,
        gl_account_id=4,
        collection_method_id=2,
        collection_date=date(2024, 3, 29),
        reference_number="NOM0324",
        collection_amount=amount,
    )


async def _queried_session(amount="120"):
    session = PayrollBatchSession(tolerance=D("0.01"))
    _ready_header(session, amount)
    await session.consult(_ledger())
    return session


# ===================================================================
# Consult
# ===================================================================


class TestConsult:

    @pytest.mark.asyncio
    async def test_consult_loads_rows(self):
        session = await _queried_session()
        assert session.state == SessionState.QUERIED
        assert [r.loan_id for r in session.rows] == [1, 2]
        assert session.rows[0].balance == D("80.00")

    @pytest.mark.asyncio
    async def test_consult_without_criterion(self):
        session = PayrollBatchSession()
        with pytest.raises(MissingCriterionError, match=MISSING_CRITERION_MESSAGE):
            await session.consult(_ledger())
        assert session.state == SessionState.EMPTY

    @pytest.mark.asyncio
    async def test_no_candidates_clears_rows(self):
        session = await _queried_session()
        session.update_header(agreement_id=7, company_document_number="111")
        with pytest.raises(NoCandidatesError):
            await session.consult(_ledger())
        assert session.rows == ()
        assert session.state == SessionState.EMPTY

    @pytest.mark.asyncio
    async def test_lookup_failure_keeps_previous_state(self):
        session = await _queried_session()
        session.set_applied_amount(1, "80")
        rows_before = session.rows
        state_before = session.state

        failing = AsyncMock()
        failing.list_loans = AsyncMock(side_effect=RuntimeError("timeout"))
        with pytest.raises(CandidateLookupError):
            await session.consult(failing)

        assert session.rows is rows_before
        assert session.state == state_before


# ===================================================================
# Edits and state transitions
# ===================================================================


class TestEdits:

    @pytest.mark.asyncio
    async def test_edit_moves_to_distributed(self):
        session = await _queried_session()
        session.set_applied_amount(2, "50")
        assert session.state == SessionState.DISTRIBUTED
        assert session.totals.difference == D("70.00")

    @pytest.mark.asyncio
    async def test_balanced_edit_moves_to_reconciled(self):
        session = await _queried_session()
        session.set_applied_amount(2, "120,00")
        assert session.state == SessionState.RECONCILED

    @pytest.mark.asyncio
    async def test_edit_after_reconciled_returns_to_distributed(self):
        session = await _queried_session()
        session.set_applied_amount(2, "120")
        session.set_overpaid_amount(1, "5")
        assert session.state == SessionState.DISTRIBUTED

    @pytest.mark.asyncio
    async def test_target_change_reevaluates(self):
        session = await _queried_session()
        session.set_applied_amount(2, "100")
        assert session.state == SessionState.DISTRIBUTED
        assert session.set_collection_amount("100") == D("100.00")
        assert session.state == SessionState.RECONCILED

    @pytest.mark.asyncio
    async def test_applied_above_balance_redistributes(self):
        session = await _queried_session()
        row = session.set_applied_amount(1, "120")
        assert row.applied_amount == D("80.00")
        assert row.overpaid_amount == D("40.00")

    @pytest.mark.asyncio
    async def test_applied_below_balance_keeps_overpaid(self):
        session = await _queried_session()
        session.set_overpaid_amount(1, "7.5")
        row = session.set_applied_amount(1, "30")
        assert row.applied_amount == D("30.00")
        assert row.overpaid_amount == D("7.50")

    @pytest.mark.asyncio
    async def test_invalid_input_becomes_zero(self):
        session = await _queried_session()
        row = session.set_applied_amount(2, "abc")
        assert row.applied_amount == D("0.00")

    @pytest.mark.asyncio
    async def test_rows_are_replaced_not_mutated(self):
        session = await _queried_session()
        original = session.rows[0]
        session.set_applied_amount(1, "10")
        assert original.applied_amount == D("0.00")
        assert session.rows[0] is not original

    @pytest.mark.asyncio
    async def test_unknown_row(self):
        session = await _queried_session()
        with pytest.raises(UnknownRowError):
            session.set_applied_amount(99, "10")

    @pytest.mark.asyncio
    async def test_criterion_change_clears_rows(self):
        session = await _queried_session()
        session.set_applied_amount(2, "120")
        session.update_header(agreement_id=8)
        assert session.rows == ()
        assert session.state == SessionState.EMPTY

    @pytest.mark.asyncio
    async def test_same_criterion_keeps_rows(self):
        session = await _queried_session()
        session.update_header(agreement_id=7, reference_number="X1")
        assert len(session.rows) == 2
        assert session.state == SessionState.QUERIED

    def test_unknown_header_field(self):
        session = PayrollBatchSession()
        with pytest.raises(SessionError):
            session.update_header(color="red")


# ===================================================================
# File import
# ===================================================================


class TestApplyFile:

    @pytest.mark.asyncio
    async def test_end_to_end_file(self):
        session = await _queried_session("120")
        info = session.apply_file("nomina.csv", "1,120")

        row = session.rows[0]
        assert row.applied_amount == D("80.00")
        assert row.overpaid_amount == D("40.00")
        totals = session.totals
        assert totals.total_applied == D("80.00")
        assert totals.total_overpaid == D("40.00")
        assert totals.total_assigned == D("120.00")
        assert totals.difference == D("0.00")
        assert info.matched_count == 1
        assert session.state == SessionState.RECONCILED

    @pytest.mark.asyncio
    async def test_unmatched_keys_reported(self):
        session = await _queried_session("50")
        info = session.apply_file("nomina.txt", "Credito;Valor\nZ999;10\nab002;50")
        assert info.unmatched_keys == ["Z999"]
        assert info.parse.header_skipped
        assert session.rows[0].applied_amount == D("0.00")
        assert session.rows[1].applied_amount == D("50.00")

    @pytest.mark.asyncio
    async def test_empty_file_changes_nothing(self):
        session = await _queried_session()
        info = session.apply_file("empty.txt", "\n\n")
        assert info.matched_count == 0
        assert session.state == SessionState.QUERIED

    def test_file_before_consult(self):
        session = PayrollBatchSession()
        with pytest.raises(SessionError):
            session.apply_file("nomina.csv", "1;10")


# ===================================================================
# Submission
# ===================================================================


class TestSubmit:

    @pytest.mark.asyncio
    async def test_blocked_when_nothing_assigned(self):
        session = await _queried_session()
        client = AsyncMock()
        outcome = await session.submit(client)
        assert not outcome.accepted
        assert NO_ROWS_MESSAGE in outcome.errors
        client.process_payroll_batch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blocked_when_unbalanced(self):
        session = await _queried_session()
        session.set_applied_amount(2, "119.98")
        client = AsyncMock()
        outcome = await session.submit(client)
        assert outcome.errors == [UNBALANCED_MESSAGE]
        client.process_payroll_batch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_header_validation(self):
        session = await _queried_session()
        session.set_applied_amount(2, "120")
        session.update_header(reference_number="", receipt_type_id=None)
        outcome = await session.submit(AsyncMock())
        assert "Receipt type is required" in outcome.errors
        assert any("Reference number" in e for e in outcome.errors)

    @pytest.mark.asyncio
    async def test_successful_submission_clears_session(self):
        session = await _queried_session()
        session.apply_file("nomina.csv", "1,120")
        ledger = _ledger()

        outcome = await session.submit(ledger)

        assert outcome.accepted
        assert outcome.result["processedRows"] == 1
        assert session.state == SessionState.SUBMITTED
        assert session.rows == ()
        assert session.header.agreement_id is None
        assert session.header.collection_amount == D("0.00")
        # Defaults the cashier reuses for the next batch are kept.
        assert session.header.receipt_type_id == 1
        assert session.header.collection_method_id == 2

        payload = ledger.processed_batches[0]
        assert payload["referenceNumber"] == "NOM0324"
        assert payload["collectionDate"] == "2024-03-29"
        assert payload["rows"] == [
            {"loanId": 1, "creditNumber": "1", "paymentAmount": 80.0, "overpaidAmount": 40.0},
        ]

    @pytest.mark.asyncio
    async def test_nothing_processed_keeps_rows(self):
        session = await _queried_session()
        session.set_applied_amount(2, "120")
        client = AsyncMock()
        client.process_payroll_batch = AsyncMock(return_value={"processedRows": 0})
        outcome = await session.submit(client)
        assert outcome.accepted
        assert session.state == SessionState.RECONCILED
        assert len(session.rows) == 2
        assert session.last_result == {"processedRows": 0}

    @pytest.mark.asyncio
    async def test_within_tolerance_submits(self):
        session = await _queried_session("100.00")
        session.set_applied_amount(1, "70.00")
        session.set_applied_amount(2, "29.99")
        outcome = await session.submit(_ledger())
        assert outcome.accepted


class TestSessionStore:

    def test_create_get_discard(self):
        store = PayrollSessionStore()
        session = store.create()
        assert store.get(session.id) is session
        assert len(store) == 1
        store.discard(session.id)
        assert len(store) == 0
        with pytest.raises(SessionNotFoundError):
            store.get(session.id)
