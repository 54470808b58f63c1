"""Tests for multi-loan refinancing aggregation."""

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

from app.services.distribution.matcher import CandidateLookupError, NoCandidatesError
from app.services.distribution.models import BalanceSummary, LoanRecord
from app.services.distribution.refinancing import (
    RefinancingCandidate,
    build_simulation_request,
    consult_refinancing,
    selection_totals,
    toggle_selection,
)
from app.services.ledger_api.mock_ledger import MockLedgerClient

D = Decimal


def _candidate(loan_id, current, overdue, current_due, installments=3, origin=False):
    return RefinancingCandidate(
        loan_id=loan_id,
        credit_number=f"CR-{loan_id}",
        status="ACTIVE",
        principal_amount=D("1000"),
        current_balance=D(current),
        overdue_balance=D(overdue),
        current_due_balance=D(current_due),
        open_installments=installments,
        next_due_date=None,
        is_origin=origin,
    )


class TestConsultRefinancing:

    @pytest.mark.asyncio
    async def test_collects_borrower_loans(self):
        # Default mock data: loans 1 and 3 belong to the same borrower.
        result = await consult_refinancing(MockLedgerClient(), " CR-000101 ")
        assert result.origin.id == 1
        assert [c.loan_id for c in result.candidates] == [1, 3]
        assert [c.is_origin for c in result.candidates] == [True, False]
        assert result.candidates[0].current_balance == D("2350000.00")
        assert result.default_selection == [1]

    @pytest.mark.asyncio
    async def test_unknown_credit(self):
        with pytest.raises(NoCandidatesError):
            await consult_refinancing(MockLedgerClient(), "NOPE")

    @pytest.mark.asyncio
    async def test_blank_credit(self):
        with pytest.raises(NoCandidatesError):
            await consult_refinancing(MockLedgerClient(), "  ")

    @pytest.mark.asyncio
    async def test_origin_lookup_ignores_status(self):
        client = AsyncMock()
        client.list_loans = AsyncMock(return_value=[])
        with pytest.raises(NoCandidatesError):
            await consult_refinancing(client, "CR-1")
        assert client.list_loans.call_args.kwargs["statuses"] == ()
        assert client.list_loans.call_args.kwargs["limit"] == 1

    @pytest.mark.asyncio
    async def test_negative_balances_clamped_to_zero(self):
        client = MockLedgerClient()
        client.balances[3] = BalanceSummary(
            current_balance=D("-5.00"), overdue_balance=D("-1"), current_due_balance=D("-4"),
        )
        result = await consult_refinancing(client, "CR-000101")
        overpaid = result.candidates[1]
        assert overpaid.current_balance == D("0.00")
        assert overpaid.overdue_balance == D("0.00")
        assert overpaid.current_due_balance == D("0.00")

    @pytest.mark.asyncio
    async def test_balance_failure_fails_consult(self):
        client = MockLedgerClient()
        del client.balances[3]
        with pytest.raises(CandidateLookupError):
            await consult_refinancing(client, "CR-000101")

    @pytest.mark.asyncio
    async def test_listing_failure(self):
        client = AsyncMock()
        client.list_loans = AsyncMock(side_effect=[
            [LoanRecord(id=9, credit_number="CR-9", third_party_id=5)],
            RuntimeError("gateway timeout"),
        ])
        with pytest.raises(CandidateLookupError, match="gateway timeout"):
            await consult_refinancing(client, "CR-9")


class TestSelection:

    def test_origin_cannot_be_unselected(self):
        origin = _candidate(1, "10", "0", "10", origin=True)
        assert toggle_selection([1], origin, False) == [1]

    def test_add_and_remove(self):
        other = _candidate(2, "10", "0", "10")
        selected = toggle_selection([1], other, True)
        assert selected == [1, 2]
        assert toggle_selection(selected, other, True) == [1, 2]
        assert toggle_selection(selected, other, False) == [1]

    def test_totals_with_overdue(self):
        candidates = [
            _candidate(1, "1000.10", "200.05", "800.05", 4, origin=True),
            _candidate(2, "500.20", "0", "500.20", 2),
            _candidate(3, "999", "999", "0", 9),
        ]
        totals = selection_totals(candidates, [1, 2], include_overdue_balance=True)
        assert totals.total_current_balance == D("1500.30")
        assert totals.total_overdue_balance == D("200.05")
        assert totals.total_current_due_balance == D("1300.25")
        assert totals.total_open_installments == 6
        assert totals.estimated_principal == D("1500.30")
        assert totals.loan_count == 2

    def test_totals_without_overdue(self):
        candidates = [_candidate(1, "1000.10", "200.05", "800.05", origin=True)]
        totals = selection_totals(candidates, [1], include_overdue_balance=False)
        assert totals.estimated_principal == D("800.05")


class TestSimulationRequest:

    def test_origin_always_first_and_unique(self):
        payload = build_simulation_request(
            origin_loan_id=1,
            selected_loan_ids=[3, 1, 3],
            include_overdue_balance=True,
            credit_product_id=4,
            category_code="A",
            installments=24,
            payment_frequency_id=1,
            first_payment_date=date(2024, 5, 1),
            principal_to_refinance=D("3330000.00"),
        )
        assert payload["selectedLoanIds"] == [1, 3]
        assert payload["firstPaymentDate"] == "2024-05-01"
        assert payload["principalToRefinance"] == 3330000.0
        assert payload["insuranceCompanyId"] is None

    @pytest.mark.asyncio
    async def test_mock_simulation(self):
        result = await MockLedgerClient().simulate_refinancing(
            {"principalToRefinance": 1200, "installments": 12},
        )
        assert result["projectedFirstInstallmentPayment"] == 100.0
        assert result["projectedTotalPayment"] == 1200.0
