"""In-memory ledger adapter for development and testing.

Holds a handful of loans with fixed balances so the payroll and
refinancing screens can be exercised without a ledger backend.  Batches
submitted to it are kept in ``processed_batches`` for inspection.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from app.services.distribution.models import BalanceSummary, LoanRecord
from app.services.distribution.money import ZERO, money_or_zero, round2, sum_money
from app.services.ledger_api.adapter import (
    ACTIVE_LOAN_STATUSES,
    LedgerClient,
    LedgerClientError,
)

logger = logging.getLogger(__name__)


def _default_loans() -> List[LoanRecord]:
    return [
        LoanRecord(id=1, credit_number="CR-000101", status="ACTIVE", borrower_name="Ana Torres",
                   borrower_document_number="1020304050", employer_document_number="900123456",
                   third_party_id=11, agreement_id=1, principal_amount=Decimal("5000000.00")),
        LoanRecord(id=2, credit_number="CR-000102", status="ACCOUNTED", borrower_name="Luis Pardo",
                   borrower_document_number="79888777", employer_document_number="900123456",
                   third_party_id=12, agreement_id=1, principal_amount=Decimal("3200000.00")),
        LoanRecord(id=3, credit_number="CR-000103", status="ACTIVE", borrower_name="Ana Torres",
                   borrower_document_number="1020304050", employer_document_number="900123456",
                   third_party_id=11, agreement_id=1, principal_amount=Decimal("1500000.00")),
        LoanRecord(id=4, credit_number="CR-000201", status="GENERATED", borrower_name="Marta Ruiz",
                   borrower_document_number="52111222", employer_document_number="800555666",
                   third_party_id=13, agreement_id=2, principal_amount=Decimal("8000000.00")),
        LoanRecord(id=5, credit_number="CR-000202", status="PAID", borrower_name="Jorge Gil",
                   borrower_document_number="80333444", employer_document_number="800555666",
                   third_party_id=14, agreement_id=2, principal_amount=Decimal("900000.00")),
    ]


def _default_balances() -> Dict[int, BalanceSummary]:
    next_due = date.today() + timedelta(days=15)
    return {
        1: BalanceSummary(Decimal("2350000.00"), Decimal("180000.00"), Decimal("2170000.00"), 14, next_due),
        2: BalanceSummary(Decimal("410500.50"), ZERO, Decimal("410500.50"), 4, next_due),
        3: BalanceSummary(Decimal("980000.00"), Decimal("95000.00"), Decimal("885000.00"), 9, next_due),
        4: BalanceSummary(Decimal("7600000.00"), ZERO, Decimal("7600000.00"), 34, next_due),
        5: BalanceSummary(ZERO, ZERO, ZERO, 0, None),
    }


class MockLedgerClient(LedgerClient):
    def __init__(
        self,
        loans: Optional[List[LoanRecord]] = None,
        balances: Optional[Dict[int, BalanceSummary]] = None,
    ):
        self.loans = list(loans) if loans is not None else _default_loans()
        self.balances = dict(balances) if balances is not None else _default_balances()
        self.processed_batches: List[Dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "mock"

    async def list_loans(
        self,
        *,
        agreement_id: Optional[int] = None,
        credit_number: Optional[str] = None,
        third_party_id: Optional[int] = None,
        statuses: Sequence[str] = ACTIVE_LOAN_STATUSES,
        limit: int = 500,
    ) -> List[LoanRecord]:
        found = [
            loan for loan in self.loans
            if (agreement_id is None or loan.agreement_id == agreement_id)
            and (not credit_number or loan.credit_number == credit_number)
            and (third_party_id is None or loan.third_party_id == third_party_id)
            and (not statuses or loan.status in statuses)
        ]
        return found[:limit]

    async def get_balance_summary(self, loan_id: int) -> BalanceSummary:
        try:
            return self.balances[loan_id]
        except KeyError:
            raise LedgerClientError(f"Loan {loan_id} not found", status_code=404) from None

    async def process_payroll_batch(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        rows = payload.get("rows") or []
        processed = [
            row for row in rows
            if money_or_zero(row.get("paymentAmount")) > 0
            or money_or_zero(row.get("overpaidAmount")) > 0
        ]
        self.processed_batches.append(payload)
        logger.info("Mock ledger accepted payroll batch with %d rows", len(processed))
        return {
            "agreementId": payload.get("agreementId"),
            "companyDocumentNumber": payload.get("companyDocumentNumber"),
            "receiptTypeId": payload.get("receiptTypeId"),
            "collectionAmount": payload.get("collectionAmount"),
            "receivedRows": len(rows),
            "processedRows": len(processed),
            "totalPaymentAmount": float(sum_money(money_or_zero(r.get("paymentAmount")) for r in processed)),
            "totalOverpaidAmount": float(sum_money(money_or_zero(r.get("overpaidAmount")) for r in processed)),
            "message": f"{len(processed)} payments queued for posting",
        }

    async def simulate_refinancing(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        principal = money_or_zero(payload.get("principalToRefinance"))
        installments = int(payload.get("installments") or 1)
        # Flat split only; the real projection belongs to the ledger backend.
        installment = round2(principal / installments) if installments > 0 else principal
        return {
            "principalToRefinance": float(principal),
            "installments": installments,
            "projectedFirstInstallmentPayment": float(installment),
            "projectedMaxInstallmentPayment": float(installment),
            "projectedTotalPayment": float(round2(installment * installments)),
        }

    async def check_health(self) -> bool:
        return True
