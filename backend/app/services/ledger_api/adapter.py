"""Abstract ledger backend adapter and factory.

The ledger backend is the system of record for loans and balances.  This
service only reads candidate loans and balances from it and hands it
reconciled batches or refinancing simulation requests.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from app.config import settings
from app.services.distribution.models import BalanceSummary, LoanRecord
from app.services.distribution.money import money_or_zero

ACTIVE_LOAN_STATUSES = ("ACTIVE", "ACCOUNTED", "GENERATED", "RELIQUIDATED")


class LedgerClientError(Exception):
    """The ledger backend rejected a request or could not be reached."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LedgerClient(ABC):
    """Abstract interface for the ledger backend."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def list_loans(
        self,
        *,
        agreement_id: Optional[int] = None,
        credit_number: Optional[str] = None,
        third_party_id: Optional[int] = None,
        statuses: Sequence[str] = ACTIVE_LOAN_STATUSES,
        limit: int = 500,
    ) -> List[LoanRecord]:
        """List loans matching every given filter, newest first."""
        ...

    @abstractmethod
    async def get_balance_summary(self, loan_id: int) -> BalanceSummary:
        """Current, overdue and current-due balance for one loan."""
        ...

    @abstractmethod
    async def process_payroll_batch(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Submit a reconciled payroll batch.

        Returns a dict with at minimum ``processedRows``, ``receivedRows``,
        ``totalPaymentAmount``, ``totalOverpaidAmount`` and ``message``.
        """
        ...

    @abstractmethod
    async def simulate_refinancing(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Ask the ledger for a projected schedule of a refinanced loan."""
        ...

    @abstractmethod
    async def check_health(self) -> bool:
        ...


# ── Payload conversion ─────────────────────────────────

def borrower_label(borrower: Optional[Dict[str, Any]]) -> str:
    if not borrower:
        return ""
    if borrower.get("businessName"):
        return str(borrower["businessName"])
    if borrower.get("fullName"):
        return str(borrower["fullName"])
    parts = [
        borrower.get("firstName"),
        borrower.get("secondName"),
        borrower.get("firstLastName"),
        borrower.get("secondLastName"),
    ]
    return " ".join(str(p) for p in parts if p)


def loan_from_payload(item: Dict[str, Any]) -> LoanRecord:
    borrower = item.get("borrower") or {}
    return LoanRecord(
        id=int(item["id"]),
        credit_number=str(item.get("creditNumber") or ""),
        status=str(item.get("status") or ""),
        borrower_name=borrower_label(borrower),
        borrower_document_number=borrower.get("documentNumber"),
        employer_document_number=borrower.get("employerDocumentNumber"),
        third_party_id=item.get("thirdPartyId"),
        agreement_id=item.get("agreementId"),
        principal_amount=money_or_zero(item.get("principalAmount")),
    )


def balance_from_payload(body: Dict[str, Any]) -> BalanceSummary:
    next_due = body.get("nextDueDate")
    return BalanceSummary(
        current_balance=money_or_zero(body.get("currentBalance")),
        overdue_balance=money_or_zero(body.get("overdueBalance")),
        current_due_balance=money_or_zero(body.get("currentDueBalance")),
        open_installments=int(body.get("openInstallments") or 0),
        next_due_date=date.fromisoformat(str(next_due)[:10]) if next_due else None,
    )


def get_ledger_client() -> LedgerClient:
    """Factory function that returns the configured ledger adapter."""
    provider = settings.ledger_provider.lower()

    if provider == "http":
        from app.services.ledger_api.http_client import HttpLedgerClient
        return HttpLedgerClient()
    else:
        from app.services.ledger_api.mock_ledger import MockLedgerClient
        return MockLedgerClient()
