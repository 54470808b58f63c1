"""Ledger backend adapter over its REST API.

Each call opens its own ``httpx.AsyncClient``; balance lookups are fanned
out by the caller, so calls must not share mutable state.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from app.config import settings
from app.services.distribution.models import BalanceSummary, LoanRecord
from app.services.ledger_api.adapter import (
    ACTIVE_LOAN_STATUSES,
    LedgerClient,
    LedgerClientError,
    balance_from_payload,
    loan_from_payload,
)

logger = logging.getLogger(__name__)

LOANS_PATH = "/api/v1/loans"
BALANCE_SUMMARY_PATH = "/api/v1/loans/{loan_id}/balance-summary"
PAYROLL_PROCESS_PATH = "/api/v1/loan-payment-payroll/process"
REFINANCING_SIMULATE_PATH = "/api/v1/loan-refinancing/simulate"
HEALTH_PATH = "/api/health"


class HttpLedgerClient(LedgerClient):
    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.ledger_api_url).rstrip("/")
        self.token = token if token is not None else settings.ledger_api_token
        self.timeout = timeout or settings.ledger_api_timeout_seconds

    @property
    def provider_name(self) -> str:
        return "http"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method, url, params=params, json=json, headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            logger.error("Ledger request %s %s failed: %s", method, path, exc)
            raise LedgerClientError(f"Ledger backend unreachable: {exc}") from exc

        if response.status_code >= 400:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            logger.error(
                "Ledger API error %s on %s %s: %s",
                response.status_code, method, path, detail,
            )
            raise LedgerClientError(
                str(detail) or f"Ledger API error {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()

    async def list_loans(
        self,
        *,
        agreement_id: Optional[int] = None,
        credit_number: Optional[str] = None,
        third_party_id: Optional[int] = None,
        statuses: Sequence[str] = ACTIVE_LOAN_STATUSES,
        limit: int = 500,
    ) -> List[LoanRecord]:
        params: Dict[str, Any] = {
            "page": 1,
            "limit": limit,
            "include": "borrower",
            "sort": "-creditStartDate",
        }
        if statuses:
            params["status"] = ",".join(statuses)
        if agreement_id is not None:
            params["agreementId"] = agreement_id
        if credit_number:
            params["creditNumber"] = credit_number
        if third_party_id is not None:
            params["thirdPartyId"] = third_party_id

        body = await self._request("GET", LOANS_PATH, params=params)
        items = body.get("data", []) if isinstance(body, dict) else body
        return [loan_from_payload(item) for item in items or []]

    async def get_balance_summary(self, loan_id: int) -> BalanceSummary:
        body = await self._request("GET", BALANCE_SUMMARY_PATH.format(loan_id=loan_id))
        return balance_from_payload(body or {})

    async def process_payroll_batch(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._request("POST", PAYROLL_PROCESS_PATH, json=payload)
        logger.info(
            "Payroll batch processed: %s of %s rows",
            result.get("processedRows"), result.get("receivedRows"),
        )
        return result

    async def simulate_refinancing(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", REFINANCING_SIMULATE_PATH, json=payload)

    async def check_health(self) -> bool:
        try:
            await self._request("GET", HEALTH_PATH)
        except LedgerClientError:
            return False
        return True
