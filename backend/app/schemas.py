"""Pydantic schemas for request/response validation."""

from datetime import datetime, date
from decimal import Decimal
from typing import Any, Optional, Literal, Union
from pydantic import BaseModel, Field, field_validator, model_validator

from app.services.distribution.money import MAX_AMOUNT


RawAmount = Union[str, float, int]


# ── Amounts ───────────────────────────────────────────

class AmountParseRequest(BaseModel):
    raw: str


class AmountParseResponse(BaseModel):
    raw: str
    normalized: str
    amount: float


class DistributeRequest(BaseModel):
    amount: Decimal = Field(ge=0, le=MAX_AMOUNT)
    balance: Decimal = Field(ge=0, le=MAX_AMOUNT)


class DistributionResponse(BaseModel):
    applied_amount: float
    overpaid_amount: float


# ── Manual payment allocation ─────────────────────────

class AllocationLineIn(BaseModel):
    collection_method_id: int = Field(gt=0)
    tender_reference: Optional[str] = Field(None, max_length=50)
    amount: RawAmount


class AllocationCheckRequest(BaseModel):
    """A single-loan payment and its split across payment methods."""
    amount: RawAmount
    overpaid_amount: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_AMOUNT)
    balance: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT)
    allocations: list[AllocationLineIn] = Field(default_factory=list)


class AllocationCheckResponse(BaseModel):
    applied_amount: float
    overpaid_amount: float
    total_payment: float
    total_allocated: float
    difference: float
    is_balanced: bool
    errors: list[str]


# ── Payroll batch sessions ────────────────────────────

class PayrollHeaderUpdate(BaseModel):
    """Optional fields; only the ones sent are applied."""
    agreement_id: Optional[int] = Field(None, gt=0)
    company_document_number: Optional[str] = Field(None, max_length=15)
    receipt_type_id: Optional[int] = Field(None, gt=0)
    gl_account_id: Optional[int] = Field(None, gt=0)
    collection_method_id: Optional[int] = Field(None, gt=0)
    collection_date: Optional[date] = None
    reference_number: Optional[str] = Field(None, max_length=7)
    collection_amount: Optional[Decimal] = Field(None, ge=0, le=MAX_AMOUNT)

    @field_validator("collection_date", "reference_number", "collection_amount")
    @classmethod
    def _not_null(cls, value):
        # These header fields always hold a value; omit them to leave them unchanged.
        if value is None:
            raise ValueError("must not be null")
        return value


class PayrollHeaderResponse(BaseModel):
    agreement_id: Optional[int]
    company_document_number: Optional[str]
    receipt_type_id: Optional[int]
    gl_account_id: Optional[int]
    collection_method_id: Optional[int]
    collection_date: date
    reference_number: str
    collection_amount: float


class PayrollRowUpdate(BaseModel):
    applied_amount: Optional[RawAmount] = None
    overpaid_amount: Optional[RawAmount] = None

    @model_validator(mode="after")
    def _at_least_one(self) -> "PayrollRowUpdate":
        if self.applied_amount is None and self.overpaid_amount is None:
            raise ValueError("Provide applied_amount or overpaid_amount")
        return self


class CandidateRowResponse(BaseModel):
    loan_id: int
    credit_number: str
    borrower_name: str
    balance: float
    applied_amount: float
    overpaid_amount: float


class ReconciliationTotalsResponse(BaseModel):
    total_applied: float
    total_overpaid: float
    total_assigned: float
    target_amount: float
    difference: float
    credit_count: int
    is_balanced: bool
    is_submittable: bool


class ImportedFileResponse(BaseModel):
    file_name: str
    matched_count: int
    unmatched_keys: list[str]
    delimiter: Optional[str]
    header_skipped: bool
    data_lines: int
    skipped_lines: list[int]
    duplicate_keys: list[str]


class PayrollSessionResponse(BaseModel):
    id: str
    state: str
    header: PayrollHeaderResponse
    rows: list[CandidateRowResponse]
    totals: ReconciliationTotalsResponse
    file_info: Optional[ImportedFileResponse] = None
    last_result: Optional[dict[str, Any]] = None


class PayrollSubmissionResponse(BaseModel):
    accepted: bool
    errors: list[str]
    result: Optional[dict[str, Any]] = None
    session: PayrollSessionResponse


# ── Refinancing ───────────────────────────────────────

class RefinancingConsultRequest(BaseModel):
    credit_number: str = Field(min_length=1, max_length=30)


class RefinancingCandidateSchema(BaseModel):
    loan_id: int
    credit_number: str
    status: str
    principal_amount: float = Field(ge=0)
    current_balance: float = Field(ge=0)
    overdue_balance: float = Field(ge=0)
    current_due_balance: float = Field(ge=0)
    open_installments: int = Field(ge=0)
    next_due_date: Optional[date] = None
    is_origin: bool = False


class RefinancingOriginResponse(BaseModel):
    id: int
    credit_number: str
    status: str
    borrower_name: str
    borrower_document_number: Optional[str]


class RefinancingConsultResponse(BaseModel):
    origin: RefinancingOriginResponse
    candidates: list[RefinancingCandidateSchema]
    selected_loan_ids: list[int]


class RefinancingTotalsRequest(BaseModel):
    candidates: list[RefinancingCandidateSchema]
    selected_loan_ids: list[int]
    include_overdue_balance: bool = True


class RefinancingTotalsResponse(BaseModel):
    total_current_balance: float
    total_overdue_balance: float
    total_current_due_balance: float
    total_open_installments: int
    estimated_principal: float
    loan_count: int


class RefinancingSimulationRequest(BaseModel):
    origin_loan_id: int = Field(gt=0)
    selected_loan_ids: list[int] = Field(min_length=1)
    include_overdue_balance: bool
    credit_product_id: int = Field(gt=0)
    category_code: Literal["A", "B", "C", "D"]
    installments: int = Field(gt=0)
    payment_frequency_id: int = Field(gt=0)
    first_payment_date: date
    insurance_company_id: Optional[int] = Field(None, gt=0)
    estimated_principal: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_AMOUNT)


# ── Monitoring ────────────────────────────────────────

class ErrorLogResponse(BaseModel):
    id: int
    severity: str
    error_type: str
    message: str
    module: Optional[str]
    function_name: Optional[str]
    line_number: Optional[int]
    request_method: Optional[str]
    request_path: Optional[str]
    status_code: Optional[int]
    response_time_ms: Optional[float]
    created_at: datetime
