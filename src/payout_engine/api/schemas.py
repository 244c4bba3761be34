"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Pending payout schemas
# ============================================================================


class LedgerItemResponse(BaseModel):
    """One pending payout row."""

    id: UUID
    business_employee_id: UUID
    appointment_id: UUID
    amount: int
    formatted_amount: str
    status: str
    pay_type: str
    hours_worked: Decimal | None = None
    earned_at: datetime
    scheduled_payout_date: date
    failure_reason: str | None = None
    retry_count: int = 0


class LedgerTotalsResponse(BaseModel):
    """Total, count and rows."""

    total: int
    formatted_total: str
    count: int
    items: list[LedgerItemResponse]


class PayeePendingResponse(BaseModel):
    """Pending earnings of one employee."""

    success: bool = True
    business_employee_id: UUID
    total_pending: int
    formatted_total: str
    next_settlement_date: date
    job_count: int
    jobs: list[LedgerItemResponse]
    failed: LedgerTotalsResponse
    processing: LedgerTotalsResponse


class EmployeePendingResponse(BaseModel):
    """Pending earnings of one employee within a business summary."""

    employee_id: UUID
    employee_name: str
    total_pending: int
    formatted_total: str
    job_count: int
    jobs: list[LedgerItemResponse]


class PayerPendingResponse(BaseModel):
    """Pending payouts of one business."""

    success: bool = True
    business_owner_id: UUID
    total_pending: int
    formatted_total: str
    next_settlement_date: date
    employee_count: int
    job_count: int
    by_employee: list[EmployeePendingResponse]
    failed: LedgerTotalsResponse
    processing: LedgerTotalsResponse


class PayoutResultResponse(BaseModel):
    """Outcome of an early or termination payout."""

    success: bool
    business_employee_id: UUID
    payout_type: str
    amount: int
    formatted_amount: str
    payout_count: int
    transfer_reference: str | None = None
    error: str | None = None
    failure: str | None = None
    message: str | None = None


class CancelPayoutRequest(BaseModel):
    """Schema for cancelling an assignment's pending payout."""

    reason: str = Field(..., min_length=1, max_length=500)


class CancelPayoutResponse(BaseModel):
    """Outcome of a cancellation."""

    success: bool
    job_assignment_id: UUID
    pending_payout_id: UUID | None = None
    cancelled_amount: int | None = None
    formatted_amount: str | None = None
    error: str | None = None


# ============================================================================
# Completion schemas
# ============================================================================


class CompletionSubmitRequest(BaseModel):
    """Schema for submitting a finished job."""

    checklist: dict[str, Any] | None = None
    notes: str | None = Field(None, max_length=2000)


class CompletionApproveRequest(BaseModel):
    """Schema for approving a job. `cleaner_id` selects the record on multi-cleaner jobs."""

    cleaner_id: UUID | None = None


class CompletionDisputeRequest(BaseModel):
    """Schema for disputing a job."""

    reason: str = Field(..., min_length=1, max_length=2000)
    cleaner_id: UUID | None = None


class CompletionRecordResponse(BaseModel):
    """Schema for a completion record."""

    model_config = ConfigDict(from_attributes=True)

    completion_record_id: UUID
    appointment_id: UUID
    cleaner_id: UUID | None = None
    completion_status: str
    submitted_at: datetime | None = None
    auto_approval_expires_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by_id: UUID | None = None
    dispute_reason: str | None = None


class CompletionRecordSummary(BaseModel):
    """Completion record as shown in the status view."""

    completion_record_id: UUID
    cleaner_id: UUID | None = None
    completion_status: str
    submitted_at: datetime | None = None
    auto_approval_expires_at: datetime | None = None
    seconds_until_auto_approval: int | None = None
    auto_approval_expired: bool = False
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    dispute_reason: str | None = None
    can_be_approved: bool


class CompletionStatusResponse(BaseModel):
    """Completion state of an appointment."""

    success: bool = True
    appointment_id: UUID
    completed: bool
    is_multi_cleaner: bool
    records: list[CompletionRecordSummary]


class EmployeeEarningResponse(BaseModel):
    """An employee earning recorded by an approval."""

    pending_payout_id: UUID
    business_employee_id: UUID
    amount: int
    formatted_amount: str
    scheduled_payout_date: date


class OwnerShareResponse(BaseModel):
    """The payer's retained share of an approval."""

    amount: int
    formatted_amount: str
    transferred: bool
    transfer_reference: str | None = None
    error: str | None = None


class ApprovalResponse(BaseModel):
    """Outcome of approving a job."""

    success: bool = True
    completion_record_id: UUID
    appointment_id: UUID
    completion_status: str
    approved_by: str
    appointment_completed: bool
    gross_amount: int
    platform_fee: int
    net_amount: int
    owner_share: OwnerShareResponse
    employee_earnings: list[EmployeeEarningResponse]


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
