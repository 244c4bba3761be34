"""Pending payout API endpoints: dashboards, early/termination payouts, cancellation."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Response, status

from payout_engine.api.dependencies import DbSession, Services, UserId
from payout_engine.api.schemas import (
    CancelPayoutRequest,
    CancelPayoutResponse,
    ErrorResponse,
    PayeePendingResponse,
    PayerPendingResponse,
    PayoutResultResponse,
)
from payout_engine.events import EventMetadata, PendingPayoutCancelled
from payout_engine.models import BusinessEmployee, JobAssignment
from payout_engine.services import PayoutLedger

router = APIRouter(prefix="/payouts", tags=["payouts"])


async def _load_employee(db: DbSession, business_employee_id: UUID) -> BusinessEmployee:
    employee = await db.get(BusinessEmployee, business_employee_id)
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found",
        )
    return employee


def _require_owner(employee: BusinessEmployee, user_id: UUID) -> None:
    if employee.business_owner_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the employee's business owner can do this",
        )


# ============================================================================
# Dashboards
# ============================================================================


@router.get(
    "/employees/{business_employee_id}/pending",
    response_model=PayeePendingResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_employee_pending(
    db: DbSession,
    services: Services,
    user_id: UserId,
    business_employee_id: Annotated[UUID, Path()],
) -> PayeePendingResponse:
    """Pending earnings of an employee. Visible to the employee and their business owner."""
    employee = await _load_employee(db, business_employee_id)
    if user_id not in (employee.user_id, employee.business_owner_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to view this employee's earnings",
        )

    ledger = PayoutLedger(db, calendar=services.calendar, clock=services.clock)
    summary = await ledger.pending_for_payee(business_employee_id)
    return PayeePendingResponse.model_validate({"success": True, **summary.to_dict()})


@router.get(
    "/businesses/{business_owner_id}/pending",
    response_model=PayerPendingResponse,
    responses={403: {"model": ErrorResponse}},
)
async def get_business_pending(
    db: DbSession,
    services: Services,
    user_id: UserId,
    business_owner_id: Annotated[UUID, Path()],
) -> PayerPendingResponse:
    """Pending payouts of a business, grouped per employee."""
    if user_id != business_owner_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to view this business's payouts",
        )

    ledger = PayoutLedger(db, calendar=services.calendar, clock=services.clock)
    summary = await ledger.pending_for_payer(business_owner_id)
    return PayerPendingResponse.model_validate({"success": True, **summary.to_dict()})


# ============================================================================
# On-demand payouts
# ============================================================================


@router.post(
    "/employees/{business_employee_id}/early",
    response_model=PayoutResultResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def trigger_early_payout(
    db: DbSession,
    services: Services,
    user_id: UserId,
    business_employee_id: Annotated[UUID, Path()],
) -> PayoutResultResponse:
    """Pay an employee's pending earnings now instead of on the settlement date."""
    employee = await _load_employee(db, business_employee_id)
    _require_owner(employee, user_id)
    await db.close()

    result = await services.settlement.early_payout(business_employee_id, user_id)
    return PayoutResultResponse.model_validate(result.to_dict())


@router.post(
    "/employees/{business_employee_id}/termination",
    response_model=PayoutResultResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def trigger_termination_payout(
    db: DbSession,
    services: Services,
    user_id: UserId,
    business_employee_id: Annotated[UUID, Path()],
) -> PayoutResultResponse:
    """Terminate an employee and pay out everything still pending."""
    employee = await _load_employee(db, business_employee_id)
    _require_owner(employee, user_id)
    await db.close()

    result = await services.settlement.termination_payout(business_employee_id)
    return PayoutResultResponse.model_validate(result.to_dict())


# ============================================================================
# Cancellation
# ============================================================================


@router.post(
    "/assignments/{job_assignment_id}/cancel",
    response_model=CancelPayoutResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": CancelPayoutResponse}},
)
async def cancel_pending_payout(
    db: DbSession,
    services: Services,
    user_id: UserId,
    payload: CancelPayoutRequest,
    response: Response,
    job_assignment_id: Annotated[UUID, Path()],
) -> CancelPayoutResponse:
    """Cancel the pending payout of a job assignment."""
    assignment = await db.get(JobAssignment, job_assignment_id)
    if assignment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job assignment not found",
        )
    if assignment.business_owner_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the business owner can cancel this payout",
        )

    ledger = PayoutLedger(db, calendar=services.calendar, clock=services.clock)
    result = await ledger.cancel(job_assignment_id, payload.reason)
    if not result.success:
        response.status_code = status.HTTP_404_NOT_FOUND
        return CancelPayoutResponse.model_validate(result.to_dict())

    await db.commit()
    if result.pending_payout_id is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Cancelled payout has no identifier",
        )
    await services.emitter.emit(
        PendingPayoutCancelled(
            metadata=EventMetadata.create(actor_id=user_id, actor_type="user"),
            pending_payout_id=result.pending_payout_id,
            job_assignment_id=job_assignment_id,
            amount=result.cancelled_amount,
            reason=payload.reason,
        )
    )
    return CancelPayoutResponse.model_validate(result.to_dict())
