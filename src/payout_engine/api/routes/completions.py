"""Job completion API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from payout_engine.api.dependencies import Services, UserId
from payout_engine.api.schemas import (
    ApprovalResponse,
    CompletionApproveRequest,
    CompletionDisputeRequest,
    CompletionRecordResponse,
    CompletionStatusResponse,
    CompletionSubmitRequest,
    ErrorResponse,
)

router = APIRouter(prefix="/appointments/{appointment_id}/completion", tags=["completions"])

_ERRORS = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.get(
    "",
    response_model=CompletionStatusResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_completion_status(
    services: Services,
    user_id: UserId,
    appointment_id: Annotated[UUID, Path()],
) -> CompletionStatusResponse:
    """Completion state of an appointment and each of its records."""
    view = await services.completions.status(appointment_id)
    return CompletionStatusResponse.model_validate({"success": True, **view.to_dict()})


@router.post(
    "/submit",
    response_model=CompletionRecordResponse,
    responses=_ERRORS,
)
async def submit_completion(
    services: Services,
    user_id: UserId,
    payload: CompletionSubmitRequest,
    appointment_id: Annotated[UUID, Path()],
) -> CompletionRecordResponse:
    """Cleaner submits a finished job for homeowner approval."""
    record = await services.completions.submit(
        appointment_id,
        user_id,
        checklist=payload.checklist,
        notes=payload.notes,
    )
    return CompletionRecordResponse.model_validate(record)


@router.post(
    "/approve",
    response_model=ApprovalResponse,
    responses=_ERRORS,
)
async def approve_completion(
    services: Services,
    user_id: UserId,
    payload: CompletionApproveRequest,
    appointment_id: Annotated[UUID, Path()],
) -> ApprovalResponse:
    """Homeowner approves a submitted job; releases payment."""
    result = await services.completions.approve(
        appointment_id,
        user_id,
        cleaner_id=payload.cleaner_id,
    )
    return ApprovalResponse.model_validate({"success": True, **result.to_dict()})


@router.post(
    "/dispute",
    response_model=CompletionRecordResponse,
    responses=_ERRORS,
)
async def dispute_completion(
    services: Services,
    user_id: UserId,
    payload: CompletionDisputeRequest,
    appointment_id: Annotated[UUID, Path()],
) -> CompletionRecordResponse:
    """Homeowner disputes a submitted job; payment stays blocked."""
    record = await services.completions.dispute(
        appointment_id,
        user_id,
        payload.reason,
        cleaner_id=payload.cleaner_id,
    )
    return CompletionRecordResponse.model_validate(record)
