"""Work day endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Path, status

from ledger_sync import aggregation
from ledger_sync.api.dependencies import ReadySession, Session
from ledger_sync.api.schemas import (
    CreatedResponse,
    ErrorResponse,
    MarkPaidBatchRequest,
    MarkPaidBatchResponse,
    document_of,
)
from ledger_sync.records import PaymentDetails, WorkDayDraft, WorkDayPatch

router = APIRouter(prefix="/work-days", tags=["work-days"])

WorkDayId = Annotated[str, Path(min_length=1)]

WRITE_RESPONSES: dict[int | str, dict[str, Any]] = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


@router.get("")
async def list_work_days(session: Session) -> list[dict[str, Any]]:
    return [document_of(d) for d in session.work_days]


@router.post(
    "",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WRITE_RESPONSES,
)
async def create_work_day(session: ReadySession, payload: WorkDayDraft) -> CreatedResponse:
    work_day_id = await session.add_work_day(payload)
    return CreatedResponse(id=work_day_id)


@router.post(
    "/mark-paid",
    response_model=MarkPaidBatchResponse,
    responses=WRITE_RESPONSES,
)
async def mark_work_days_paid(
    session: ReadySession, payload: MarkPaidBatchRequest
) -> MarkPaidBatchResponse:
    """Mark a batch paid. Items written before a failure stay paid."""
    marked = await session.mark_multiple_work_days_as_paid(
        payload.work_day_ids, payload.details
    )
    return MarkPaidBatchResponse(marked=marked or 0)


@router.get("/{work_day_id}", responses={404: {"model": ErrorResponse}})
async def get_work_day(session: Session, work_day_id: WorkDayId) -> dict[str, Any]:
    work_day = aggregation.find_work_day(session.state, work_day_id)
    if work_day is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Work day not found",
        )
    data = document_of(work_day)
    data["owedAmount"] = str(session.calculate_owed_amount(work_day))
    return data


@router.patch(
    "/{work_day_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=WRITE_RESPONSES,
)
async def update_work_day(
    session: ReadySession, work_day_id: WorkDayId, payload: WorkDayPatch
) -> None:
    await session.update_work_day(work_day_id, payload)


@router.delete(
    "/{work_day_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=WRITE_RESPONSES,
)
async def delete_work_day(session: ReadySession, work_day_id: WorkDayId) -> None:
    await session.delete_work_day(work_day_id)


@router.post(
    "/{work_day_id}/paid",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=WRITE_RESPONSES,
)
async def mark_work_day_paid(
    session: ReadySession, work_day_id: WorkDayId, payload: PaymentDetails
) -> None:
    """Mark paid; the amount is frozen now unless ``paidAmount`` is given."""
    await session.mark_work_day_as_paid(work_day_id, payload)


@router.delete(
    "/{work_day_id}/paid",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=WRITE_RESPONSES,
)
async def unmark_work_day_paid(session: ReadySession, work_day_id: WorkDayId) -> None:
    await session.unmark_work_day_as_paid(work_day_id)
