"""Legacy payment endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Path, status

from ledger_sync.api.dependencies import ReadySession, Session
from ledger_sync.api.schemas import CreatedResponse, ErrorResponse, document_of
from ledger_sync.records import PaymentDraft, PaymentPatch

router = APIRouter(prefix="/payments", tags=["payments"])

PaymentId = Annotated[str, Path(min_length=1)]


@router.get("")
async def list_payments(session: Session) -> list[dict[str, Any]]:
    return [document_of(p) for p in session.payments]


@router.post(
    "",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def create_payment(session: ReadySession, payload: PaymentDraft) -> CreatedResponse:
    payment_id = await session.add_payment(payload)
    return CreatedResponse(id=payment_id)


@router.patch(
    "/{payment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def update_payment(
    session: ReadySession, payment_id: PaymentId, payload: PaymentPatch
) -> None:
    await session.update_payment(payment_id, payload)


@router.delete(
    "/{payment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def delete_payment(session: ReadySession, payment_id: PaymentId) -> None:
    await session.delete_payment(payment_id)
