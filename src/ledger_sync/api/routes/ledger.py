"""Ledger state and settings endpoints."""

from typing import Any

from fastapi import APIRouter, Body

from ledger_sync.api.dependencies import ReadySession, Session
from ledger_sync.api.schemas import ErrorResponse, LedgerResponse

router = APIRouter(tags=["ledger"])


@router.get("/ledger", response_model=LedgerResponse)
async def get_ledger(session: Session) -> LedgerResponse:
    """Full consumer view of the projection, including status flags."""
    return LedgerResponse.from_session(session)


@router.get("/settings")
async def get_settings(session: Session) -> dict[str, Any]:
    return session.settings.model_dump(mode="json")


@router.patch(
    "/settings",
    responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def update_settings(
    session: ReadySession,
    partial: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    """Shallow-merge ``partial`` into the settings."""
    await session.update_settings(partial)
    return session.settings.model_dump(mode="json")
