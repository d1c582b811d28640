"""Report endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query

from ledger_sync.api.dependencies import Session
from ledger_sync.api.schemas import (
    EmployeeTotalsResponse,
    MonthlySummaryResponse,
    PortfolioResponse,
)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/overview", response_model=PortfolioResponse)
async def get_overview(session: Session) -> PortfolioResponse:
    """Totals across all employees plus the payment method breakdown."""
    return PortfolioResponse.from_totals(
        session.calculate_portfolio_totals(), session.payment_method_breakdown()
    )


@router.get("/employees", response_model=list[EmployeeTotalsResponse])
async def get_employee_summaries(session: Session) -> list[EmployeeTotalsResponse]:
    return [
        EmployeeTotalsResponse.from_totals(session.calculate_employee_totals(e.id), e.name)
        for e in session.employees
    ]


@router.get("/monthly", response_model=MonthlySummaryResponse)
async def get_monthly_summary(
    session: Session,
    year: Annotated[int | None, Query(ge=1970, le=9999)] = None,
    month: Annotated[int | None, Query(ge=1, le=12)] = None,
) -> MonthlySummaryResponse:
    """Summary of one month; defaults to the current month."""
    if year is None or month is None:
        summary = session.current_month_summary()
    else:
        summary = session.monthly_summary(year, month)
    return MonthlySummaryResponse.from_summary(summary)
