"""Employee endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, HTTPException, Path, status

from ledger_sync import aggregation
from ledger_sync.api.dependencies import ReadySession, Session
from ledger_sync.api.schemas import (
    CreatedResponse,
    EmployeeTotalsResponse,
    ErrorResponse,
    PaymentGroupResponse,
    document_of,
)
from ledger_sync.records import Employee, EmployeeDraft, EmployeePatch

router = APIRouter(prefix="/employees", tags=["employees"])

EmployeeId = Annotated[str, Path(min_length=1)]


def _get_or_404(session: Session, employee_id: str) -> Employee:
    employee = aggregation.find_employee(session.state, employee_id)
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found",
        )
    return employee


# ============================================================================
# Employee CRUD
# ============================================================================


@router.get("")
async def list_employees(session: Session) -> list[dict[str, Any]]:
    """Employees of the current identity, newest first."""
    return [document_of(e) for e in session.employees]


@router.post(
    "",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def create_employee(session: ReadySession, payload: EmployeeDraft) -> CreatedResponse:
    """Create an employee. It shows up in listings once the store echoes it."""
    employee_id = await session.add_employee(payload)
    return CreatedResponse(id=employee_id)


@router.get("/{employee_id}", responses={404: {"model": ErrorResponse}})
async def get_employee(session: Session, employee_id: EmployeeId) -> dict[str, Any]:
    return document_of(_get_or_404(session, employee_id))


@router.patch(
    "/{employee_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def update_employee(
    session: ReadySession, employee_id: EmployeeId, payload: EmployeePatch
) -> None:
    await session.update_employee(employee_id, payload)


@router.delete(
    "/{employee_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def delete_employee(session: ReadySession, employee_id: EmployeeId) -> None:
    """Delete an employee with all of its work days and payments."""
    await session.delete_employee(employee_id)


# ============================================================================
# Per-employee views
# ============================================================================


@router.get("/{employee_id}/work-days")
async def list_employee_work_days(
    session: Session, employee_id: EmployeeId
) -> list[dict[str, Any]]:
    return [document_of(d) for d in session.get_employee_work_days(employee_id)]


@router.get("/{employee_id}/payments")
async def list_employee_payments(
    session: Session, employee_id: EmployeeId
) -> list[dict[str, Any]]:
    return [document_of(p) for p in session.get_employee_payments(employee_id)]


@router.get(
    "/{employee_id}/totals",
    response_model=EmployeeTotalsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_employee_totals(
    session: Session, employee_id: EmployeeId
) -> EmployeeTotalsResponse:
    employee = _get_or_404(session, employee_id)
    return EmployeeTotalsResponse.from_totals(
        session.calculate_employee_totals(employee_id), employee.name
    )


@router.get(
    "/{employee_id}/payment-history",
    response_model=list[PaymentGroupResponse],
    responses={404: {"model": ErrorResponse}},
)
async def get_payment_history(
    session: Session, employee_id: EmployeeId
) -> list[PaymentGroupResponse]:
    _get_or_404(session, employee_id)
    return [PaymentGroupResponse.from_group(g) for g in session.payment_history(employee_id)]
