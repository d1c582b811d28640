"""Financial aggregates over the ledger projection.

Every function here is pure: it reads a :class:`LedgerState` and returns
fresh values. Nothing computed here is ever written back to the store.

Owed amount rule (both WorkDay schema variants):
    rate-based   -> the work day's own dailyRate
    hours-based  -> hours * employee.dailyRate (unknown employee: rate 0)

Paid amount of a paid work day is its frozen ``paidAmount`` when present,
otherwise the owed amount. Standalone legacy payments always count toward
the total paid, independent of work day state.
"""

from __future__ import annotations

import datetime
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable

from ledger_sync.reducer import LedgerState
from ledger_sync.records import (
    ZERO,
    Employee,
    HoursBasedWorkDay,
    Payment,
    RateBasedWorkDay,
)

UNKNOWN_EMPLOYEE = "Unknown"


class OutstandingStatus(str, Enum):
    """How an outstanding balance should be presented."""

    OWED = "owed"
    SETTLED = "settled"
    OVERPAID = "overpaid"


def outstanding_status(outstanding: Decimal) -> OutstandingStatus:
    if outstanding > 0:
        return OutstandingStatus.OWED
    if outstanding < 0:
        return OutstandingStatus.OVERPAID
    return OutstandingStatus.SETTLED


# ============================================================================
# Lookups
# ============================================================================


def find_employee(state: LedgerState, employee_id: str | None) -> Employee | None:
    return next((e for e in state.employees if e.id == employee_id), None)


def find_work_day(
    state: LedgerState, work_day_id: str
) -> RateBasedWorkDay | HoursBasedWorkDay | None:
    return next((d for d in state.work_days if d.id == work_day_id), None)


def employee_name(state: LedgerState, employee_id: str | None) -> str:
    """Display name for an employee id; dangling references read "Unknown"."""
    employee = find_employee(state, employee_id)
    return employee.name if employee is not None and employee.name else UNKNOWN_EMPLOYEE


def employee_work_days(
    state: LedgerState, employee_id: str | None
) -> list[RateBasedWorkDay | HoursBasedWorkDay]:
    return [d for d in state.work_days if d.employee_id == employee_id]


def employee_payments(state: LedgerState, employee_id: str | None) -> list[Payment]:
    return [p for p in state.payments if p.employee_id == employee_id]


# ============================================================================
# Per-record amounts
# ============================================================================


def owed_amount(
    work_day: RateBasedWorkDay | HoursBasedWorkDay, employee: Employee | None
) -> Decimal:
    """Amount a work day entitles its employee to."""
    if isinstance(work_day, RateBasedWorkDay):
        return work_day.daily_rate
    if isinstance(work_day, HoursBasedWorkDay):
        rate = employee.daily_rate if employee is not None else ZERO
        return work_day.hours * rate
    raise TypeError(f"Unsupported work day variant: {type(work_day).__name__}")


def realized_paid_amount(
    work_day: RateBasedWorkDay | HoursBasedWorkDay, employee: Employee | None
) -> Decimal:
    """Amount actually paid for a work day; zero while unpaid."""
    if not work_day.is_paid:
        return ZERO
    if work_day.paid_amount is not None:
        return work_day.paid_amount
    return owed_amount(work_day, employee)


# ============================================================================
# Totals
# ============================================================================


@dataclass(frozen=True)
class EmployeeTotals:
    """Owed / paid / outstanding for one employee."""

    employee_id: str | None
    total_owed: Decimal = ZERO
    total_paid_from_work_days: Decimal = ZERO
    total_paid_from_legacy_payments: Decimal = ZERO

    @property
    def total_paid(self) -> Decimal:
        return self.total_paid_from_work_days + self.total_paid_from_legacy_payments

    @property
    def outstanding(self) -> Decimal:
        """Owed minus paid; negative means overpaid."""
        return self.total_owed - self.total_paid

    @property
    def status(self) -> OutstandingStatus:
        return outstanding_status(self.outstanding)

    @property
    def paid_ratio(self) -> Decimal:
        """Fraction of the owed total already paid (0 when nothing is owed)."""
        if self.total_owed <= 0:
            return ZERO
        return self.total_paid / self.total_owed


def calculate_employee_totals(state: LedgerState, employee_id: str | None) -> EmployeeTotals:
    """Totals for one employee.

    Safe for ids that no longer exist: hours-based work days then price at
    rate 0, while rate-based work days and payments still count.
    """
    employee = find_employee(state, employee_id)
    work_days = employee_work_days(state, employee_id)

    return EmployeeTotals(
        employee_id=employee_id,
        total_owed=sum((owed_amount(d, employee) for d in work_days), ZERO),
        total_paid_from_work_days=sum(
            (realized_paid_amount(d, employee) for d in work_days), ZERO
        ),
        total_paid_from_legacy_payments=sum(
            (p.amount for p in employee_payments(state, employee_id)), ZERO
        ),
    )


@dataclass(frozen=True)
class PortfolioTotals:
    """Totals accumulated over every current employee."""

    total_owed: Decimal = ZERO
    total_paid: Decimal = ZERO
    employee_count: int = 0
    employees_needing_attention: int = 0
    total_work_days: int = 0
    total_payments: int = 0

    @property
    def outstanding(self) -> Decimal:
        return self.total_owed - self.total_paid


def calculate_portfolio_totals(state: LedgerState) -> PortfolioTotals:
    """Sum per-employee totals over all employees in the projection."""
    per_employee = [calculate_employee_totals(state, e.id) for e in state.employees]

    return PortfolioTotals(
        total_owed=sum((t.total_owed for t in per_employee), ZERO),
        total_paid=sum((t.total_paid for t in per_employee), ZERO),
        employee_count=len(per_employee),
        employees_needing_attention=sum(1 for t in per_employee if t.outstanding > 0),
        total_work_days=len(state.work_days),
        total_payments=len(state.payments),
    )


# ============================================================================
# Reports
# ============================================================================


@dataclass
class PaymentGroup:
    """Payments made on one date with one method."""

    date: datetime.date | None
    payment_method: str
    payment_notes: str | None = None
    work_day_ids: list[str] = field(default_factory=list)
    payment_ids: list[str] = field(default_factory=list)
    total_amount: Decimal = ZERO

    @property
    def is_legacy_payment(self) -> bool:
        return bool(self.payment_ids)


def payment_history(state: LedgerState, employee_id: str) -> list[PaymentGroup]:
    """Payment history for an employee, newest first.

    Paid work days are grouped by (paid date, payment method). Each legacy
    payment is its own entry.
    """
    employee = find_employee(state, employee_id)
    groups: dict[tuple[datetime.date, str], PaymentGroup] = {}

    for day in employee_work_days(state, employee_id):
        if not day.is_paid or day.paid_date is None:
            continue
        method = day.payment_method or "Unknown"
        key = (day.paid_date, method)
        group = groups.get(key)
        if group is None:
            group = groups[key] = PaymentGroup(
                date=day.paid_date,
                payment_method=method,
                payment_notes=day.payment_notes,
            )
        group.work_day_ids.append(day.id)
        group.total_amount += realized_paid_amount(day, employee)

    entries = list(groups.values())
    for payment in employee_payments(state, employee_id):
        entries.append(
            PaymentGroup(
                date=payment.date,
                payment_method=payment.payment_method or "Other Payment",
                payment_notes=payment.notes,
                payment_ids=[payment.id],
                total_amount=payment.amount,
            )
        )

    return sorted(entries, key=lambda g: g.date or datetime.date.min, reverse=True)


@dataclass(frozen=True)
class MonthlySummary:
    year: int
    month: int
    work_day_count: int
    payment_count: int
    total_owed: Decimal
    total_payments: Decimal


def _in_month(value: datetime.date | None, year: int, month: int) -> bool:
    return value is not None and value.year == year and value.month == month


def monthly_summary(state: LedgerState, year: int, month: int) -> MonthlySummary:
    """Work recorded and legacy payments made in one calendar month."""
    days = [d for d in state.work_days if _in_month(d.date, year, month)]
    payments = [p for p in state.payments if _in_month(p.date, year, month)]

    return MonthlySummary(
        year=year,
        month=month,
        work_day_count=len(days),
        payment_count=len(payments),
        total_owed=sum(
            (owed_amount(d, find_employee(state, d.employee_id)) for d in days), ZERO
        ),
        total_payments=sum((p.amount for p in payments), ZERO),
    )


def payment_method_breakdown(payments: Iterable[Payment]) -> dict[str, int]:
    """Number of legacy payments per payment method."""
    return dict(Counter(p.payment_method or "Other Payment" for p in payments))
