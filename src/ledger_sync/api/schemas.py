"""Pydantic schemas for API request/response models."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ledger_sync.aggregation import EmployeeTotals, MonthlySummary, PaymentGroup, PortfolioTotals
from ledger_sync.records import PaymentDetails, Record
from ledger_sync.session import LedgerSession


def document_of(record: Record) -> dict[str, Any]:
    """A record in its store document shape (camelCase, JSON-safe)."""
    return record.model_dump(mode="json", by_alias=True)


class ErrorResponse(BaseModel):
    """Error payload."""

    detail: str
    code: str


# ============================================================================
# Identity
# ============================================================================


class IdentityRequest(BaseModel):
    """Sign in as ``uid``."""

    uid: str = Field(min_length=1)
    email: str | None = None


class IdentityResponse(BaseModel):
    uid: str | None = None
    email: str | None = None
    subscription_status: str


# ============================================================================
# Ledger state
# ============================================================================


class LedgerResponse(BaseModel):
    """Consumer view of the current projection."""

    employees: list[dict[str, Any]]
    work_days: list[dict[str, Any]]
    payments: list[dict[str, Any]]
    settings: dict[str, Any]
    loading: bool
    syncing: bool
    error: str | None = None
    is_initialized: bool
    subscription_status: str

    @classmethod
    def from_session(cls, session: LedgerSession) -> "LedgerResponse":
        return cls(
            employees=[document_of(e) for e in session.employees],
            work_days=[document_of(d) for d in session.work_days],
            payments=[document_of(p) for p in session.payments],
            settings=session.settings.model_dump(mode="json"),
            loading=session.loading,
            syncing=session.syncing,
            error=session.error,
            is_initialized=session.is_initialized,
            subscription_status=session.subscription_status.value,
        )


class CreatedResponse(BaseModel):
    id: str


class MarkPaidBatchRequest(BaseModel):
    """Mark several work days paid with the same payment details."""

    work_day_ids: list[str] = Field(min_length=1)
    details: PaymentDetails


class MarkPaidBatchResponse(BaseModel):
    marked: int


# ============================================================================
# Reports
# ============================================================================


class EmployeeTotalsResponse(BaseModel):
    """Owed / paid / outstanding for one employee."""

    employee_id: str
    employee_name: str
    total_owed: Decimal
    total_paid: Decimal
    total_paid_from_work_days: Decimal
    total_paid_from_legacy_payments: Decimal
    outstanding: Decimal
    status: str
    paid_ratio: Decimal

    @classmethod
    def from_totals(cls, totals: EmployeeTotals, name: str) -> "EmployeeTotalsResponse":
        return cls(
            employee_id=totals.employee_id or "",
            employee_name=name,
            total_owed=totals.total_owed,
            total_paid=totals.total_paid,
            total_paid_from_work_days=totals.total_paid_from_work_days,
            total_paid_from_legacy_payments=totals.total_paid_from_legacy_payments,
            outstanding=totals.outstanding,
            status=totals.status.value,
            paid_ratio=totals.paid_ratio,
        )


class PortfolioResponse(BaseModel):
    """Reports overview across all employees."""

    total_owed: Decimal
    total_paid: Decimal
    outstanding: Decimal
    employee_count: int
    employees_needing_attention: int
    total_work_days: int
    total_payments: int
    payment_methods: dict[str, int]

    @classmethod
    def from_totals(
        cls, totals: PortfolioTotals, payment_methods: dict[str, int]
    ) -> "PortfolioResponse":
        return cls(
            total_owed=totals.total_owed,
            total_paid=totals.total_paid,
            outstanding=totals.outstanding,
            employee_count=totals.employee_count,
            employees_needing_attention=totals.employees_needing_attention,
            total_work_days=totals.total_work_days,
            total_payments=totals.total_payments,
            payment_methods=payment_methods,
        )


class PaymentGroupResponse(BaseModel):
    date: str | None = None
    payment_method: str
    payment_notes: str | None = None
    work_day_ids: list[str]
    payment_ids: list[str]
    total_amount: Decimal
    is_legacy_payment: bool

    @classmethod
    def from_group(cls, group: PaymentGroup) -> "PaymentGroupResponse":
        return cls(
            date=group.date.isoformat() if group.date else None,
            payment_method=group.payment_method,
            payment_notes=group.payment_notes,
            work_day_ids=group.work_day_ids,
            payment_ids=group.payment_ids,
            total_amount=group.total_amount,
            is_legacy_payment=group.is_legacy_payment,
        )


class MonthlySummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    year: int
    month: int
    work_day_count: int
    payment_count: int
    total_owed: Decimal
    total_payments: Decimal

    @classmethod
    def from_summary(cls, summary: MonthlySummary) -> "MonthlySummaryResponse":
        return cls.model_validate(summary)
