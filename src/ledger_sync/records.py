"""Record models for ledger documents.

Read-side models mirror the documents held by the remote store: camelCase
field names, unknown fields preserved, tolerant coercion of the loosely
typed values older clients wrote. Write-side models (drafts, patches and
payment details) validate caller input before it is turned into store
fields with :func:`to_document`.

WorkDay documents come in two schema variants:

- rate-based: carries its own ``dailyRate``; this is the current model.
- hours-based: legacy, carries ``hours`` and is priced at read time
  against the owning employee's ``dailyRate``.

``WorkDay`` is a tagged union over both; the tag is derived from the
presence of a non-null ``dailyRate``.
"""

from __future__ import annotations

import datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, ClassVar, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    model_validator,
)
from pydantic.alias_generators import to_camel

ZERO = Decimal("0")
DEFAULT_SETTINGS: dict[str, Any] = {"currency": "USD", "theme": "light"}


def _coerce_money(value: Any) -> Any:
    if value is None or value == "":
        return ZERO
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def _coerce_optional_money(value: Any) -> Any:
    if value is None or value == "":
        return None
    return _coerce_money(value)


def _coerce_flag(value: Any) -> Any:
    return False if value is None else value


def _coerce_calendar_date(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10:
        try:
            return datetime.datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            return value
    return value


def parse_timestamp(value: Any) -> datetime.datetime | None:
    """Normalize a creation timestamp; unparseable values become None."""
    if isinstance(value, datetime.datetime):
        stamp = value
    elif isinstance(value, dict) and "seconds" in value:
        # Serialized Firestore Timestamp
        try:
            seconds = value["seconds"] + (value.get("nanoseconds") or 0) / 1e9
            stamp = datetime.datetime.fromtimestamp(seconds, tz=datetime.timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds, as written by Date.now()
        try:
            stamp = datetime.datetime.fromtimestamp(value / 1000, tz=datetime.timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            stamp = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=datetime.timezone.utc)
    return stamp


Money = Annotated[Decimal, BeforeValidator(_coerce_money)]
OptionalMoney = Annotated[Union[Decimal, None], BeforeValidator(_coerce_optional_money)]
Flag = Annotated[bool, BeforeValidator(_coerce_flag)]
CalendarDate = Annotated[Union[datetime.date, None], BeforeValidator(_coerce_calendar_date)]
Timestamp = Annotated[Union[datetime.datetime, None], BeforeValidator(parse_timestamp)]


# ============================================================================
# Read-side records
# ============================================================================


class Record(BaseModel):
    """Base for records projected from store documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
    )

    id: str
    created_at: Timestamp = None


class Employee(Record):
    """A person owed money for recorded work days."""

    name: str = ""
    daily_rate: Money = ZERO


class _WorkDayRecord(Record):
    employee_id: str = ""
    date: CalendarDate = None
    notes: str | None = None

    # Embedded payment record
    is_paid: Flag = False
    paid_date: CalendarDate = None
    payment_method: str | None = None
    payment_notes: str | None = None
    paid_amount: OptionalMoney = None


class RateBasedWorkDay(_WorkDayRecord):
    """Work day that records its own amount owed."""

    daily_rate: Money


class HoursBasedWorkDay(_WorkDayRecord):
    """Legacy work day priced as hours times the employee's rate."""

    hours: Money = ZERO


def _work_day_variant(value: Any) -> str:
    if isinstance(value, dict):
        rate = value.get("dailyRate", value.get("daily_rate"))
    else:
        rate = getattr(value, "daily_rate", None)
    return "rate" if rate is not None and rate != "" else "hours"


WorkDay = Annotated[
    Union[
        Annotated[RateBasedWorkDay, Tag("rate")],
        Annotated[HoursBasedWorkDay, Tag("hours")],
    ],
    Discriminator(_work_day_variant),
]


class Payment(Record):
    """Standalone legacy payment not tied to a work day."""

    employee_id: str = ""
    date: CalendarDate = None
    amount: Money = ZERO
    payment_method: str | None = None
    notes: str | None = None


class LedgerSettings(BaseModel):
    """Per-identity settings document; unknown keys are kept."""

    model_config = ConfigDict(extra="allow", frozen=True)

    currency: str = DEFAULT_SETTINGS["currency"]
    theme: str = DEFAULT_SETTINGS["theme"]

    def merged(self, partial: dict[str, Any]) -> LedgerSettings:
        """Return new settings with ``partial`` shallow-merged over these."""
        return LedgerSettings.model_validate({**self.model_dump(), **partial})


_work_day_adapter: TypeAdapter[Any] = TypeAdapter(WorkDay)


def parse_employee(document: dict[str, Any]) -> Employee:
    return Employee.model_validate(document)


def parse_work_day(document: dict[str, Any]) -> RateBasedWorkDay | HoursBasedWorkDay:
    return _work_day_adapter.validate_python(document)


def parse_payment(document: dict[str, Any]) -> Payment:
    return Payment.model_validate(document)


def parse_settings(document: dict[str, Any] | None) -> LedgerSettings:
    return LedgerSettings.model_validate(document or {})


# ============================================================================
# Write-side models
# ============================================================================


class _Input(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    # Patches only send the fields the caller set
    partial: ClassVar[bool] = False


class EmployeeDraft(_Input):
    name: str = Field(min_length=1)
    daily_rate: Decimal = Field(ge=0)


class EmployeePatch(_Input):
    partial: ClassVar[bool] = True

    name: str | None = Field(default=None, min_length=1)
    daily_rate: Decimal | None = Field(default=None, ge=0)


class WorkDayDraft(_Input):
    """New work day. New entries are rate-based; ``hours`` is kept for imports."""

    employee_id: str = Field(min_length=1)
    date: datetime.date
    daily_rate: Decimal | None = Field(default=None, ge=0)
    hours: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None
    is_paid: bool = False

    @model_validator(mode="after")
    def _require_amount_source(self) -> WorkDayDraft:
        if self.daily_rate is None and self.hours is None:
            raise ValueError("a work day needs either daily_rate or hours")
        return self


class WorkDayPatch(_Input):
    partial: ClassVar[bool] = True

    employee_id: str | None = Field(default=None, min_length=1)
    date: datetime.date | None = None
    daily_rate: Decimal | None = Field(default=None, ge=0)
    hours: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None


class PaymentDraft(_Input):
    employee_id: str = Field(min_length=1)
    date: datetime.date
    amount: Decimal = Field(ge=0)
    payment_method: str | None = None
    notes: str | None = None


class PaymentPatch(_Input):
    partial: ClassVar[bool] = True

    employee_id: str | None = Field(default=None, min_length=1)
    date: datetime.date | None = None
    amount: Decimal | None = Field(default=None, ge=0)
    payment_method: str | None = None
    notes: str | None = None


class PaymentDetails(_Input):
    """How and when a work day was paid.

    ``paid_amount`` overrides the computed owed amount when given.
    """

    paid_date: datetime.date
    payment_method: str
    payment_notes: str | None = None
    paid_amount: Decimal | None = Field(default=None, ge=0)


def to_store_value(value: Any) -> Any:
    """Convert a Python value into a plain store-compatible value."""
    if isinstance(value, Decimal):
        try:
            return int(value) if value == value.to_integral_value() else float(value)
        except (InvalidOperation, OverflowError):
            return float(value)
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: to_store_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_store_value(v) for v in value]
    return value


def to_document(model: _Input) -> dict[str, Any]:
    """Dump an input model as camelCase store fields.

    Drafts omit fields left as None; patches omit fields the caller never set.
    """
    if model.partial:
        data = model.model_dump(by_alias=True, exclude_unset=True)
    else:
        data = model.model_dump(by_alias=True, exclude_none=True)
    return to_store_value(data)
