"""Pure state transitions for the ledger projection."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, TypeVar

from ledger_sync.records import (
    Employee,
    HoursBasedWorkDay,
    LedgerSettings,
    Payment,
    RateBasedWorkDay,
    Record,
)

R = TypeVar("R", bound=Record)

_EARLIEST = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)


class ActionType(str, Enum):
    """Action vocabulary accepted by :func:`reduce`."""

    SET_LOADING = "SET_LOADING"
    SET_SYNCING = "SET_SYNCING"
    SET_ERROR = "SET_ERROR"
    SET_INITIALIZED = "SET_INITIALIZED"
    SET_EMPLOYEES = "SET_EMPLOYEES"
    SET_WORK_DAYS = "SET_WORK_DAYS"
    SET_PAYMENTS = "SET_PAYMENTS"
    UPDATE_SETTINGS = "UPDATE_SETTINGS"
    RESET_STATE = "RESET_STATE"


@dataclass(frozen=True)
class Action:
    """A single state transition request."""

    type: ActionType
    payload: Any = None


@dataclass(frozen=True)
class LedgerState:
    """Deduplicated projection of one identity's ledger."""

    employees: tuple[Employee, ...] = ()
    work_days: tuple[RateBasedWorkDay | HoursBasedWorkDay, ...] = ()
    payments: tuple[Payment, ...] = ()
    settings: LedgerSettings = field(default_factory=LedgerSettings)
    loading: bool = False
    syncing: bool = False
    error: str | None = None
    initialized: bool = False


def set_loading(value: bool) -> Action:
    return Action(ActionType.SET_LOADING, value)


def set_syncing(value: bool) -> Action:
    return Action(ActionType.SET_SYNCING, value)


def set_error(message: str | None) -> Action:
    return Action(ActionType.SET_ERROR, message)


def set_initialized(value: bool) -> Action:
    return Action(ActionType.SET_INITIALIZED, value)


def set_employees(records: Iterable[Employee]) -> Action:
    return Action(ActionType.SET_EMPLOYEES, tuple(records))


def set_work_days(records: Iterable[RateBasedWorkDay | HoursBasedWorkDay]) -> Action:
    return Action(ActionType.SET_WORK_DAYS, tuple(records))


def set_payments(records: Iterable[Payment]) -> Action:
    return Action(ActionType.SET_PAYMENTS, tuple(records))


def update_settings(partial: dict[str, Any]) -> Action:
    return Action(ActionType.UPDATE_SETTINGS, dict(partial))


def reset_state() -> Action:
    return Action(ActionType.RESET_STATE)


def dedupe_by_id(records: Iterable[R]) -> tuple[R, ...]:
    """Drop duplicate ids; the last record seen for an id wins.

    Each id keeps the position of its first occurrence.
    """
    by_id: dict[str, R] = {}
    for record in records:
        by_id[record.id] = record
    return tuple(by_id.values())


def newest_first(records: Iterable[R]) -> tuple[R, ...]:
    """Sort by creation time descending; missing timestamps sort last."""
    return tuple(
        sorted(records, key=lambda r: r.created_at or _EARLIEST, reverse=True)
    )


def reduce(state: LedgerState, action: Action) -> LedgerState:
    """Apply one action to the state, returning the new state."""
    kind = action.type
    payload = action.payload

    if kind == ActionType.SET_LOADING:
        return replace(state, loading=bool(payload))
    if kind == ActionType.SET_SYNCING:
        return replace(state, syncing=bool(payload))
    if kind == ActionType.SET_ERROR:
        return replace(state, error=payload)
    if kind == ActionType.SET_INITIALIZED:
        return replace(state, initialized=bool(payload))
    if kind == ActionType.SET_EMPLOYEES:
        return replace(state, employees=newest_first(dedupe_by_id(payload)))
    if kind == ActionType.SET_WORK_DAYS:
        return replace(state, work_days=dedupe_by_id(payload))
    if kind == ActionType.SET_PAYMENTS:
        return replace(state, payments=dedupe_by_id(payload))
    if kind == ActionType.UPDATE_SETTINGS:
        return replace(state, settings=state.settings.merged(payload or {}))
    if kind == ActionType.RESET_STATE:
        # Settings survive a logout/login cycle within the process
        return LedgerState(settings=state.settings)

    raise ValueError(f"Unknown action type: {kind!r}")
