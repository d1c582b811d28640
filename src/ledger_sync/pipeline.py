"""Mutation pipeline: every write goes to the remote store only.

Domain records are never merged into local state by a mutation. The store
learns about the change when the live subscription delivers its next
snapshot, so completing a mutation and seeing its effect in the projection
are decoupled events. Settings are the single exception: the settings
document is a singleton, so updates are merged locally right away and then
written through.

Shared contract of every operation:
- Without an identity, or before the session is initialized, the call is a
  silent no-op that returns None.
- The syncing indicator is on while the write is in flight.
- A failed remote write sets a kind-specific error message on the store
  and raises WriteError. The error is not recorded when the identity was
  switched while the write was in flight. NotFoundError for ids missing from the local
  projection is raised as is, before any remote call.
- Nothing is retried or rolled back here; the caller decides.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from pydantic import BaseModel, ValidationError

from ledger_sync.aggregation import find_employee, find_work_day, owed_amount
from ledger_sync.errors import DocumentNotFoundError, NotFoundError, PreconditionError, WriteError
from ledger_sync.records import (
    EmployeeDraft,
    EmployeePatch,
    PaymentDetails,
    PaymentDraft,
    PaymentPatch,
    WorkDayDraft,
    WorkDayPatch,
    to_document,
    to_store_value,
)
from ledger_sync.reducer import set_error, update_settings as merge_settings
from ledger_sync.remote.base import (
    CREATED_AT,
    EMPLOYEES,
    PAYMENTS,
    SERVER_TIMESTAMP,
    SETTINGS,
    SETTINGS_DOCUMENT_ID,
    WORK_DAYS,
    LedgerPaths,
    RemoteLedgerStore,
)
from ledger_sync.store import LedgerStore
from ledger_sync.subscriptions import SubscriptionManager
from ledger_sync.syncing import SyncIndicator

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

EMPLOYEE_ID = "employeeId"

UNPAID_FIELDS: dict[str, Any] = {
    "isPaid": False,
    "paidDate": None,
    "paymentMethod": None,
    "paymentNotes": None,
    "paidAmount": None,
}


def _coerce(model: type[M], value: M | dict[str, Any]) -> M:
    return value if isinstance(value, model) else model.model_validate(value)


def mutation(message: str) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
    """Wrap a pipeline operation with the shared mutation contract.

    The wrapped coroutine receives the identity's LedgerPaths as its first
    argument after ``self``.
    """

    def decorator(fn: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(fn)
        async def wrapper(self: MutationPipeline, *args: Any, **kwargs: Any) -> Any:
            try:
                paths = self._require_ready()
                generation = self._subscriptions.generation
            except PreconditionError as exc:
                logger.debug("%s ignored: %s", fn.__name__, exc)
                return None

            with self._indicator.track():
                try:
                    return await fn(self, paths, *args, **kwargs)
                except ValidationError:
                    raise
                except DocumentNotFoundError as exc:
                    self._fail(fn.__name__, message, exc, generation)
                    raise WriteError(message, fn.__name__) from exc
                except NotFoundError as exc:
                    self._fail(fn.__name__, message, exc, generation)
                    raise
                except Exception as exc:
                    self._fail(fn.__name__, message, exc, generation)
                    raise WriteError(message, fn.__name__) from exc

        return wrapper

    return decorator


class MutationPipeline:
    """CRUD and ledger operations against the remote store."""

    def __init__(
        self,
        remote: RemoteLedgerStore,
        store: LedgerStore,
        indicator: SyncIndicator,
        subscriptions: SubscriptionManager,
    ) -> None:
        self._remote = remote
        self._store = store
        self._indicator = indicator
        self._subscriptions = subscriptions

    def _require_ready(self) -> LedgerPaths:
        identity = self._subscriptions.identity
        if identity is None:
            raise PreconditionError("no signed-in identity")
        if not self._store.state.initialized:
            raise PreconditionError("ledger not initialized")
        return LedgerPaths(identity.uid)

    def _fail(self, operation: str, message: str, exc: Exception, generation: int) -> None:
        logger.warning("%s failed: %s", operation, exc)
        if generation != self._subscriptions.generation:
            # Started for an identity that is no longer open
            return
        self._store.dispatch(set_error(message))

    async def _delete_where(self, collection_path: str, field: str, value: Any) -> int:
        documents = await self._remote.query_by_field(collection_path, field, value)
        results = await asyncio.gather(
            *(self._remote.delete(f"{collection_path}/{doc['id']}") for doc in documents),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                raise result
        return len(documents)

    # ------------------------------------------------------------------
    # Employees
    # ------------------------------------------------------------------

    @mutation("Failed to add employee")
    async def add_employee(
        self, paths: LedgerPaths, draft: EmployeeDraft | dict[str, Any]
    ) -> str:
        fields = to_document(_coerce(EmployeeDraft, draft))
        fields[CREATED_AT] = SERVER_TIMESTAMP
        employee_id = await self._remote.create(paths.employees, fields)
        logger.info("employee %s created", employee_id)
        return employee_id

    @mutation("Failed to update employee")
    async def update_employee(
        self, paths: LedgerPaths, employee_id: str, patch: EmployeePatch | dict[str, Any]
    ) -> None:
        fields = to_document(_coerce(EmployeePatch, patch))
        if fields:
            await self._remote.update(paths.document(EMPLOYEES, employee_id), fields)

    @mutation("Failed to delete employee")
    async def delete_employee(self, paths: LedgerPaths, employee_id: str) -> None:
        """Delete an employee together with its work days and payments."""
        await self._remote.delete(paths.document(EMPLOYEES, employee_id))

        results = await asyncio.gather(
            self._delete_where(paths.work_days, EMPLOYEE_ID, employee_id),
            self._delete_where(paths.payments, EMPLOYEE_ID, employee_id),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                raise result
        work_days, payments = results
        logger.info(
            "employee %s deleted with %s work days and %s payments",
            employee_id,
            work_days,
            payments,
        )

    # ------------------------------------------------------------------
    # Work days
    # ------------------------------------------------------------------

    @mutation("Failed to add work day")
    async def add_work_day(
        self, paths: LedgerPaths, draft: WorkDayDraft | dict[str, Any]
    ) -> str:
        fields = to_document(_coerce(WorkDayDraft, draft))
        fields[CREATED_AT] = SERVER_TIMESTAMP
        return await self._remote.create(paths.work_days, fields)

    @mutation("Failed to update work day")
    async def update_work_day(
        self, paths: LedgerPaths, work_day_id: str, patch: WorkDayPatch | dict[str, Any]
    ) -> None:
        fields = to_document(_coerce(WorkDayPatch, patch))
        if fields:
            await self._remote.update(paths.document(WORK_DAYS, work_day_id), fields)

    @mutation("Failed to delete work day")
    async def delete_work_day(self, paths: LedgerPaths, work_day_id: str) -> None:
        await self._remote.delete(paths.document(WORK_DAYS, work_day_id))

    def _paid_fields(self, work_day_id: str, details: PaymentDetails) -> dict[str, Any]:
        state = self._store.state
        work_day = find_work_day(state, work_day_id)
        if work_day is None:
            raise NotFoundError("WorkDay", work_day_id)

        # Frozen at marking time; later rate changes do not move it
        amount = details.paid_amount
        if amount is None:
            amount = owed_amount(work_day, find_employee(state, work_day.employee_id))

        return to_store_value(
            {
                "isPaid": True,
                "paidDate": details.paid_date,
                "paymentMethod": details.payment_method,
                "paymentNotes": details.payment_notes if details.payment_notes is not None else "",
                "paidAmount": amount,
            }
        )

    @mutation("Failed to mark work day as paid")
    async def mark_work_day_as_paid(
        self, paths: LedgerPaths, work_day_id: str, details: PaymentDetails | dict[str, Any]
    ) -> None:
        fields = self._paid_fields(work_day_id, _coerce(PaymentDetails, details))
        await self._remote.update(paths.document(WORK_DAYS, work_day_id), fields)

    @mutation("Failed to unmark work day as paid")
    async def unmark_work_day_as_paid(self, paths: LedgerPaths, work_day_id: str) -> None:
        await self._remote.update(paths.document(WORK_DAYS, work_day_id), dict(UNPAID_FIELDS))

    @mutation("Failed to mark work days as paid")
    async def mark_multiple_work_days_as_paid(
        self,
        paths: LedgerPaths,
        work_day_ids: Iterable[str],
        details: PaymentDetails | dict[str, Any],
    ) -> int:
        """Mark several work days paid at once.

        Best effort: every item is attempted, writes that succeed stay in
        place, and the first failure (in input order) is raised afterwards.
        """
        details = _coerce(PaymentDetails, details)
        ids = list(work_day_ids)

        async def mark_one(work_day_id: str) -> None:
            fields = self._paid_fields(work_day_id, details)
            await self._remote.update(paths.document(WORK_DAYS, work_day_id), fields)

        results = await asyncio.gather(*(mark_one(i) for i in ids), return_exceptions=True)
        failures = [r for r in results if isinstance(r, Exception)]
        if failures:
            logger.warning("%d of %d work days could not be marked paid", len(failures), len(ids))
            raise failures[0]
        return len(ids)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    @mutation("Failed to add payment")
    async def add_payment(
        self, paths: LedgerPaths, draft: PaymentDraft | dict[str, Any]
    ) -> str:
        fields = to_document(_coerce(PaymentDraft, draft))
        fields[CREATED_AT] = SERVER_TIMESTAMP
        return await self._remote.create(paths.payments, fields)

    @mutation("Failed to update payment")
    async def update_payment(
        self, paths: LedgerPaths, payment_id: str, patch: PaymentPatch | dict[str, Any]
    ) -> None:
        fields = to_document(_coerce(PaymentPatch, patch))
        if fields:
            await self._remote.update(paths.document(PAYMENTS, payment_id), fields)

    @mutation("Failed to delete payment")
    async def delete_payment(self, paths: LedgerPaths, payment_id: str) -> None:
        await self._remote.delete(paths.document(PAYMENTS, payment_id))

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @mutation("Failed to update settings")
    async def update_settings(self, paths: LedgerPaths, partial: dict[str, Any]) -> None:
        """Merge ``partial`` into the settings locally, then write it through."""
        partial = {k: v for k, v in partial.items() if k != "id"}
        self._store.dispatch(merge_settings(partial))
        merged = self._store.state.settings.model_dump()

        try:
            await self._remote.update(paths.settings_document, to_store_value(partial))
        except DocumentNotFoundError:
            await self._remote.create(
                paths.collection(SETTINGS),
                to_store_value(merged),
                document_id=SETTINGS_DOCUMENT_ID,
            )
            logger.info("settings document created for %s", paths.uid)
