"""Identity-scoped ledger session.

A :class:`LedgerSession` wires one store, one syncing indicator, the
subscription manager and the mutation pipeline around a remote backend.
It is constructed explicitly and handed to whatever consumes it; there is
no process-wide instance.

Usage:
    session = LedgerSession(InMemoryLedgerStore(), SyncConfig())
    session.attach(identity_feed)
    await session.wait_initialized()
    await session.add_employee({"name": "Ana", "dailyRate": 100})
    ...
    await session.aclose()
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from decimal import Decimal
from typing import Any, Callable, Iterable

from ledger_sync import aggregation
from ledger_sync.config import SyncConfig
from ledger_sync.identity import Identity, IdentityProvider
from ledger_sync.pipeline import MutationPipeline
from ledger_sync.records import (
    Employee,
    HoursBasedWorkDay,
    LedgerSettings,
    Payment,
    RateBasedWorkDay,
)
from ledger_sync.reducer import LedgerState
from ledger_sync.remote.base import RemoteLedgerStore
from ledger_sync.store import LedgerStore, Listener
from ledger_sync.subscriptions import SubscriptionManager, SubscriptionStatus
from ledger_sync.syncing import SyncIndicator

logger = logging.getLogger(__name__)


class LedgerSession:
    """Consumer-facing ledger: state, mutations and aggregates."""

    def __init__(self, remote: RemoteLedgerStore, config: SyncConfig | None = None) -> None:
        self.config = config or SyncConfig()
        self.remote = remote
        self.store = LedgerStore()
        self.indicator = SyncIndicator(self.store, self.config.min_visible_seconds)
        self.subscriptions = SubscriptionManager(remote, self.store, self.config)
        self.mutations = MutationPipeline(
            remote, self.store, self.indicator, self.subscriptions
        )
        self._detach: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Identity | None:
        return self.subscriptions.identity

    def open(self, identity: Identity) -> None:
        """Start synchronizing ``identity``'s partition."""
        current = self.subscriptions.identity
        if current is not None and current.uid != identity.uid:
            self.indicator.reset()
        self.subscriptions.open(identity)

    def close(self) -> None:
        """Release all subscriptions and reset the projection."""
        self.subscriptions.close()
        self.indicator.reset()

    def on_identity(self, identity: Identity | None) -> None:
        """Identity Provider callback: ``None`` means signed out."""
        if identity is None:
            if self.subscriptions.status != SubscriptionStatus.UNSUBSCRIBED:
                self.close()
        else:
            self.open(identity)

    def attach(self, provider: IdentityProvider) -> Callable[[], None]:
        """Follow ``provider``'s identity changes until detached."""
        self.detach()
        self._detach = provider.on_change(self.on_identity)
        return self.detach

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    async def wait_initialized(self, timeout: float | None = None) -> None:
        """Wait until the current identity's grace period has elapsed."""
        if self.store.state.initialized:
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def listener(state: LedgerState) -> None:
            if state.initialized and not future.done():
                future.set_result(None)

        unsubscribe = self.store.subscribe(listener)
        try:
            await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()

    async def aclose(self) -> None:
        """Detach from the identity provider and close the backend."""
        self.detach()
        self.close()
        await self.subscriptions.wait_released()
        await self.remote.close()
        logger.info("ledger session closed")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Listen to every state change."""
        return self.store.subscribe(listener)

    # ------------------------------------------------------------------
    # Consumer state
    # ------------------------------------------------------------------

    @property
    def state(self) -> LedgerState:
        return self.store.state

    @property
    def employees(self) -> tuple[Employee, ...]:
        return self.store.state.employees

    @property
    def work_days(self) -> tuple[RateBasedWorkDay | HoursBasedWorkDay, ...]:
        return self.store.state.work_days

    @property
    def payments(self) -> tuple[Payment, ...]:
        return self.store.state.payments

    @property
    def settings(self) -> LedgerSettings:
        return self.store.state.settings

    @property
    def loading(self) -> bool:
        return self.store.state.loading

    @property
    def syncing(self) -> bool:
        return self.store.state.syncing

    @property
    def error(self) -> str | None:
        return self.store.state.error

    @property
    def is_initialized(self) -> bool:
        return self.store.state.initialized

    @property
    def is_ready(self) -> bool:
        """True when mutations would be accepted."""
        return self.identity is not None and self.is_initialized

    @property
    def subscription_status(self) -> SubscriptionStatus:
        return self.subscriptions.status

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_employee(self, draft: Any) -> str | None:
        return await self.mutations.add_employee(draft)

    async def update_employee(self, employee_id: str, patch: Any) -> None:
        await self.mutations.update_employee(employee_id, patch)

    async def delete_employee(self, employee_id: str) -> None:
        await self.mutations.delete_employee(employee_id)

    async def add_work_day(self, draft: Any) -> str | None:
        return await self.mutations.add_work_day(draft)

    async def update_work_day(self, work_day_id: str, patch: Any) -> None:
        await self.mutations.update_work_day(work_day_id, patch)

    async def delete_work_day(self, work_day_id: str) -> None:
        await self.mutations.delete_work_day(work_day_id)

    async def mark_work_day_as_paid(self, work_day_id: str, details: Any) -> None:
        await self.mutations.mark_work_day_as_paid(work_day_id, details)

    async def unmark_work_day_as_paid(self, work_day_id: str) -> None:
        await self.mutations.unmark_work_day_as_paid(work_day_id)

    async def mark_multiple_work_days_as_paid(
        self, work_day_ids: Iterable[str], details: Any
    ) -> int | None:
        return await self.mutations.mark_multiple_work_days_as_paid(work_day_ids, details)

    async def add_payment(self, draft: Any) -> str | None:
        return await self.mutations.add_payment(draft)

    async def update_payment(self, payment_id: str, patch: Any) -> None:
        await self.mutations.update_payment(payment_id, patch)

    async def delete_payment(self, payment_id: str) -> None:
        await self.mutations.delete_payment(payment_id)

    async def update_settings(self, partial: dict[str, Any]) -> None:
        await self.mutations.update_settings(partial)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def get_employee_name(self, employee_id: str | None) -> str:
        return aggregation.employee_name(self.state, employee_id)

    def get_employee_work_days(
        self, employee_id: str
    ) -> list[RateBasedWorkDay | HoursBasedWorkDay]:
        return aggregation.employee_work_days(self.state, employee_id)

    def get_employee_payments(self, employee_id: str) -> list[Payment]:
        return aggregation.employee_payments(self.state, employee_id)

    def calculate_owed_amount(self, work_day: RateBasedWorkDay | HoursBasedWorkDay) -> Decimal:
        employee = aggregation.find_employee(self.state, work_day.employee_id)
        return aggregation.owed_amount(work_day, employee)

    def calculate_employee_totals(self, employee_id: str | None) -> aggregation.EmployeeTotals:
        return aggregation.calculate_employee_totals(self.state, employee_id)

    def calculate_total_owed(self, employee_id: str | None) -> Decimal:
        return self.calculate_employee_totals(employee_id).total_owed

    def calculate_total_paid(self, employee_id: str | None) -> Decimal:
        return self.calculate_employee_totals(employee_id).total_paid

    def calculate_portfolio_totals(self) -> aggregation.PortfolioTotals:
        return aggregation.calculate_portfolio_totals(self.state)

    def payment_history(self, employee_id: str) -> list[aggregation.PaymentGroup]:
        return aggregation.payment_history(self.state, employee_id)

    def monthly_summary(self, year: int, month: int) -> aggregation.MonthlySummary:
        return aggregation.monthly_summary(self.state, year, month)

    def current_month_summary(self) -> aggregation.MonthlySummary:
        today = datetime.date.today()
        return self.monthly_summary(today.year, today.month)

    def payment_method_breakdown(self) -> dict[str, int]:
        return aggregation.payment_method_breakdown(self.state.payments)
