"""Pytest fixtures for ledger sync tests."""

from __future__ import annotations

import asyncio
import datetime
from decimal import Decimal
from typing import Any, AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio

from ledger_sync.config import SyncConfig
from ledger_sync.identity import Identity
from ledger_sync.records import parse_employee, parse_payment, parse_work_day
from ledger_sync.reducer import (
    LedgerState,
    reduce,
    set_employees,
    set_payments,
    set_work_days,
)
from ledger_sync.remote import InMemoryLedgerStore, LedgerPaths
from ledger_sync.session import LedgerSession

FAST = SyncConfig(min_visible_seconds=0.05, init_grace_seconds=0.02)

ALICE = Identity(uid="alice", email="alice@example.com")
BOB = Identity(uid="bob", email="bob@example.com")

WaitFor = Callable[..., Awaitable[None]]


async def _wait_for(
    predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005
) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_for() -> WaitFor:
    """Poll a predicate on the event loop until it holds."""
    return _wait_for


def stamp(minutes: int) -> datetime.datetime:
    """A creation time ``minutes`` after a fixed origin."""
    origin = datetime.datetime(2024, 3, 1, 8, 0, tzinfo=datetime.timezone.utc)
    return origin + datetime.timedelta(minutes=minutes)


def build_state(
    employees: list[dict[str, Any]] = (),
    work_days: list[dict[str, Any]] = (),
    payments: list[dict[str, Any]] = (),
) -> LedgerState:
    """Project raw documents into a LedgerState through the reducer."""
    state = LedgerState()
    state = reduce(state, set_employees([parse_employee(d) for d in employees]))
    state = reduce(state, set_work_days([parse_work_day(d) for d in work_days]))
    state = reduce(state, set_payments([parse_payment(d) for d in payments]))
    return state


@pytest.fixture
def sample_state() -> LedgerState:
    """Employee e1 (rate 100) with one rate-based work day and one payment."""
    return build_state(
        employees=[{"id": "e1", "name": "Ana", "dailyRate": 100, "createdAt": stamp(0)}],
        work_days=[
            {
                "id": "w1",
                "employeeId": "e1",
                "date": "2024-03-04",
                "dailyRate": 80,
                "isPaid": False,
            }
        ],
        payments=[
            {
                "id": "p1",
                "employeeId": "e1",
                "date": "2024-03-05",
                "amount": 20,
                "paymentMethod": "Cash",
            }
        ],
    )


@pytest.fixture
def remote() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def alice_paths() -> LedgerPaths:
    return LedgerPaths(ALICE.uid)


@pytest_asyncio.fixture
async def session(remote: InMemoryLedgerStore) -> AsyncGenerator[LedgerSession, None]:
    """A session that is not signed in yet."""
    session = LedgerSession(remote, FAST)
    yield session
    await session.aclose()


@pytest_asyncio.fixture
async def ready_session(session: LedgerSession) -> LedgerSession:
    """A session signed in as Alice and past its grace period."""
    session.open(ALICE)
    await session.wait_initialized(timeout=2.0)
    return session


def money(value: Any) -> Decimal:
    return Decimal(str(value))
