"""Tests for the mutation pipeline through a ledger session."""

from __future__ import annotations

import asyncio
import datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from ledger_sync.errors import DocumentNotFoundError, NotFoundError, WriteError
from ledger_sync.records import PaymentDetails
from ledger_sync.remote.base import SETTINGS_DOCUMENT_ID

from conftest import ALICE, BOB

PAID_ON = datetime.date(2024, 3, 10)


async def add_employee(session, wait_for, name="Ana", rate=100) -> str:
    employee_id = await session.add_employee({"name": name, "dailyRate": rate})
    await wait_for(lambda: any(e.id == employee_id for e in session.employees))
    return employee_id


async def add_work_day(session, wait_for, **fields) -> str:
    work_day_id = await session.add_work_day({"date": "2024-03-04", **fields})
    await wait_for(lambda: any(d.id == work_day_id for d in session.work_days))
    return work_day_id


class TestPreconditions:
    """Mutations before sign-in or initialization are ignored."""

    @pytest.mark.asyncio
    async def test_without_identity_is_noop(self, session, remote):
        result = await session.add_employee({"name": "Ana", "dailyRate": 1})

        assert result is None
        assert remote.writes == []
        assert session.error is None
        assert session.syncing is False

    @pytest.mark.asyncio
    async def test_before_initialized_is_noop(self, session, remote):
        session.open(ALICE)

        result = await session.add_payment(
            {"employeeId": "e1", "date": "2024-03-04", "amount": 5}
        )

        assert result is None
        assert remote.writes == []


class TestEmployees:
    """Test employee mutations."""

    @pytest.mark.asyncio
    async def test_add_is_echoed_by_subscription(self, ready_session, remote, alice_paths, wait_for):
        employee_id = await ready_session.add_employee({"name": "Ana", "dailyRate": 100})

        write = remote.writes[-1]
        assert write.operation == "create"
        assert write.path == f"{alice_paths.employees}/{employee_id}"
        assert write.fields["name"] == "Ana"
        assert isinstance(write.fields["createdAt"], datetime.datetime)

        await wait_for(lambda: len(ready_session.employees) == 1)
        assert ready_session.employees[0].daily_rate == Decimal("100")

    @pytest.mark.asyncio
    async def test_mutation_does_not_touch_local_state(self, ready_session, remote):
        """Only the subscription delivers records into the store."""
        before = ready_session.employees

        await ready_session.add_employee({"name": "Ana", "dailyRate": 100})

        assert ready_session.employees == before

    @pytest.mark.asyncio
    async def test_update(self, ready_session, wait_for):
        employee_id = await add_employee(ready_session, wait_for)

        await ready_session.update_employee(employee_id, {"dailyRate": 120})

        await wait_for(lambda: ready_session.employees[0].daily_rate == Decimal("120"))
        assert ready_session.employees[0].name == "Ana"

    @pytest.mark.asyncio
    async def test_invalid_input_is_rejected_without_error_flag(self, ready_session, remote):
        with pytest.raises(ValidationError):
            await ready_session.add_employee({"name": "", "dailyRate": 10})

        assert ready_session.error is None
        assert remote.writes == []

    @pytest.mark.asyncio
    async def test_delete_cascades(self, ready_session, remote, alice_paths, wait_for):
        ana = await add_employee(ready_session, wait_for, "Ana")
        ben = await add_employee(ready_session, wait_for, "Ben")
        await add_work_day(ready_session, wait_for, employeeId=ana, dailyRate=80)
        await add_work_day(ready_session, wait_for, employeeId=ana, hours=2)
        await add_work_day(ready_session, wait_for, employeeId=ben, dailyRate=70)
        await ready_session.add_payment({"employeeId": ana, "date": "2024-03-05", "amount": 20})

        await ready_session.delete_employee(ana)

        assert [d for d in remote.documents(alice_paths.work_days) if d["employeeId"] == ana] == []
        assert [p for p in remote.documents(alice_paths.payments) if p["employeeId"] == ana] == []
        await wait_for(
            lambda: [e.id for e in ready_session.employees] == [ben]
            and len(ready_session.work_days) == 1
            and ready_session.payments == ()
        )
        assert ready_session.get_employee_work_days(ana) == []


class TestWriteErrors:
    """Failed remote writes surface as WriteError plus an error flag."""

    @pytest.mark.asyncio
    async def test_add_failure(self, ready_session, remote):
        remote.fail_next_write(RuntimeError("unavailable"))

        with pytest.raises(WriteError) as exc_info:
            await ready_session.add_employee({"name": "Ana", "dailyRate": 100})

        assert exc_info.value.message == "Failed to add employee"
        assert exc_info.value.operation == "add_employee"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert ready_session.error == "Failed to add employee"

    @pytest.mark.asyncio
    async def test_update_missing_document(self, ready_session):
        with pytest.raises(WriteError) as exc_info:
            await ready_session.update_payment("nope", {"amount": 5})

        assert isinstance(exc_info.value.__cause__, DocumentNotFoundError)
        assert ready_session.error == "Failed to update payment"

    @pytest.mark.asyncio
    async def test_syncing_turns_off_after_failure(self, ready_session, remote, wait_for):
        remote.fail_next_write()

        with pytest.raises(WriteError):
            await ready_session.delete_work_day("w1")

        assert ready_session.syncing is True
        await wait_for(lambda: ready_session.syncing is False)

    @pytest.mark.asyncio
    async def test_failure_after_identity_switch_is_not_recorded(self, ready_session, remote):
        remote.latency = 0.05
        remote.fail_next_write()

        pending = asyncio.ensure_future(ready_session.add_employee({"name": "Ana", "dailyRate": 100}))
        await asyncio.sleep(0)
        ready_session.open(BOB)

        with pytest.raises(WriteError):
            await pending

        assert ready_session.identity == BOB
        assert ready_session.error is None
        await ready_session.wait_initialized(timeout=1)
        assert ready_session.error is None


class TestMarkPaid:
    """Test marking work days paid."""

    @pytest.mark.asyncio
    async def test_hours_based_paid_amount_is_frozen(self, ready_session, remote, wait_for):
        employee_id = await add_employee(ready_session, wait_for, rate=50)
        work_day_id = await add_work_day(ready_session, wait_for, employeeId=employee_id, hours=4)

        await ready_session.mark_work_day_as_paid(
            work_day_id, PaymentDetails(paid_date=PAID_ON, payment_method="Cash")
        )

        assert remote.writes[-1].fields == {
            "isPaid": True,
            "paidDate": "2024-03-10",
            "paymentMethod": "Cash",
            "paymentNotes": "",
            "paidAmount": 200,
        }
        await wait_for(lambda: ready_session.work_days[0].is_paid)

        await ready_session.update_employee(employee_id, {"dailyRate": 90})
        await wait_for(lambda: ready_session.employees[0].daily_rate == Decimal("90"))

        totals = ready_session.calculate_employee_totals(employee_id)
        assert totals.total_paid == Decimal("200")
        assert totals.total_owed == Decimal("360")

    @pytest.mark.asyncio
    async def test_explicit_paid_amount_override(self, ready_session, remote, wait_for):
        employee_id = await add_employee(ready_session, wait_for)
        work_day_id = await add_work_day(
            ready_session, wait_for, employeeId=employee_id, dailyRate=80
        )

        await ready_session.mark_work_day_as_paid(
            work_day_id,
            {"paidDate": "2024-03-10", "paymentMethod": "Zelle", "paidAmount": "75.50"},
        )

        assert remote.writes[-1].fields["paidAmount"] == 75.5

    @pytest.mark.asyncio
    async def test_unknown_work_day_raises_before_any_write(self, ready_session, remote):
        writes_before = len(remote.writes)

        with pytest.raises(NotFoundError) as exc_info:
            await ready_session.mark_work_day_as_paid(
                "missing", PaymentDetails(paid_date=PAID_ON, payment_method="Cash")
            )

        assert exc_info.value.entity == "WorkDay"
        assert len(remote.writes) == writes_before

    @pytest.mark.asyncio
    async def test_unmark_clears_payment_fields(self, ready_session, remote, wait_for):
        employee_id = await add_employee(ready_session, wait_for)
        work_day_id = await add_work_day(
            ready_session, wait_for, employeeId=employee_id, dailyRate=80
        )
        await ready_session.mark_work_day_as_paid(
            work_day_id, PaymentDetails(paid_date=PAID_ON, payment_method="Cash")
        )
        await wait_for(lambda: ready_session.work_days[0].is_paid)

        await ready_session.unmark_work_day_as_paid(work_day_id)

        await wait_for(lambda: not ready_session.work_days[0].is_paid)
        day = ready_session.work_days[0]
        assert day.paid_amount is None
        assert day.paid_date is None
        assert day.payment_method is None

    @pytest.mark.asyncio
    async def test_batch_with_missing_id_keeps_completed_writes(
        self, ready_session, wait_for
    ):
        employee_id = await add_employee(ready_session, wait_for)
        first = await add_work_day(ready_session, wait_for, employeeId=employee_id, dailyRate=80)
        second = await add_work_day(ready_session, wait_for, employeeId=employee_id, dailyRate=60)

        with pytest.raises(NotFoundError):
            await ready_session.mark_multiple_work_days_as_paid(
                [first, "missing", second],
                PaymentDetails(paid_date=PAID_ON, payment_method="Cash"),
            )

        await wait_for(lambda: all(d.is_paid for d in ready_session.work_days))
        assert ready_session.calculate_total_paid(employee_id) == Decimal("140")

    @pytest.mark.asyncio
    async def test_batch_success_returns_count(self, ready_session, wait_for):
        employee_id = await add_employee(ready_session, wait_for)
        ids = [
            await add_work_day(ready_session, wait_for, employeeId=employee_id, dailyRate=10)
            for _ in range(3)
        ]

        marked = await ready_session.mark_multiple_work_days_as_paid(
            ids, {"paidDate": "2024-03-10", "paymentMethod": "Cash"}
        )

        assert marked == 3


class TestSettings:
    """Test settings updates."""

    @pytest.mark.asyncio
    async def test_update_merges_locally_and_creates_document(
        self, ready_session, remote, alice_paths
    ):
        await ready_session.update_settings({"theme": "dark"})

        assert ready_session.settings.model_dump() == {"currency": "USD", "theme": "dark"}
        created = remote.writes[-1]
        assert created.operation == "create"
        assert created.path == alice_paths.settings_document
        assert created.fields == {"currency": "USD", "theme": "dark"}

    @pytest.mark.asyncio
    async def test_update_existing_document(self, ready_session, remote, alice_paths, wait_for):
        remote.seed(f"{alice_paths.root}/settings", SETTINGS_DOCUMENT_ID, {"currency": "EUR"})
        await wait_for(lambda: ready_session.settings.currency == "EUR")

        await ready_session.update_settings({"theme": "dark"})

        assert remote.writes[-1].operation == "update"
        assert remote.writes[-1].fields == {"theme": "dark"}
        assert ready_session.settings.model_dump() == {"currency": "EUR", "theme": "dark"}

    @pytest.mark.asyncio
    async def test_settings_survive_sign_out(self, ready_session, wait_for):
        await ready_session.update_settings({"currency": "MXN"})

        ready_session.on_identity(None)

        assert ready_session.settings.currency == "MXN"
        assert ready_session.is_initialized is False


class TestConcurrency:
    """Concurrent mutations are not serialized client-side."""

    @pytest.mark.asyncio
    async def test_parallel_adds(self, ready_session, remote, wait_for):
        remote.latency = 0.01
        employee_id = await add_employee(ready_session, wait_for)

        ids = await asyncio.gather(
            *(
                ready_session.add_work_day(
                    {"employeeId": employee_id, "date": "2024-03-04", "dailyRate": 10}
                )
                for _ in range(5)
            )
        )

        assert len(set(ids)) == 5
        await wait_for(lambda: len(ready_session.work_days) == 5)
        assert ready_session.calculate_total_owed(employee_id) == Decimal("50")
