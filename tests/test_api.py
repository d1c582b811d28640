"""API endpoint tests over an in-memory backend."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ledger_sync.api import create_app
from ledger_sync.remote import InMemoryLedgerStore
from ledger_sync.session import LedgerSession

from conftest import FAST

pytestmark = pytest.mark.asyncio


async def eventually(check: Callable[[], Awaitable[bool]], timeout: float = 2.0) -> None:
    """Re-run an async check until it passes."""

    async def poll() -> None:
        while not await check():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


@pytest_asyncio.fixture
async def api_session() -> AsyncGenerator[LedgerSession, None]:
    session = LedgerSession(InMemoryLedgerStore(), FAST)
    yield session
    await session.aclose()


@pytest_asyncio.fixture
async def client(api_session) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = create_app(api_session)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def signed_in(client, api_session) -> AsyncClient:
    response = await client.put("/api/v1/identity", json={"uid": "alice"})
    assert response.status_code == 200, response.text
    await api_session.wait_initialized(timeout=2.0)
    return client


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["backend"] == "memory"
        assert data["subscriptions"] == "unsubscribed"

    async def test_readiness_and_liveness(self, client: AsyncClient):
        assert (await client.get("/ready")).json()["status"] == "ready"
        assert (await client.get("/live")).json()["status"] == "alive"


class TestIdentity:
    """Test sign in / sign out."""

    async def test_sign_in_opens_partition(self, client: AsyncClient):
        response = await client.put("/api/v1/identity", json={"uid": "alice", "email": "a@x.io"})

        assert response.status_code == 200
        assert response.json() == {
            "uid": "alice",
            "email": "a@x.io",
            "subscription_status": "subscribing",
        }

    async def test_sign_out_resets(self, signed_in: AsyncClient):
        response = await signed_in.delete("/api/v1/identity")
        assert response.status_code == 204

        ledger = (await signed_in.get("/api/v1/ledger")).json()
        assert ledger["is_initialized"] is False
        assert ledger["subscription_status"] == "unsubscribed"


class TestMutations:
    """Test write endpoints."""

    async def test_writes_require_sign_in(self, client: AsyncClient):
        response = await client.post("/api/v1/employees", json={"name": "Ana", "dailyRate": 100})

        assert response.status_code == 409

    async def test_employee_lifecycle(self, signed_in: AsyncClient):
        created = await signed_in.post("/api/v1/employees", json={"name": "Ana", "dailyRate": 100})
        assert created.status_code == 201, created.text
        employee_id = created.json()["id"]

        employees: list[dict[str, Any]] = []

        async def listed() -> bool:
            employees[:] = (await signed_in.get("/api/v1/employees")).json()
            return len(employees) == 1

        await eventually(listed)
        assert employees[0]["name"] == "Ana"
        assert employees[0]["id"] == employee_id

        day = await signed_in.post(
            "/api/v1/work-days",
            json={"employeeId": employee_id, "date": "2024-03-04", "dailyRate": 80},
        )
        assert day.status_code == 201
        payment = await signed_in.post(
            "/api/v1/payments",
            json={"employeeId": employee_id, "date": "2024-03-05", "amount": 20},
        )
        assert payment.status_code == 201

        async def totals_ready() -> bool:
            body = (await signed_in.get(f"/api/v1/employees/{employee_id}/totals")).json()
            return Decimal(body["total_owed"]) == 80 and Decimal(body["total_paid"]) == 20

        await eventually(totals_ready)

        totals = (await signed_in.get(f"/api/v1/employees/{employee_id}/totals")).json()
        assert Decimal(totals["outstanding"]) == 60
        assert totals["status"] == "owed"

        deleted = await signed_in.delete(f"/api/v1/employees/{employee_id}")
        assert deleted.status_code == 204

    async def test_mark_unknown_work_day_is_404(self, signed_in: AsyncClient):
        response = await signed_in.post(
            "/api/v1/work-days/missing/paid",
            json={"paidDate": "2024-03-10", "paymentMethod": "Cash"},
        )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_write_failure_is_502(self, signed_in: AsyncClient, api_session):
        api_session.remote.fail_next_write()

        response = await signed_in.post("/api/v1/employees", json={"name": "Ana", "dailyRate": 1})

        assert response.status_code == 502
        assert response.json()["detail"] == "Failed to add employee"

    async def test_invalid_body_is_422(self, signed_in: AsyncClient):
        response = await signed_in.post("/api/v1/employees", json={"name": "Ana", "dailyRate": -5})

        assert response.status_code == 422

    async def test_settings_patch(self, signed_in: AsyncClient):
        response = await signed_in.patch("/api/v1/settings", json={"theme": "dark"})

        assert response.status_code == 200
        assert response.json() == {"currency": "USD", "theme": "dark"}


class TestReports:
    """Test report endpoints."""

    async def test_empty_overview(self, signed_in: AsyncClient):
        response = await signed_in.get("/api/v1/reports/overview")

        assert response.status_code == 200
        data = response.json()
        assert data["employee_count"] == 0
        assert Decimal(data["outstanding"]) == 0
        assert data["payment_methods"] == {}

    async def test_monthly_summary(self, signed_in: AsyncClient):
        response = await signed_in.get("/api/v1/reports/monthly", params={"year": 2024, "month": 3})

        assert response.status_code == 200
        assert response.json()["work_day_count"] == 0

    async def test_invalid_month(self, signed_in: AsyncClient):
        response = await signed_in.get("/api/v1/reports/monthly", params={"year": 2024, "month": 13})

        assert response.status_code == 422

