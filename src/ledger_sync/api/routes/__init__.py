"""API routes."""

from ledger_sync.api.routes.employees import router as employees_router
from ledger_sync.api.routes.health import router as health_router
from ledger_sync.api.routes.identity import router as identity_router
from ledger_sync.api.routes.ledger import router as ledger_router
from ledger_sync.api.routes.payments import router as payments_router
from ledger_sync.api.routes.reports import router as reports_router
from ledger_sync.api.routes.work_days import router as work_days_router

__all__ = [
    "employees_router",
    "health_router",
    "identity_router",
    "ledger_router",
    "payments_router",
    "reports_router",
    "work_days_router",
]
