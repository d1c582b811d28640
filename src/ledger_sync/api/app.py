"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ledger_sync.api.routes import (
    employees_router,
    health_router,
    identity_router,
    ledger_router,
    payments_router,
    reports_router,
    work_days_router,
)
from ledger_sync.config import get_settings
from ledger_sync.errors import NotFoundError, WriteError
from ledger_sync.identity import IdentityFeed
from ledger_sync.remote import build_remote_store
from ledger_sync.session import LedgerSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    yield
    # Shutdown
    await app.state.session.aclose()


def build_session() -> LedgerSession:
    """Session over the backend selected by the environment."""
    settings = get_settings()
    return LedgerSession(build_remote_store(settings), settings.sync_config)


def create_app(session: LedgerSession | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Workday Ledger Sync API",
        description="Live employee, work day and payment ledger",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.session = session or build_session()
    app.state.identity_feed = IdentityFeed()
    # Signed out until the first PUT /api/v1/identity
    app.state.session.attach(app.state.identity_feed)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": str(exc), "code": "NOT_FOUND"},
        )

    @app.exception_handler(WriteError)
    async def write_error_handler(request: Request, exc: WriteError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": exc.message, "code": "WRITE_FAILED"},
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc), "code": "INVALID_INPUT"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(identity_router, prefix="/api/v1")
    app.include_router(ledger_router, prefix="/api/v1")
    app.include_router(employees_router, prefix="/api/v1")
    app.include_router(work_days_router, prefix="/api/v1")
    app.include_router(payments_router, prefix="/api/v1")
    app.include_router(reports_router, prefix="/api/v1")

    return app
