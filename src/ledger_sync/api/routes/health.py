"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel

from ledger_sync.api.dependencies import Session

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    backend: str
    subscriptions: str


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(session: Session) -> HealthResponse:
    """Check API and live subscription health."""
    subscriptions = session.subscription_status.value

    return HealthResponse(
        status="degraded" if session.error else "healthy",
        timestamp=datetime.now(timezone.utc),
        backend=getattr(session.remote, "backend_name", type(session.remote).__name__),
        subscriptions=subscriptions,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    """Readiness check for container orchestration."""
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
