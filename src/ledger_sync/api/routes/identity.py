"""Identity endpoints.

The HTTP surface acts as its own identity provider: signing in here opens
the ledger partition of ``uid``, signing out releases it.
"""

from fastapi import APIRouter, status

from ledger_sync.api.dependencies import Feed, Session
from ledger_sync.api.schemas import IdentityRequest, IdentityResponse
from ledger_sync.identity import Identity

router = APIRouter(prefix="/identity", tags=["identity"])


def _describe(session: Session) -> IdentityResponse:
    identity = session.identity
    return IdentityResponse(
        uid=identity.uid if identity else None,
        email=identity.email if identity else None,
        subscription_status=session.subscription_status.value,
    )


@router.get("", response_model=IdentityResponse)
async def get_identity(session: Session) -> IdentityResponse:
    """Currently synchronized identity."""
    return _describe(session)


@router.put("", response_model=IdentityResponse)
async def sign_in(session: Session, feed: Feed, payload: IdentityRequest) -> IdentityResponse:
    """Sign in, switching the ledger to ``uid``'s partition."""
    feed.sign_in(Identity(uid=payload.uid, email=payload.email))
    return _describe(session)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(feed: Feed) -> None:
    """Sign out and reset the projection."""
    feed.sign_out()
