"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from ledger_sync.identity import IdentityFeed
from ledger_sync.session import LedgerSession


def get_session(request: Request) -> LedgerSession:
    """The ledger session owned by the application."""
    return request.app.state.session


def get_identity_feed(request: Request) -> IdentityFeed:
    return request.app.state.identity_feed


def get_ready_session(
    session: Annotated[LedgerSession, Depends(get_session)],
) -> LedgerSession:
    """Session that currently accepts mutations."""
    if session.identity is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No signed-in identity",
        )
    if not session.is_initialized:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Ledger is not initialized yet",
        )
    return session


# Type aliases for cleaner dependency injection
Session = Annotated[LedgerSession, Depends(get_session)]
ReadySession = Annotated[LedgerSession, Depends(get_ready_session)]
Feed = Annotated[IdentityFeed, Depends(get_identity_feed)]
