"""Identity provider seam.

Authentication is external. The engine only needs a stable uid and to hear
about sign-in / sign-out; ``None`` means signed out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

IdentityCallback = Callable[["Identity | None"], None]


@dataclass(frozen=True)
class Identity:
    """The authenticated principal whose partition is synchronized."""

    uid: str
    email: str | None = None


class IdentityProvider(Protocol):
    """Anything that reports identity changes."""

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        """Register ``callback``; it is called with the current identity first."""
        ...


class IdentityFeed:
    """In-process identity provider driven by explicit sign-in/out calls."""

    def __init__(self, identity: Identity | None = None) -> None:
        self._identity = identity
        self._callbacks: list[IdentityCallback] = []

    @property
    def current(self) -> Identity | None:
        return self._identity

    def on_change(self, callback: IdentityCallback) -> Callable[[], None]:
        self._callbacks.append(callback)
        callback(self._identity)

        def unsubscribe() -> None:
            self._callbacks = [cb for cb in self._callbacks if cb is not callback]

        return unsubscribe

    def sign_in(self, identity: Identity) -> None:
        self._publish(identity)

    def sign_out(self) -> None:
        self._publish(None)

    def _publish(self, identity: Identity | None) -> None:
        self._identity = identity
        for callback in list(self._callbacks):
            try:
                callback(identity)
            except Exception:
                logger.exception("Identity callback %s failed", callback)
