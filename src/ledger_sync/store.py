"""State container for the ledger projection.

The store is the only owner of :class:`LedgerState`. Every change goes
through :meth:`LedgerStore.dispatch`, which runs the pure reducer and then
notifies listeners. Listeners are isolated: if one fails, the failure is
logged and the remaining listeners still run.

Usage:
    store = LedgerStore()
    unsubscribe = store.subscribe(lambda state: render(state))
    store.dispatch(set_loading(True))
    unsubscribe()
"""

from __future__ import annotations

import logging
from typing import Callable

from ledger_sync.reducer import Action, LedgerState, reduce

logger = logging.getLogger(__name__)

Listener = Callable[[LedgerState], None]


class LedgerStore:
    """Serial reducer-backed store with change listeners."""

    def __init__(self, initial: LedgerState | None = None) -> None:
        self._state = initial or LedgerState()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> LedgerState:
        return self._state

    def dispatch(self, action: Action) -> LedgerState:
        """Reduce ``action`` into the state and notify listeners."""
        previous = self._state
        self._state = reduce(previous, action)
        logger.debug("dispatch %s", action.type.value)

        if self._state is not previous:
            self._notify()
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            self._listeners = [fn for fn in self._listeners if fn is not listener]

        return unsubscribe

    def _notify(self) -> None:
        state = self._state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Listener %s failed", listener)
