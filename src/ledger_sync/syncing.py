"""Syncing indicator with a minimum visible duration.

The indicator is reference counted across overlapping mutations. It turns
on with the first in-flight operation and turns off only once the last one
has finished and ``min_visible_seconds`` have passed without a new one
starting. Short operations still show visible sync activity, and
overlapping operations never make the indicator flicker off early.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Iterator

from ledger_sync.reducer import set_syncing
from ledger_sync.store import LedgerStore

logger = logging.getLogger(__name__)


class SyncIndicator:
    """Drives the store's ``syncing`` flag."""

    def __init__(self, store: LedgerStore, min_visible_seconds: float = 0.5) -> None:
        self._store = store
        self._min_visible = min_visible_seconds
        self._active = 0
        self._generation = 0
        self._clear_handle: asyncio.TimerHandle | None = None

    @property
    def in_flight(self) -> int:
        return self._active

    @contextmanager
    def track(self) -> Iterator[None]:
        """Mark one operation as in flight for the duration of the block."""
        generation = self._begin()
        try:
            yield
        finally:
            self._end(generation)

    def reset(self) -> None:
        """Forget in-flight operations, e.g. when the identity changes.

        Operations started before the reset no longer count when they end.
        """
        self._cancel_clear()
        self._active = 0
        self._generation += 1

    def _begin(self) -> int:
        self._active += 1
        self._cancel_clear()
        if not self._store.state.syncing:
            self._store.dispatch(set_syncing(True))
        return self._generation

    def _end(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._active -= 1
        if self._active == 0:
            self._cancel_clear()
            loop = asyncio.get_running_loop()
            self._clear_handle = loop.call_later(self._min_visible, self._clear)

    def _clear(self) -> None:
        self._clear_handle = None
        if self._active == 0 and self._store.state.syncing:
            logger.debug("sync indicator off")
            self._store.dispatch(set_syncing(False))

    def _cancel_clear(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None
