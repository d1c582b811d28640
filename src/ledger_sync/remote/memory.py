"""In-memory ledger store for local development and testing.

Behaves like a real document store from the engine's point of view:
writes yield to the event loop, and subscription snapshots are delivered
on a later loop iteration rather than inline with the write.
"""

from __future__ import annotations

import asyncio
import copy
import datetime
import itertools
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Callable

from ledger_sync.errors import DocumentNotFoundError, StoreConnectionError
from ledger_sync.remote.base import (
    CREATED_AT,
    Document,
    ErrorCallback,
    Unsubscribe,
    resolve_server_timestamps,
    sort_newest_first,
    split_document_path,
)

logger = logging.getLogger(__name__)


@dataclass
class _Watcher:
    path: str
    loop: asyncio.AbstractEventLoop
    deliver: Callable[[], None]
    on_error: ErrorCallback
    active: bool = True


@dataclass
class WriteRecord:
    """One write accepted by the store, for inspection in tests."""

    operation: str  # 'create' | 'update' | 'delete'
    path: str
    fields: dict[str, Any] = field(default_factory=dict)


class InMemoryLedgerStore:
    """Process-local document store.

    Fault injection:
        store.fail_next_write(RuntimeError("boom"))   # next write raises
        store.fail_subscription("users/u1/payments")  # watchers get on_error
    """

    backend_name = "memory"

    def __init__(self, latency: float = 0.0) -> None:
        """Initialize the store.

        Args:
            latency: Seconds each write waits before being applied.
        """
        self.latency = latency
        self.writes: list[WriteRecord] = []
        self._collections: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._collection_watchers: dict[str, list[_Watcher]] = defaultdict(list)
        self._document_watchers: dict[str, list[_Watcher]] = defaultdict(list)
        self._write_failures: deque[Exception] = deque()
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Fault injection and inspection
    # ------------------------------------------------------------------

    def fail_next_write(self, error: Exception | None = None, times: int = 1) -> None:
        """Make the next ``times`` writes raise ``error``."""
        for _ in range(times):
            self._write_failures.append(error or RuntimeError("write rejected"))

    def fail_subscription(self, path: str, error: Exception | None = None) -> None:
        """Terminate every live watcher on ``path`` with an error."""
        exc = error or StoreConnectionError(path, "listener dropped")
        watchers = self._collection_watchers.get(path, []) + self._document_watchers.get(path, [])
        for watcher in watchers:
            if watcher.active:
                watcher.active = False
                watcher.loop.call_soon(watcher.on_error, exc)

    def active_watchers(self, path: str | None = None) -> int:
        """Count live watchers, optionally only those on ``path``."""
        groups = list(self._collection_watchers.items()) + list(self._document_watchers.items())
        return sum(
            1
            for watched, watchers in groups
            if path is None or watched == path
            for w in watchers
            if w.active
        )

    def documents(self, collection_path: str) -> list[Document]:
        """Current documents of a collection, newest first."""
        return sort_newest_first(
            {"id": doc_id, **copy.deepcopy(data)}
            for doc_id, data in self._collections.get(collection_path, {}).items()
        )

    def seed(self, collection_path: str, document_id: str, fields: dict[str, Any]) -> None:
        """Insert a document directly, without recording a write."""
        self._collections[collection_path][document_id] = copy.deepcopy(fields)
        self._notify(collection_path, document_id)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        collection_path: str,
        on_snapshot: Callable[[list[Document]], None],
        on_error: ErrorCallback,
        *,
        order_by: str = CREATED_AT,
        descending: bool = True,
    ) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        watcher: _Watcher

        def deliver() -> None:
            if not watcher.active:
                return
            docs = self.documents(collection_path)
            if order_by != CREATED_AT or not descending:
                docs = sorted(docs, key=lambda d: str(d.get(order_by, "")), reverse=descending)
            on_snapshot(docs)

        watcher = _Watcher(collection_path, loop, deliver, on_error)
        self._collection_watchers[collection_path].append(watcher)
        loop.call_soon(watcher.deliver)
        return self._unsubscriber(self._collection_watchers, watcher)

    def subscribe_document(
        self,
        path: str,
        on_snapshot: Callable[[Document | None], None],
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        collection_path, document_id = split_document_path(path)
        watcher: _Watcher

        def deliver() -> None:
            if not watcher.active:
                return
            data = self._collections.get(collection_path, {}).get(document_id)
            on_snapshot(None if data is None else {"id": document_id, **copy.deepcopy(data)})

        watcher = _Watcher(path, loop, deliver, on_error)
        self._document_watchers[path].append(watcher)
        loop.call_soon(watcher.deliver)
        return self._unsubscriber(self._document_watchers, watcher)

    def _unsubscriber(
        self, registry: dict[str, list[_Watcher]], watcher: _Watcher
    ) -> Unsubscribe:
        def unsubscribe() -> None:
            watcher.active = False
            registry[watcher.path] = [w for w in registry[watcher.path] if w is not watcher]

        return unsubscribe

    def _notify(self, collection_path: str, document_id: str) -> None:
        document_path = f"{collection_path}/{document_id}"
        watchers = self._collection_watchers.get(collection_path, []) + self._document_watchers.get(
            document_path, []
        )
        for watcher in watchers:
            if watcher.active:
                watcher.loop.call_soon(watcher.deliver)

    # ------------------------------------------------------------------
    # Writes and queries
    # ------------------------------------------------------------------

    async def _before_write(self) -> None:
        await asyncio.sleep(self.latency)
        if self._write_failures:
            raise self._write_failures.popleft()

    async def create(
        self,
        collection_path: str,
        fields: dict[str, Any],
        document_id: str | None = None,
    ) -> str:
        await self._before_write()
        document_id = document_id or f"doc-{next(self._ids)}"
        data = resolve_server_timestamps(fields, datetime.datetime.now(datetime.timezone.utc))
        self._collections[collection_path][document_id] = copy.deepcopy(data)
        self.writes.append(WriteRecord("create", f"{collection_path}/{document_id}", data))
        self._notify(collection_path, document_id)
        return document_id

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        await self._before_write()
        collection_path, document_id = split_document_path(path)
        current = self._collections.get(collection_path, {}).get(document_id)
        if current is None:
            raise DocumentNotFoundError(path)
        data = resolve_server_timestamps(fields, datetime.datetime.now(datetime.timezone.utc))
        current.update(copy.deepcopy(data))
        self.writes.append(WriteRecord("update", path, data))
        self._notify(collection_path, document_id)

    async def delete(self, path: str) -> None:
        await self._before_write()
        collection_path, document_id = split_document_path(path)
        self._collections.get(collection_path, {}).pop(document_id, None)
        self.writes.append(WriteRecord("delete", path))
        self._notify(collection_path, document_id)

    async def query_by_field(
        self, collection_path: str, field: str, value: Any
    ) -> list[Document]:
        await asyncio.sleep(self.latency)
        return [doc for doc in self.documents(collection_path) if doc.get(field) == value]

    async def close(self) -> None:
        for registry in (self._collection_watchers, self._document_watchers):
            for watchers in registry.values():
                for watcher in watchers:
                    watcher.active = False
            registry.clear()
        logger.debug("in-memory store closed")
