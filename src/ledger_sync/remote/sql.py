"""SQL-backed ledger store.

Documents live in a single ``ledger_documents`` table keyed by collection
path and document id, with the document body stored as JSON. Live
subscriptions are served in-process: after every committed write, the
watchers of the affected collection re-query it and receive the full
current list.

Works with any SQLAlchemy async driver; tests and local runs use aiosqlite.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import select

from ledger_sync.database import create_schema, get_engine, get_session_factory, session_scope
from ledger_sync.errors import DocumentNotFoundError, StoreConnectionError
from ledger_sync.models import LedgerDocument
from ledger_sync.records import parse_timestamp
from ledger_sync.remote.base import (
    CREATED_AT,
    Document,
    ErrorCallback,
    Unsubscribe,
    resolve_server_timestamps,
    split_document_path,
)

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass
class _Watcher:
    path: str
    is_document: bool
    callback: Callable[[Any], None]
    on_error: ErrorCallback
    order_by: str = CREATED_AT
    descending: bool = True
    active: bool = True
    requested: int = 0
    delivered: int = 0


class SqlLedgerStore:
    """Remote ledger store over a relational database."""

    backend_name = "sql"

    def __init__(self, database_url: str | None = None) -> None:
        self._engine = get_engine(database_url)
        self._factory = get_session_factory(self._engine)
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()
        self._watchers: dict[str, list[_Watcher]] = defaultdict(list)
        self._tasks: set[asyncio.Task[None]] = set()

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._schema_lock:
            if not self._schema_ready:
                await create_schema(self._engine)
                self._schema_ready = True

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
        watcher = _Watcher(
            collection_path, False, on_snapshot, on_error, order_by=order_by, descending=descending
        )
        return self._register(watcher)

    def subscribe_document(
        self,
        path: str,
        on_snapshot: Callable[[Document | None], None],
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        watcher = _Watcher(path, True, on_snapshot, on_error)
        return self._register(watcher)

    def _register(self, watcher: _Watcher) -> Unsubscribe:
        self._watchers[watcher.path].append(watcher)
        self._schedule(watcher)

        def unsubscribe() -> None:
            watcher.active = False
            self._watchers[watcher.path] = [
                w for w in self._watchers[watcher.path] if w is not watcher
            ]

        return unsubscribe

    def _schedule(self, watcher: _Watcher) -> None:
        watcher.requested += 1
        task = asyncio.get_running_loop().create_task(
            self._deliver(watcher, watcher.requested)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, watcher: _Watcher, ticket: int) -> None:
        try:
            if watcher.is_document:
                payload: Any = await self._get(watcher.path)
            else:
                payload = await self._list(watcher.path, watcher.order_by, watcher.descending)
        except Exception as exc:
            logger.warning("sql watcher on %s failed: %s", watcher.path, exc)
            if watcher.active:
                watcher.active = False
                watcher.on_error(StoreConnectionError(watcher.path, str(exc)))
            return

        # A newer read already went out; this one is stale
        if watcher.active and ticket > watcher.delivered:
            watcher.delivered = ticket
            watcher.callback(payload)

    def _notify(self, collection_path: str, document_id: str) -> None:
        document_path = f"{collection_path}/{document_id}"
        for path in (collection_path, document_path):
            for watcher in list(self._watchers.get(path, [])):
                if watcher.active:
                    self._schedule(watcher)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _list(
        self,
        collection_path: str,
        order_by: str = CREATED_AT,
        descending: bool = True,
    ) -> list[Document]:
        await self._ensure_schema()
        created = LedgerDocument.created_at.desc() if descending else LedgerDocument.created_at.asc()
        stmt = (
            select(LedgerDocument)
            .where(LedgerDocument.collection_path == collection_path)
            .order_by(created.nulls_last())
        )
        async with session_scope(self._factory) as session:
            rows = (await session.execute(stmt)).scalars().all()
            documents = [row.to_document() for row in rows]

        if order_by != CREATED_AT:
            # Other fields live inside the JSON body
            documents.sort(key=lambda d: str(d.get(order_by, "")), reverse=descending)
        return documents

    async def _get(self, path: str) -> Document | None:
        await self._ensure_schema()
        collection_path, document_id = split_document_path(path)
        async with session_scope(self._factory) as session:
            row = await session.get(LedgerDocument, (collection_path, document_id))
            return None if row is None else row.to_document()

    async def query_by_field(
        self, collection_path: str, field: str, value: Any
    ) -> list[Document]:
        # JSON path filters differ per dialect; filter the collection in Python
        return [doc for doc in await self._list(collection_path) if doc.get(field) == value]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(
        self,
        collection_path: str,
        fields: dict[str, Any],
        document_id: str | None = None,
    ) -> str:
        await self._ensure_schema()
        document_id = document_id or uuid.uuid4().hex
        now = datetime.datetime.now(datetime.timezone.utc)
        data = _jsonable(resolve_server_timestamps(fields, now))

        async with session_scope(self._factory) as session:
            session.add(
                LedgerDocument(
                    collection_path=collection_path,
                    document_id=document_id,
                    data=data,
                    created_at=parse_timestamp(data.get(CREATED_AT)),
                )
            )

        self._notify(collection_path, document_id)
        return document_id

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        await self._ensure_schema()
        collection_path, document_id = split_document_path(path)
        now = datetime.datetime.now(datetime.timezone.utc)
        changes = _jsonable(resolve_server_timestamps(fields, now))

        async with session_scope(self._factory) as session:
            row = await session.get(LedgerDocument, (collection_path, document_id))
            if row is None:
                raise DocumentNotFoundError(path)
            # Reassign so the JSON column is flagged dirty
            row.data = {**(row.data or {}), **changes}
            if CREATED_AT in changes:
                row.created_at = parse_timestamp(changes[CREATED_AT])

        self._notify(collection_path, document_id)

    async def delete(self, path: str) -> None:
        await self._ensure_schema()
        collection_path, document_id = split_document_path(path)

        async with session_scope(self._factory) as session:
            row = await session.get(LedgerDocument, (collection_path, document_id))
            if row is not None:
                await session.delete(row)

        self._notify(collection_path, document_id)

    async def close(self) -> None:
        for watchers in self._watchers.values():
            for watcher in watchers:
                watcher.active = False
        self._watchers.clear()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self._engine.dispose()
