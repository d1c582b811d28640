"""Firestore-backed ledger store.

Uses the Firebase Admin SDK with Application Default Credentials. Snapshot
listeners run on the SDK's background thread; their results are handed to
the event loop with ``call_soon_threadsafe`` so that the engine only ever
sees callbacks on its own thread. Blocking writes run in a worker thread.
The SDK reports a listener the server closed only through its ``is_active``
flag, so live listeners are polled and a closed one is reported as an error.

Supported env:
- GOOGLE_APPLICATION_CREDENTIALS (ADC on local machines/CI)
- FIREBASE_PROJECT_ID / GOOGLE_CLOUD_PROJECT
- FIRESTORE_EMULATOR_HOST (local emulator)
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from typing import Any, Callable

import firebase_admin
from firebase_admin import credentials
from firebase_admin import firestore as admin_firestore
from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ledger_sync.errors import DocumentNotFoundError, StoreConnectionError
from ledger_sync.remote.base import (
    CREATED_AT,
    SERVER_TIMESTAMP,
    Document,
    ErrorCallback,
    Unsubscribe,
    sort_newest_first,
)

logger = logging.getLogger(__name__)

_init_lock = threading.Lock()


def _resolve_project_id(explicit_project_id: str | None = None) -> str | None:
    return (
        explicit_project_id
        or os.getenv("FIREBASE_PROJECT_ID")
        or os.getenv("GOOGLE_CLOUD_PROJECT")
        or None
    )


def init_firebase_admin(*, project_id: str | None = None) -> None:
    """Initialize the Firebase Admin SDK exactly once."""
    if firebase_admin._apps:
        return

    with _init_lock:
        if firebase_admin._apps:
            return

        options: dict[str, str] = {}
        resolved_project_id = _resolve_project_id(project_id)
        if resolved_project_id:
            options["projectId"] = resolved_project_id

        try:
            cred = credentials.ApplicationDefault()
            firebase_admin.initialize_app(cred, options or None)
        except Exception as e:
            raise RuntimeError(
                "Failed to initialize Firebase Admin SDK with Application Default "
                "Credentials (ADC). Locally: run `gcloud auth application-default login` "
                "or set FIRESTORE_EMULATOR_HOST."
            ) from e


def get_firestore_client(*, project_id: str | None = None) -> firestore.Client:
    init_firebase_admin(project_id=project_id)
    return admin_firestore.client()


def _to_firestore_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        k: (firestore.SERVER_TIMESTAMP if v is SERVER_TIMESTAMP else v)
        for k, v in fields.items()
    }


def _snapshot_to_document(snapshot: Any) -> Document:
    return {"id": snapshot.id, **(snapshot.to_dict() or {})}


class FirestoreLedgerStore:
    """Remote ledger store over Cloud Firestore."""

    backend_name = "firestore"

    def __init__(
        self,
        client: firestore.Client | None = None,
        *,
        project_id: str | None = None,
        liveness_interval: float = 5.0,
    ) -> None:
        self._client = client or get_firestore_client(project_id=project_id)
        self._liveness_interval = liveness_interval

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

        # Ordered server-side queries drop documents missing the order field,
        # and legacy documents may lack createdAt; order on the client instead.
        def _callback(docs: list[Any], changes: Any, read_time: Any) -> None:
            records = [_snapshot_to_document(d) for d in docs]
            if order_by == CREATED_AT and descending:
                records = sort_newest_first(records, order_by)
            loop.call_soon_threadsafe(on_snapshot, records)

        return self._watch(
            collection_path, self._client.collection(collection_path), _callback, on_error, loop
        )

    def subscribe_document(
        self,
        path: str,
        on_snapshot: Callable[[Document | None], None],
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        loop = asyncio.get_running_loop()

        def _callback(docs: list[Any], changes: Any, read_time: Any) -> None:
            snapshot = docs[0] if docs else None
            document = (
                _snapshot_to_document(snapshot)
                if snapshot is not None and snapshot.exists
                else None
            )
            loop.call_soon_threadsafe(on_snapshot, document)

        return self._watch(path, self._client.document(path), _callback, on_error, loop)

    def _watch(
        self,
        path: str,
        target: Any,
        callback: Callable[[list[Any], Any, Any], None],
        on_error: ErrorCallback,
        loop: asyncio.AbstractEventLoop,
    ) -> Unsubscribe:
        try:
            watch = target.on_snapshot(callback)
        except Exception as exc:
            logger.warning("firestore listener on %s failed to attach: %s", path, exc)
            loop.call_soon(on_error, StoreConnectionError(path, str(exc)))
            return lambda: None

        released = False
        handle: asyncio.TimerHandle | None = None

        def check() -> None:
            nonlocal handle
            if released:
                return
            if not watch.is_active:
                logger.warning("firestore listener on %s closed by the server", path)
                on_error(StoreConnectionError(path, "listener closed"))
                return
            handle = loop.call_later(self._liveness_interval, check)

        def unsubscribe() -> None:
            nonlocal released
            released = True
            if handle is not None:
                handle.cancel()
            watch.unsubscribe()

        handle = loop.call_later(self._liveness_interval, check)
        return unsubscribe

    # ------------------------------------------------------------------
    # Writes and queries
    # ------------------------------------------------------------------

    async def create(
        self,
        collection_path: str,
        fields: dict[str, Any],
        document_id: str | None = None,
    ) -> str:
        collection = self._client.collection(collection_path)
        data = _to_firestore_fields(fields)
        if document_id is not None:
            await asyncio.to_thread(collection.document(document_id).set, data)
            return document_id
        _, ref = await asyncio.to_thread(collection.add, data)
        return ref.id

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(
                self._client.document(path).update, _to_firestore_fields(fields)
            )
        except gexc.NotFound as e:
            raise DocumentNotFoundError(path) from e

    async def delete(self, path: str) -> None:
        await asyncio.to_thread(self._client.document(path).delete)

    async def query_by_field(
        self, collection_path: str, field: str, value: Any
    ) -> list[Document]:
        query = self._client.collection(collection_path).where(
            filter=FieldFilter(field, "==", value)
        )
        snapshots = await asyncio.to_thread(lambda: list(query.stream()))
        return [_snapshot_to_document(s) for s in snapshots]

    async def close(self) -> None:
        await asyncio.to_thread(self._client.close)
