"""Tests for the Firestore listener wiring, against a fake client."""

from __future__ import annotations

import asyncio

import pytest

pytest.importorskip("firebase_admin")
pytest.importorskip("google.cloud.firestore")

from ledger_sync.errors import StoreConnectionError  # noqa: E402
from ledger_sync.remote import LedgerPaths  # noqa: E402
from ledger_sync.remote.firestore import FirestoreLedgerStore  # noqa: E402

from conftest import ALICE  # noqa: E402

PATHS = LedgerPaths(ALICE.uid)


class FakeWatch:
    def __init__(self) -> None:
        self.is_active = True
        self.unsubscribed = False

    def unsubscribe(self) -> None:
        self.unsubscribed = True
        self.is_active = False


class FakeSnapshot:
    def __init__(self, doc_id: str, data: dict, exists: bool = True) -> None:
        self.id = doc_id
        self.exists = exists
        self._data = data

    def to_dict(self) -> dict:
        return dict(self._data)


class FakeReference:
    def __init__(self) -> None:
        self.watch = FakeWatch()
        self.callback = None

    def on_snapshot(self, callback):
        self.callback = callback
        return self.watch


class FakeClient:
    def __init__(self) -> None:
        self.refs: dict[str, FakeReference] = {}

    def collection(self, path: str) -> FakeReference:
        return self.refs.setdefault(path, FakeReference())

    def document(self, path: str) -> FakeReference:
        return self.refs.setdefault(path, FakeReference())


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def firestore_store(client) -> FirestoreLedgerStore:
    return FirestoreLedgerStore(client, liveness_interval=0.01)


class TestFirestoreListeners:
    """Test listener callbacks and liveness reporting."""

    @pytest.mark.asyncio
    async def test_snapshot_delivered_on_loop(self, client, firestore_store, wait_for):
        snapshots = []
        firestore_store.subscribe(PATHS.payments, snapshots.append, pytest.fail)

        client.refs[PATHS.payments].callback(
            [FakeSnapshot("p1", {"amount": 5})], None, None
        )

        await wait_for(lambda: snapshots)
        assert snapshots[0] == [{"id": "p1", "amount": 5}]

    @pytest.mark.asyncio
    async def test_missing_document_is_none(self, client, firestore_store, wait_for):
        snapshots = []
        firestore_store.subscribe_document(PATHS.settings_document, snapshots.append, pytest.fail)

        client.refs[PATHS.settings_document].callback(
            [FakeSnapshot("preferences", {}, exists=False)], None, None
        )

        await wait_for(lambda: snapshots)
        assert snapshots == [None]

    @pytest.mark.asyncio
    async def test_listener_closed_by_server_is_reported(self, client, firestore_store, wait_for):
        errors = []
        firestore_store.subscribe(PATHS.employees, pytest.fail, errors.append)

        client.refs[PATHS.employees].watch.is_active = False

        await wait_for(lambda: errors)
        assert len(errors) == 1
        assert isinstance(errors[0], StoreConnectionError)
        assert errors[0].collection == PATHS.employees

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_liveness_checks(self, client, firestore_store):
        errors = []
        unsubscribe = firestore_store.subscribe(PATHS.employees, pytest.fail, errors.append)

        unsubscribe()
        await asyncio.sleep(0.05)

        assert client.refs[PATHS.employees].watch.unsubscribed
        assert errors == []
