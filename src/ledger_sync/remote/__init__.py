"""Remote ledger store adapters."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ledger_sync.remote.base import (
    EMPLOYEES,
    PAYMENTS,
    SERVER_TIMESTAMP,
    SETTINGS,
    WORK_DAYS,
    LedgerPaths,
    RemoteLedgerStore,
)
from ledger_sync.remote.memory import InMemoryLedgerStore
from ledger_sync.remote.sql import SqlLedgerStore

if TYPE_CHECKING:
    from ledger_sync.config import Settings


def build_remote_store(settings: Settings) -> RemoteLedgerStore:
    """Create the backend named by ``settings.backend``."""
    if settings.backend == "memory":
        return InMemoryLedgerStore()
    if settings.backend == "sql":
        return SqlLedgerStore(settings.database_url)
    if settings.backend == "firestore":
        # Needs the [firestore] extra
        from ledger_sync.remote.firestore import FirestoreLedgerStore

        return FirestoreLedgerStore(project_id=settings.firebase_project_id)
    raise ValueError(f"Unknown ledger backend: {settings.backend!r}")


__all__ = [
    "EMPLOYEES",
    "PAYMENTS",
    "SERVER_TIMESTAMP",
    "SETTINGS",
    "WORK_DAYS",
    "InMemoryLedgerStore",
    "LedgerPaths",
    "RemoteLedgerStore",
    "SqlLedgerStore",
    "build_remote_store",
]
