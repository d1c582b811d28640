"""Base protocol and helpers for remote ledger stores.

All backends implement the RemoteLedgerStore protocol. The sync engine
talks to the store only through it and never learns backend details.

Documents are exchanged as plain dicts of the form ``{"id": ..., **fields}``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol

from ledger_sync.records import parse_timestamp

EMPLOYEES = "employees"
WORK_DAYS = "workDays"
PAYMENTS = "payments"
SETTINGS = "settings"
SETTINGS_DOCUMENT_ID = "preferences"
CREATED_AT = "createdAt"

Document = dict[str, Any]
SnapshotCallback = Callable[[list[Document]], None]
DocumentCallback = Callable[["Document | None"], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class _ServerTimestamp:
    """Placeholder the backend replaces with its own write time."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Any = _ServerTimestamp()


@dataclass(frozen=True)
class LedgerPaths:
    """Store paths for one identity's partition.

    Example:
      LedgerPaths("uid123").work_days
      => users/uid123/workDays
    """

    uid: str

    def __post_init__(self) -> None:
        if not self.uid or "/" in self.uid:
            raise ValueError(f"invalid identity uid: {self.uid!r}")

    @property
    def root(self) -> str:
        return f"users/{self.uid}"

    def collection(self, name: str) -> str:
        return f"{self.root}/{name}"

    def document(self, collection_name: str, document_id: str) -> str:
        return f"{self.collection(collection_name)}/{document_id}"

    @property
    def employees(self) -> str:
        return self.collection(EMPLOYEES)

    @property
    def work_days(self) -> str:
        return self.collection(WORK_DAYS)

    @property
    def payments(self) -> str:
        return self.collection(PAYMENTS)

    @property
    def settings_document(self) -> str:
        return self.document(SETTINGS, SETTINGS_DOCUMENT_ID)


def split_document_path(path: str) -> tuple[str, str]:
    """Split ``a/b/c/d`` into collection path ``a/b/c`` and document id ``d``."""
    collection_path, _, document_id = path.rpartition("/")
    if not collection_path or not document_id:
        raise ValueError(f"not a document path: {path!r}")
    return collection_path, document_id


def resolve_server_timestamps(fields: dict[str, Any], now: Any) -> dict[str, Any]:
    """Replace top-level SERVER_TIMESTAMP placeholders with ``now``."""
    return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in fields.items()}


def sort_newest_first(documents: Iterable[Document], field: str = CREATED_AT) -> list[Document]:
    """Order documents by a timestamp field, newest first, undated last."""
    dated: list[tuple[Any, Document]] = []
    undated: list[Document] = []
    for doc in documents:
        stamp = parse_timestamp(doc.get(field))
        if stamp is None:
            undated.append(doc)
        else:
            dated.append((stamp, doc))
    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [doc for _, doc in dated] + undated


class RemoteLedgerStore(Protocol):
    """Protocol for remote document store adapters.

    Subscriptions deliver the full current list on every change, never a
    diff, and never inline with the write that caused it. Unsubscribing
    guarantees no further callbacks for that subscription.
    """

    backend_name: str

    def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        *,
        order_by: str = CREATED_AT,
        descending: bool = True,
    ) -> Unsubscribe:
        """Watch a collection, ordered by ``order_by``."""
        ...

    def subscribe_document(
        self,
        path: str,
        on_snapshot: DocumentCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Watch a single document; ``None`` is delivered while it is absent."""
        ...

    async def create(
        self,
        collection_path: str,
        fields: dict[str, Any],
        document_id: str | None = None,
    ) -> str:
        """Create a document and return its id.

        A generated id is used unless ``document_id`` is given.
        """
        ...

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        """Merge ``fields`` into an existing document.

        Raises:
            DocumentNotFoundError: If no document exists at ``path``.
        """
        ...

    async def delete(self, path: str) -> None:
        """Delete a document; deleting a missing document is not an error."""
        ...

    async def query_by_field(
        self, collection_path: str, field: str, value: Any
    ) -> list[Document]:
        """Return documents whose ``field`` equals ``value``."""
        ...

    async def close(self) -> None:
        """Release connections held by the backend."""
        ...
