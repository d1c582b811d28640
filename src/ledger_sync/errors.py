"""Exception types for the ledger sync engine."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger sync errors."""


class StoreConnectionError(LedgerError):
    """A live subscription failed to attach or was dropped by the store."""

    def __init__(self, collection: str, reason: str | None = None):
        self.collection = collection
        self.reason = reason
        msg = f"Connection to '{collection}' failed"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class WriteError(LedgerError):
    """A mutation's remote write failed.

    The message is the user-facing, kind-specific text that is also placed
    in the store's error flag (e.g. "Failed to add employee").
    """

    def __init__(self, message: str, operation: str):
        self.message = message
        self.operation = operation
        super().__init__(message)


class NotFoundError(LedgerError):
    """A referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} '{entity_id}' not found")


class DocumentNotFoundError(NotFoundError):
    """The remote store has no document at the given path."""

    def __init__(self, path: str):
        self.path = path
        super().__init__("Document", path)


class PreconditionError(LedgerError):
    """A mutation was attempted without an identity or before initialization."""
