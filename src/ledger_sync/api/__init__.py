"""HTTP surface of the ledger session."""

from ledger_sync.api.app import create_app

__all__ = ["create_app"]
