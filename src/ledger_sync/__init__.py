"""Synchronized employee, work day and payment ledger."""

from ledger_sync.config import Settings, SyncConfig, get_settings
from ledger_sync.errors import (
    DocumentNotFoundError,
    LedgerError,
    NotFoundError,
    PreconditionError,
    StoreConnectionError,
    WriteError,
)
from ledger_sync.identity import Identity, IdentityFeed, IdentityProvider
from ledger_sync.records import (
    Employee,
    HoursBasedWorkDay,
    LedgerSettings,
    Payment,
    PaymentDetails,
    RateBasedWorkDay,
    WorkDay,
)
from ledger_sync.session import LedgerSession

__version__ = "0.1.0"

__all__ = [
    "DocumentNotFoundError",
    "Employee",
    "HoursBasedWorkDay",
    "Identity",
    "IdentityFeed",
    "IdentityProvider",
    "LedgerError",
    "LedgerSession",
    "LedgerSettings",
    "NotFoundError",
    "Payment",
    "PaymentDetails",
    "PreconditionError",
    "RateBasedWorkDay",
    "Settings",
    "StoreConnectionError",
    "SyncConfig",
    "WorkDay",
    "WriteError",
    "get_settings",
]
