"""Configuration management for the ledger sync engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

BACKENDS = frozenset({"memory", "sql", "firestore"})


@dataclass(frozen=True)
class SyncConfig:
    """
    Timing behavior of a ledger session.

    Attributes:
        min_visible_seconds: How long the syncing indicator stays on after
            the last in-flight mutation finishes. Default 0.5.
        init_grace_seconds: Delay after subscriptions are requested before
            the session accepts mutations. Default 1.0.
    """

    min_visible_seconds: float = 0.5
    init_grace_seconds: float = 1.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.min_visible_seconds < 0:
            raise ValueError("min_visible_seconds cannot be negative")
        if self.init_grace_seconds < 0:
            raise ValueError("init_grace_seconds cannot be negative")


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    backend: str
    database_url: str
    firebase_project_id: str | None
    sync_min_visible_ms: int
    init_grace_ms: int
    host: str
    port: int
    debug: bool

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ValueError(f"LEDGER_BACKEND must be one of {sorted(BACKENDS)}")

    @property
    def sync_config(self) -> SyncConfig:
        """Session timing derived from the millisecond settings."""
        return SyncConfig(
            min_visible_seconds=self.sync_min_visible_ms / 1000,
            init_grace_seconds=self.init_grace_ms / 1000,
        )

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            backend=os.getenv("LEDGER_BACKEND", "memory").lower(),
            database_url=os.getenv(
                "DATABASE_URL",
                "sqlite+aiosqlite:///./ledger.db",
            ),
            firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
            sync_min_visible_ms=int(os.getenv("SYNC_MIN_VISIBLE_MS", "500")),
            init_grace_ms=int(os.getenv("INIT_GRACE_MS", "1000")),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "8000")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
