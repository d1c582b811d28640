"""SQLAlchemy ORM models for the SQL-backed ledger store."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
        dict[str, Any]: JSON,
    }


class TimestampMixin:
    """Mixin for rows that track their last write."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class LedgerDocument(TimestampMixin, Base):
    """One document of a collection, stored as a JSON body.

    ``created_at`` mirrors the document's ``createdAt`` field so that
    collections can be ordered without parsing JSON.
    """

    __tablename__ = "ledger_documents"
    __table_args__ = (
        Index("ix_ledger_documents_collection_created", "collection_path", "created_at"),
    )

    collection_path: Mapped[str] = mapped_column(String(512), primary_key=True)
    document_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(nullable=False)
    created_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_document(self) -> dict[str, Any]:
        """Return the store-level document ``{id, ...fields}``."""
        return {"id": self.document_id, **(self.data or {})}
