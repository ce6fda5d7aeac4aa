"""SQLModel definition for mirrored ledger documents."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import ClassVar, Optional

from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class MirrorDocument(SQLModel, table=True):
    """One record of one user's collection, stored as a JSON payload."""

    __tablename__: ClassVar[str] = "mirror_document"
    __table_args__ = (
        UniqueConstraint("user_id", "collection", "record_id", name="uq_mirror_document_key"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(nullable=False, index=True, max_length=64)
    collection: str = Field(nullable=False, index=True, max_length=64)
    record_id: str = Field(nullable=False, max_length=64)
    payload: str = Field(sa_column=Column(Text, nullable=False))
    # Soft delete keeps the last payload around for recovery.
    deleted: bool = Field(default=False, nullable=False)
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
