"""TrashItem model — bookkeeping for soft-deleted files and folders.

Provides ``TrashItemBase`` (non-table) and ``TrashItem`` (concrete table).
Subclass ``TrashItemBase`` with ``table=True`` and a custom ``__tablename__``
to use a different table name.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class TrashItemBase(SQLModel):
    """Base fields for a trash record. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str = Field(index=True)
    original_path: str = Field(max_length=500)
    trash_path: str = Field(max_length=500)
    name: str = Field(max_length=255)
    type: str = Field(default="file", max_length=20)
    size: int = Field(default=0)
    deleted_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
        index=True,
    )
    expires_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
        index=True,
    )


class TrashItem(TrashItemBase, table=True):
    """Default trash table — ``burrow_trash_items``."""

    __tablename__ = "burrow_trash_items"
