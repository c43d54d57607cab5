"""AuditLog model — persisted audit events."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class AuditLogBase(SQLModel):
    """Base fields for an audit log row. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    user_id: str | None = Field(default=None, index=True)
    action: str = Field(max_length=50, index=True)
    resource: str | None = Field(default=None, max_length=500)
    details: str | None = Field(default=None, max_length=1000)
    severity: str = Field(default="info", max_length=20)
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
        index=True,
    )


class AuditLog(AuditLogBase, table=True):
    """Default audit table — ``burrow_audit_logs``."""

    __tablename__ = "burrow_audit_logs"
