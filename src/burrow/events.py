"""AuditBus and audit event types emitted by file operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from burrow.models.audit import AuditLogBase

    AuditHandler = Callable[["AuditEvent"], Awaitable[Any]]

logger = logging.getLogger(__name__)


class AuditAction(Enum):
    """Operations that produce an audit event."""

    FILE_UPLOADED = "file_uploaded"
    FOLDER_CREATED = "folder_created"
    FILE_MOVED_TO_TRASH = "file_moved_to_trash"
    FOLDER_MOVED_TO_TRASH = "folder_moved_to_trash"
    FILE_DELETED = "file_deleted"
    FOLDER_DELETED = "folder_deleted"
    ITEM_RESTORED = "item_restored_from_trash"
    ITEM_DELETED_FROM_TRASH = "item_deleted_from_trash"
    ITEM_PURGED = "item_purged_from_trash"
    FILE_MOVED = "file_moved"
    FOLDER_MOVED = "folder_moved"
    CHECKSUM_REQUESTED = "checksum_requested"


class AuditSeverity(str, Enum):
    """Severity level of an audit event."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """Immutable record of an audited operation.

    Attributes:
        action: What happened.
        user_id: Principal that performed it; None for maintenance jobs.
        resource: Logical path of the affected item.
        details: Free-form description (sizes, destinations).
        severity: Info for normal operations.
        timestamp: UTC time the event was created.
    """

    action: AuditAction
    user_id: str | None = None
    resource: str | None = None
    details: str | None = None
    severity: AuditSeverity = AuditSeverity.INFO
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class AuditBus:
    """Dispatches audit events to registered handlers.

    Handlers are called sequentially in registration order.
    Exceptions are logged but never propagated to the file operation.
    """

    def __init__(self) -> None:
        self._handlers: list[AuditHandler] = []

    def register(self, handler: AuditHandler) -> None:
        """Append *handler*."""
        self._handlers.append(handler)

    def unregister(self, handler: AuditHandler) -> bool:
        """Remove first occurrence of *handler*. Return True if found."""
        try:
            self._handlers.remove(handler)
            return True
        except ValueError:
            return False

    async def emit(self, event: AuditEvent) -> None:
        """Dispatch *event* to all registered handlers."""
        for handler in self._handlers:
            try:
                await handler(event)
            except Exception:
                logger.warning(
                    "Audit handler %r failed for %s on %s",
                    handler,
                    event.action.value,
                    event.resource,
                    exc_info=True,
                )

    @property
    def handler_count(self) -> int:
        """Number of registered handlers."""
        return len(self._handlers)

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()


class AuditLogWriter:
    """Audit handler that persists events as ``AuditLog`` rows.

    Opens its own session per event so a failed audit write can never
    roll back the caller's transaction.
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        log_model: type[AuditLogBase] | None = None,
    ) -> None:
        if log_model is None:
            from burrow.models.audit import AuditLog

            log_model = AuditLog
        self._session_factory = session_factory
        self._log_model = log_model

    async def __call__(self, event: AuditEvent) -> None:
        async with self._session_factory() as session:
            session.add(
                self._log_model(
                    user_id=event.user_id,
                    action=event.action.value,
                    resource=event.resource[:500] if event.resource else None,
                    details=event.details[:1000] if event.details else None,
                    severity=event.severity.value,
                    timestamp=event.timestamp,
                )
            )
            await session.commit()
