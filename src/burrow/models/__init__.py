"""SQLModel tables owned by burrow."""

from burrow.models.audit import AuditLog, AuditLogBase
from burrow.models.trash import TrashItem, TrashItemBase

__all__ = [
    "AuditLog",
    "AuditLogBase",
    "TrashItem",
    "TrashItemBase",
]
