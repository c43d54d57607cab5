"""Burrow: per-user file trees on local disk.

Guarded listing, search, streamed transfers, batch moves and a recoverable trash.
"""

__version__ = "0.1.0"

from burrow.config import BurrowConfig
from burrow.events import AuditAction, AuditBus, AuditEvent, AuditLogWriter, AuditSeverity
from burrow.fs.exceptions import (
    AlreadyExistsError,
    BurrowError,
    InvalidArgumentError,
    PathNotFoundError,
    StorageError,
    TransferCancelledError,
    UnauthorizedError,
)
from burrow.fs.protocol import PrincipalResolver
from burrow.fs.service import FileTreeService
from burrow.fs.types import (
    ChecksumResult,
    DeleteResult,
    EntryType,
    FailedItem,
    FileDownload,
    MkdirResult,
    MovedItem,
    MoveBatchResult,
    MoveItem,
    PagedResult,
    Principal,
    PurgeResult,
    RestoreResult,
    TrashInfo,
    TreeEntry,
    UploadResult,
    UsageStats,
)

__all__ = [
    "AlreadyExistsError",
    "AuditAction",
    "AuditBus",
    "AuditEvent",
    "AuditLogWriter",
    "AuditSeverity",
    "BurrowConfig",
    "BurrowError",
    "ChecksumResult",
    "DeleteResult",
    "EntryType",
    "FailedItem",
    "FileDownload",
    "FileTreeService",
    "InvalidArgumentError",
    "MkdirResult",
    "MoveBatchResult",
    "MoveItem",
    "MovedItem",
    "PagedResult",
    "PathNotFoundError",
    "Principal",
    "PrincipalResolver",
    "PurgeResult",
    "RestoreResult",
    "StorageError",
    "TransferCancelledError",
    "TrashInfo",
    "TreeEntry",
    "UnauthorizedError",
    "UploadResult",
    "UsageStats",
    "__version__",
]
