"""File tree layer: path guard, walker, transfers, trash and the service façade."""

from burrow.fs.exceptions import (
    AlreadyExistsError,
    BurrowError,
    InvalidArgumentError,
    PathNotFoundError,
    StorageError,
    TransferCancelledError,
    UnauthorizedError,
)
from burrow.fs.guard import PathGuard
from burrow.fs.protocol import PrincipalResolver
from burrow.fs.service import FileTreeService
from burrow.fs.transfer import TransferEngine
from burrow.fs.trash import TrashStore
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
from burrow.fs.walker import TreeWalker

__all__ = [
    "AlreadyExistsError",
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
    "PathGuard",
    "PathNotFoundError",
    "Principal",
    "PrincipalResolver",
    "PurgeResult",
    "RestoreResult",
    "StorageError",
    "TransferCancelledError",
    "TransferEngine",
    "TrashInfo",
    "TrashStore",
    "TreeEntry",
    "TreeWalker",
    "UnauthorizedError",
    "UploadResult",
    "UsageStats",
]
