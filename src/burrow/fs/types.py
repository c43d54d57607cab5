"""Value objects: Principal, TreeEntry, and operation result types."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


class EntryType(str, Enum):
    """Kind of a tree entry."""

    FILE = "file"
    DIR = "dir"


@dataclass(frozen=True, slots=True)
class Principal:
    """An identity confined to a subtree of the store root.

    Attributes:
        user_id: Opaque identifier of the user.
        root_path: Subtree relative to the store root that scopes every
            operation for this identity.
        active: Inactive principals are never authorized.
        storage_quota: Optional quota in bytes, reported by usage stats.
    """

    user_id: str
    root_path: str
    active: bool = True
    storage_quota: int | None = None


@dataclass
class TreeEntry:
    """File/directory metadata with its path relative to the store root."""

    name: str
    type: EntryType
    relative_path: str
    size: int = 0
    last_modified: datetime | None = None
    extension: str = ""

    @property
    def is_directory(self) -> bool:
        return self.type is EntryType.DIR


@dataclass
class PagedResult:
    """One page of a sorted listing."""

    items: list[TreeEntry] = field(default_factory=list)
    page: int = 1
    page_size: int = 50
    total_count: int = 0
    path: str = ""

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0


@dataclass
class UploadResult:
    """Result of an upload operation."""

    path: str
    name: str
    size_bytes: int
    created: bool = True


@dataclass
class MkdirResult:
    """Result of a create-directory operation."""

    path: str
    name: str


@dataclass
class DeleteResult:
    """Result of a delete operation."""

    path: str
    is_directory: bool
    permanent: bool
    trash_record_id: str | None = None


@dataclass
class ChecksumResult:
    """Digest of a file's content."""

    path: str
    checksum: str
    algorithm: str = "SHA256"


@dataclass
class FileDownload:
    """An opened file ready to be streamed to the caller.

    The caller owns ``stream`` and must close it.
    """

    path: str
    name: str
    size: int
    mime_type: str
    stream: IO[bytes]


@dataclass
class MoveItem:
    """One source of a batch move.  ``is_directory`` is detected when None."""

    path: str
    is_directory: bool | None = None


@dataclass
class MovedItem:
    """A batch item that reached its destination."""

    original_path: str
    destination_path: str
    name: str
    is_directory: bool
    size_bytes: int = 0


@dataclass
class FailedItem:
    """A batch item that was skipped or failed."""

    path: str
    name: str
    reason: str


@dataclass
class MoveBatchResult:
    """Per-item report and aggregate counters of a batch move."""

    moved_items: list[MovedItem] = field(default_factory=list)
    failed_items: list[FailedItem] = field(default_factory=list)
    total_items: int = 0
    total_size: int = 0
    moved_size: int = 0

    @property
    def moved_count(self) -> int:
        return len(self.moved_items)

    @property
    def failed_count(self) -> int:
        return len(self.failed_items)


@dataclass
class TrashInfo:
    """User-facing view of a trash record."""

    id: str
    name: str
    original_path: str
    type: EntryType
    size: int
    deleted_at: datetime
    expires_at: datetime | None = None


@dataclass
class RestoreResult:
    """Result of restoring a trashed item."""

    path: str
    record_id: str


@dataclass
class PurgeResult:
    """Outcome of a trash maintenance sweep."""

    purged_ids: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def purged_count(self) -> int:
        return len(self.purged_ids)


@dataclass
class UsageStats:
    """Space usage of a principal's subtree."""

    total_size: int
    file_count: int
    folder_count: int
    quota: int | None = None

    @property
    def quota_used(self) -> int:
        return self.total_size

    @property
    def quota_percent(self) -> float:
        if not self.quota:
            return 0.0
        return self.total_size / self.quota * 100

    @property
    def quota_remaining(self) -> int | None:
        if self.quota is None:
            return None
        return max(0, self.quota - self.total_size)
