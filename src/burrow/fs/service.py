"""FileTreeService — per-principal façade over the guarded file tree.

Every public operation authorizes its paths through ``PathGuard`` before
touching the disk, then delegates to ``TreeWalker`` (reads),
``TransferEngine`` (writes and moves) or ``TrashStore`` (soft delete).
Blocking disk work runs in worker threads via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime, time
from typing import IO, TYPE_CHECKING, TypeVar

from burrow.events import AuditAction, AuditEvent

from .exceptions import (
    AlreadyExistsError,
    BurrowError,
    InvalidArgumentError,
    PathNotFoundError,
    StorageError,
    TransferCancelledError,
    UnauthorizedError,
)
from .guard import PathGuard
from .transfer import TransferEngine
from .trash import TrashStore, as_utc
from .types import (
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
    PurgeResult,
    RestoreResult,
    TrashInfo,
    TreeEntry,
    UploadResult,
    UsageStats,
)
from .utils import (
    guess_mime_type,
    is_within,
    join_path,
    normalize_extension,
    split_path,
    validate_name,
)
from .walker import TreeWalker

if TYPE_CHECKING:
    import threading
    from collections.abc import AsyncGenerator, Callable, Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from burrow.config import BurrowConfig
    from burrow.events import AuditBus
    from burrow.models.trash import TrashItemBase

    from .protocol import PrincipalResolver
    from .types import Principal

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)

_T = TypeVar("_T")


class FileTreeService:
    """Lists, searches, uploads, downloads, moves and trashes files for principals.

    Stateless apart from the injected configuration and collaborators, so
    one instance can serve many concurrent callers.  No locking is done
    across paths; the filesystem arbitrates concurrent writers.
    """

    def __init__(
        self,
        config: BurrowConfig,
        session_factory: Callable[..., AsyncSession],
        *,
        audit_bus: AuditBus | None = None,
        resolver: PrincipalResolver | None = None,
        trash_model: type[TrashItemBase] | None = None,
    ) -> None:
        self._config = config
        self._session_factory = session_factory
        self._audit_bus = audit_bus
        self._resolver = resolver

        self._guard = PathGuard()
        self._walker = TreeWalker(config.root_path)
        self._transfer = TransferEngine(config.root_path, self._walker, config.chunk_size)
        self._trash = TrashStore(config, self._transfer, self._walker, trash_model)

    @property
    def guard(self) -> PathGuard:
        return self._guard

    @property
    def walker(self) -> TreeWalker:
        return self._walker

    @property
    def transfer(self) -> TransferEngine:
        return self._transfer

    @property
    def trash(self) -> TrashStore:
        return self._trash

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def _io(self, operation: str, path: str, fn: Callable[..., _T], *args: object) -> _T:
        """Run blocking *fn* in a worker thread, mapping ``OSError`` to ``StorageError``."""
        try:
            return await asyncio.to_thread(fn, *args)
        except OSError as e:
            logger.exception("%s failed for %s", operation, path)
            raise StorageError(f"{operation} failed for {path}: {e}") from e

    async def _audit(
        self,
        action: AuditAction,
        principal: Principal | None,
        resource: str | None = None,
        details: str | None = None,
    ) -> None:
        if self._audit_bus is not None:
            await self._audit_bus.emit(
                AuditEvent(
                    action=action,
                    user_id=principal.user_id if principal is not None else None,
                    resource=resource,
                    details=details,
                )
            )

    def _root(self, principal: Principal) -> str:
        root = self._guard.principal_root(principal)
        if root is None:
            raise UnauthorizedError("Principal is inactive or has no root folder")
        return root

    def _reject_trash(self, root: str, path: str) -> None:
        if self._trash.is_trash_path(root, path):
            raise InvalidArgumentError(f"Path is reserved for the trash: {path}")

    def _page_params(self, page: int | None, page_size: int | None) -> tuple[int, int]:
        page = max(1, page or 1)
        if page_size is None:
            page_size = self._config.default_page_size
        page_size = min(max(1, page_size), self._config.max_page_size)
        return page, page_size

    def _paginate(
        self, entries: list[TreeEntry], page: int | None, page_size: int | None, path: str
    ) -> PagedResult:
        """Directories first, each group newest first, then slice one page."""
        page, page_size = self._page_params(page, page_size)
        entries.sort(key=lambda e: e.last_modified or _EPOCH, reverse=True)
        entries.sort(key=lambda e: e.type is EntryType.FILE)
        start = (page - 1) * page_size
        return PagedResult(
            items=entries[start : start + page_size],
            page=page,
            page_size=page_size,
            total_count=len(entries),
            path=path,
        )

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    async def authenticate(self, credential: str | None) -> Principal:
        """Resolve a credential to an active principal or raise ``UnauthorizedError``."""
        if self._resolver is None:
            raise UnauthorizedError("No principal resolver configured")
        if not credential:
            raise UnauthorizedError("Missing credential")
        principal = await self._resolver.resolve(credential)
        if principal is None or self._guard.principal_root(principal) is None:
            raise UnauthorizedError("Unknown or inactive principal")
        return principal

    async def ensure_principal_root(self, principal: Principal) -> bool:
        """Create the principal's root folder if missing.  Returns True if created."""
        root = self._root(principal)
        created = await self._io("mkdir", root, self._transfer.make_directory, root)
        if created:
            logger.info("Created root folder for %s: %s", principal.user_id, root)
        return created

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def list_directory(
        self,
        principal: Principal,
        path: str | None = None,
        page: int | None = 1,
        page_size: int | None = None,
    ) -> PagedResult:
        """One level of *path* (default: the principal root), sorted and paginated."""
        root = self._root(principal)
        target = self._guard.require(principal, path or root)
        files, dirs = await self._io("list", target, self._walker.list_dir, target)
        entries = [d for d in dirs if not self._trash.is_trash_path(root, d.relative_path)]
        entries.extend(files)
        return self._paginate(entries, page, page_size, target)

    async def get_info(self, principal: Principal, path: str) -> TreeEntry:
        """Metadata of a single file or directory."""
        target = self._guard.require(principal, path)
        entry = await self._io("stat", target, self._walker.get_entry, target)
        if entry is None:
            raise PathNotFoundError(f"Path not found: {target}")
        return entry

    async def search(
        self,
        principal: Principal,
        query: str | None = None,
        extensions: str | Iterable[str] | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
        date_from: date | datetime | None = None,
        date_to: date | datetime | None = None,
        page: int | None = 1,
        page_size: int | None = None,
    ) -> PagedResult:
        """Recursive search of the principal's own tree.

        Filters combine with AND: name or path substring (case-insensitive),
        extension set (files only), inclusive size bounds (files only), and
        modification date bounds where *date_to* covers its whole day.
        """
        root = self._root(principal)

        if (min_size is not None and min_size < 0) or (max_size is not None and max_size < 0):
            raise InvalidArgumentError("Size bounds must not be negative")
        if min_size is not None and max_size is not None and min_size > max_size:
            raise InvalidArgumentError("min_size is greater than max_size")

        needle = query.strip().casefold() if query and query.strip() else None
        ext_set = _parse_extensions(extensions)
        lower = _start_of_day(date_from) if date_from is not None else None
        upper = _end_of_day(date_to) if date_to is not None else None
        if lower is not None and upper is not None and lower > upper:
            raise InvalidArgumentError("date_from is after date_to")

        def matches(entry: TreeEntry) -> bool:
            # Match below the principal root so its own segments never match.
            if needle is not None and needle not in entry.relative_path[len(root) + 1 :].casefold():
                return False
            is_file = entry.type is EntryType.FILE
            if ext_set and (not is_file or entry.extension not in ext_set):
                return False
            if min_size is not None and (not is_file or entry.size < min_size):
                return False
            if max_size is not None and (not is_file or entry.size > max_size):
                return False
            modified = entry.last_modified or _EPOCH
            if lower is not None and modified < lower:
                return False
            return not (upper is not None and modified > upper)

        def collect() -> list[TreeEntry]:
            return [
                e
                for e in self._walker.walk(root)
                if not self._trash.is_trash_path(root, e.relative_path) and matches(e)
            ]

        entries = await self._io("search", root, collect)
        return self._paginate(entries, page, page_size, root)

    async def open_download(self, principal: Principal, path: str) -> FileDownload:
        """Open a file for streaming.  The caller closes ``FileDownload.stream``."""
        target = self._guard.require(principal, path)
        entry = await self._io("stat", target, self._walker.get_entry, target)
        if entry is None or entry.is_directory:
            raise PathNotFoundError(f"File not found: {target}")
        stream = await self._io("open", target, self._transfer.open_read, target)
        return FileDownload(
            path=target,
            name=entry.name,
            size=entry.size,
            mime_type=guess_mime_type(entry.name),
            stream=stream,
        )

    async def read_range(self, principal: Principal, path: str, offset: int, length: int) -> bytes:
        """Byte-range read for previews and resumable streaming."""
        target = self._guard.require(principal, path)
        return await self._io("read", target, self._transfer.read_range, target, offset, length)

    async def checksum(self, principal: Principal, path: str) -> ChecksumResult:
        """SHA-256 digest of a file."""
        target = self._guard.require(principal, path)
        digest = await self._io("checksum", target, self._transfer.checksum, target)
        await self._audit(AuditAction.CHECKSUM_REQUESTED, principal, target)
        return ChecksumResult(path=target, checksum=digest)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def upload(
        self,
        principal: Principal,
        directory: str | None,
        filename: str,
        stream: IO[bytes] | Iterable[bytes],
    ) -> UploadResult:
        """Store *stream* as *filename* inside *directory* (default: principal root)."""
        valid, error = validate_name(filename)
        if not valid:
            raise InvalidArgumentError(error)

        root = self._root(principal)
        target = self._guard.require(principal, join_path(directory or root, filename))
        self._reject_trash(root, target)

        existed = await self._io("stat", target, self._transfer.is_file, target)
        size = await self._io("upload", target, self._transfer.save, target, stream)
        await self._audit(AuditAction.FILE_UPLOADED, principal, target, f"{size} bytes")
        return UploadResult(path=target, name=filename, size_bytes=size, created=not existed)

    async def create_directory(self, principal: Principal, parent: str | None, name: str) -> MkdirResult:
        """Create folder *name* inside *parent* (default: principal root)."""
        valid, error = validate_name(name)
        if not valid:
            raise InvalidArgumentError(error)

        root = self._root(principal)
        target = self._guard.require(principal, join_path(parent or root, name))
        self._reject_trash(root, target)

        created = await self._io("mkdir", target, self._transfer.make_directory, target)
        if not created:
            raise AlreadyExistsError(f"Folder already exists: {target}")
        await self._audit(AuditAction.FOLDER_CREATED, principal, target)
        return MkdirResult(path=target, name=name)

    async def delete(self, principal: Principal, path: str, permanent: bool = False) -> DeleteResult:
        """Move an item to the trash, or remove it outright when *permanent*."""
        root = self._root(principal)
        target = self._guard.require(principal, path)
        if target.casefold() == root.casefold():
            raise InvalidArgumentError("Cannot delete the principal root")

        is_dir = await self._io("stat", target, self._transfer.is_dir, target)
        if not is_dir and not await self._io("stat", target, self._transfer.is_file, target):
            raise PathNotFoundError(f"Path not found: {target}")

        if permanent:
            remove = self._transfer.delete_tree if is_dir else self._transfer.delete
            if not await self._io("delete", target, remove, target):
                raise PathNotFoundError(f"Path not found: {target}")
            action = AuditAction.FOLDER_DELETED if is_dir else AuditAction.FILE_DELETED
            await self._audit(action, principal, target, "Permanent delete")
            return DeleteResult(path=target, is_directory=is_dir, permanent=True)

        trash_path = ""
        try:
            async with self._session() as session:
                record = await self._trash.soft_delete(session, principal, target, is_dir)
                record_id, trash_path = record.id, record.trash_path
        except Exception as e:
            if trash_path:
                logger.error("Trash record for %s not committed; moving item back", target)
                await self._trash.move_back(trash_path, target, is_dir)
            if isinstance(e, OSError):
                logger.exception("Moving %s to trash failed", target)
                raise StorageError(f"Moving to trash failed for {target}: {e}") from e
            raise

        action = AuditAction.FOLDER_MOVED_TO_TRASH if is_dir else AuditAction.FILE_MOVED_TO_TRASH
        await self._audit(action, principal, target, f"Moved to trash: {trash_path}")
        return DeleteResult(path=target, is_directory=is_dir, permanent=False, trash_record_id=record_id)

    async def move_batch(
        self,
        principal: Principal,
        items: list[MoveItem],
        destination: str,
        overwrite: bool = False,
        on_progress: Callable[[int], None] | None = None,
        cancel: threading.Event | None = None,
    ) -> MoveBatchResult:
        """Move several items into *destination*; each item succeeds or fails alone.

        Every source and the destination are authorized before anything
        moves.  *on_progress* receives the cumulative bytes moved across the
        whole batch and runs on the worker thread.  Setting *cancel* stops
        the current file after its in-flight chunk and fails the rest.
        """
        if not items:
            raise InvalidArgumentError("No items to move")
        if not destination:
            raise InvalidArgumentError("Destination path is required")

        root = self._root(principal)
        sources = [self._guard.require(principal, item.path) for item in items]
        dest_dir = self._guard.require(principal, destination)
        self._reject_trash(root, dest_dir)

        sizes = await asyncio.to_thread(lambda: [self._estimate_size(s) for s in sources])
        result = MoveBatchResult(total_items=len(items), total_size=sum(sizes))

        for index, (item, source) in enumerate(zip(items, sources, strict=True)):
            _, name = split_path(source)
            target = join_path(dest_dir, name)

            if cancel is not None and cancel.is_set():
                result.failed_items.append(FailedItem(source, name, "Move cancelled."))
                continue

            base = result.moved_size
            copied = [0]

            def report(cumulative: int, base: int = base, copied: list[int] = copied) -> None:
                copied[0] = cumulative
                if on_progress is not None:
                    on_progress(base + cumulative)

            try:
                is_dir = item.is_directory
                if is_dir is None:
                    is_dir = await self._io("stat", source, self._transfer.is_dir, source)

                reason = await self._check_move_target(source, target, is_dir, overwrite)
                if reason is not None:
                    result.failed_items.append(FailedItem(source, name, reason))
                    continue

                move = self._transfer.move_directory if is_dir else self._transfer.move_file
                moved = await self._io("move", source, move, source, target, report, cancel)
            except TransferCancelledError:
                logger.info("Move of %s cancelled", source)
                result.failed_items.append(FailedItem(source, name, "Move cancelled."))
                continue
            except BurrowError as e:
                logger.warning("Failed to move %s -> %s: %s", source, target, e)
                result.failed_items.append(FailedItem(source, name, str(e)))
                continue

            if not moved:
                result.failed_items.append(FailedItem(source, name, "Source not found."))
                continue

            result.moved_size += copied[0]
            result.moved_items.append(
                MovedItem(
                    original_path=source,
                    destination_path=target,
                    name=name,
                    is_directory=is_dir,
                    size_bytes=sizes[index],
                )
            )
            action = AuditAction.FOLDER_MOVED if is_dir else AuditAction.FILE_MOVED
            await self._audit(action, principal, source, f"Moved: {source} -> {target}")

        logger.info(
            "Batch move into %s: %d moved, %d failed",
            dest_dir,
            result.moved_count,
            result.failed_count,
        )
        return result

    def _estimate_size(self, path: str) -> int:
        """Best-effort size for the planned total; unreadable items count as 0."""
        try:
            return self._walker.total_size(path)
        except (BurrowError, OSError):
            logger.debug("Cannot size %s", path, exc_info=True)
            return 0

    async def _check_move_target(
        self, source: str, target: str, is_dir: bool, overwrite: bool
    ) -> str | None:
        """Return the reason an item cannot move to *target*, or None."""
        if source.casefold() == target.casefold():
            return "Source and destination are the same."
        if is_dir and is_within(target, source):
            return "Cannot move a folder into itself."
        exists = await self._io("stat", target, self._transfer.exists, target)
        if exists and not overwrite:
            return "Item already exists in the destination folder."
        if exists and is_within(source, target):
            return "Cannot replace a folder that contains the item."
        return None

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------

    async def list_trash(self, principal: Principal) -> list[TrashInfo]:
        """The principal's trashed items, most recently deleted first."""
        self._root(principal)
        async with self._session() as session:
            records = await self._trash.list_records(session, principal.user_id)
            return [
                TrashInfo(
                    id=r.id,
                    name=r.name,
                    original_path=r.original_path,
                    type=EntryType(r.type),
                    size=r.size,
                    deleted_at=as_utc(r.deleted_at),
                    expires_at=as_utc(r.expires_at) if r.expires_at is not None else None,
                )
                for r in records
            ]

    async def _owned_record(self, session: AsyncSession, principal: Principal, record_id: str) -> TrashItemBase:
        record = await self._trash.get_record(session, record_id, principal.user_id)
        if record is None:
            raise PathNotFoundError(f"Trash item not found: {record_id}")
        return record

    async def restore_from_trash(self, principal: Principal, record_id: str) -> RestoreResult:
        """Put a trashed item back where it was deleted from."""
        self._root(principal)
        async with self._session() as session:
            record = await self._owned_record(session, principal, record_id)
            self._guard.require(principal, record.original_path)
            restored = await self._trash.restore(session, record)
        await self._audit(AuditAction.ITEM_RESTORED, principal, restored)
        return RestoreResult(path=restored, record_id=record_id)

    async def delete_from_trash(self, principal: Principal, record_id: str) -> None:
        """Permanently remove one trashed item."""
        self._root(principal)
        async with self._session() as session:
            record = await self._owned_record(session, principal, record_id)
            original = record.original_path
            await self._trash.permanently_delete(session, record)
        await self._audit(AuditAction.ITEM_DELETED_FROM_TRASH, principal, original)

    async def purge_expired_trash(self, now: datetime | None = None) -> PurgeResult:
        """Maintenance sweep over every principal's expired trash."""
        async with self._session() as session:
            outcome = await self._trash.purge_expired(session, now)
        if outcome.purged_count:
            await self._audit(
                AuditAction.ITEM_PURGED, None, None, f"Purged {outcome.purged_count} expired items"
            )
        return outcome

    # ------------------------------------------------------------------
    # Usage
    # ------------------------------------------------------------------

    async def usage_stats(self, principal: Principal) -> UsageStats:
        """Total size and counts of the principal's tree, trash included."""
        root = self._root(principal)

        def collect() -> UsageStats:
            total = files = folders = 0
            for entry in self._walker.walk(root):
                if entry.is_directory:
                    folders += 1
                else:
                    files += 1
                    total += entry.size
            return UsageStats(
                total_size=total,
                file_count=files,
                folder_count=folders,
                quota=principal.storage_quota,
            )

        return await self._io("usage", root, collect)

    async def largest_files(self, principal: Principal, limit: int = 10) -> list[TreeEntry]:
        """The principal's biggest files outside the trash."""
        root = self._root(principal)
        limit = max(1, limit)

        def collect() -> list[TreeEntry]:
            files = [
                f
                for f in self._walker.walk_files(root)
                if not self._trash.is_trash_path(root, f.relative_path)
            ]
            files.sort(key=lambda f: f.size, reverse=True)
            return files[:limit]

        return await self._io("largest files", root, collect)


# ----------------------------------------------------------------------
# Filter helpers
# ----------------------------------------------------------------------


def _parse_extensions(extensions: str | Iterable[str] | None) -> set[str]:
    """Accept ``"pdf, .TXT"`` or an iterable; return normalized ``{".pdf", ".txt"}``."""
    if extensions is None:
        return set()
    if isinstance(extensions, str):
        extensions = extensions.split(",")
    return {e for e in (normalize_extension(x) for x in extensions) if e}


def _start_of_day(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    return datetime.combine(value, time.min, tzinfo=UTC)


def _end_of_day(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        value = as_utc(value)
        return datetime.combine(value.date(), time.max, tzinfo=value.tzinfo)
    return datetime.combine(value, time.max, tzinfo=UTC)
