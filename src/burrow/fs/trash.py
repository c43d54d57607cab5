"""TrashStore — soft delete, restore, purge and trash record bookkeeping."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlmodel import select

from .exceptions import (
    BurrowError,
    InvalidArgumentError,
    PathNotFoundError,
    UnauthorizedError,
)
from .guard import PathGuard
from .types import EntryType, PurgeResult
from .utils import is_within, join_path, normalize_path, split_path

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from burrow.config import BurrowConfig
    from burrow.models.trash import TrashItemBase

    from .transfer import TransferEngine
    from .types import Principal
    from .walker import TreeWalker

logger = logging.getLogger(__name__)

TRASH_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends without tz support."""
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class TrashStore:
    """Moves items aside into ``<principal root>/.trash`` and tracks them.

    Lifecycle of an item: live -> trashed -> restored (live again) or
    purged (terminal).  Records live in the injected SQLModel table; the
    caller supplies a session per call and owns the commit.
    """

    def __init__(
        self,
        config: BurrowConfig,
        transfer: TransferEngine,
        walker: TreeWalker,
        trash_model: type[TrashItemBase] | None = None,
    ) -> None:
        if trash_model is None:
            from burrow.models.trash import TrashItem

            trash_model = TrashItem
        self._config = config
        self._transfer = transfer
        self._walker = walker
        self._trash_model = trash_model

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def trash_dir(self, principal_root: str) -> str:
        """Logical path of the reserved trash directory for a principal root."""
        return join_path(principal_root, self._config.trash_dir_name)

    def is_trash_path(self, principal_root: str, path: str) -> bool:
        """True if *path* is the trash directory or anything inside it."""
        return is_within(normalize_path(path), self.trash_dir(principal_root))

    def _unique_trash_path(self, trash_dir: str, name: str, deleted_at: datetime) -> str:
        stamp = deleted_at.strftime(TRASH_TIMESTAMP_FORMAT)
        candidate = join_path(trash_dir, f"{stamp}_{name}")
        counter = 1
        while self._transfer.exists(candidate):
            candidate = join_path(trash_dir, f"{stamp}_{counter}_{name}")
            counter += 1
        return candidate

    # ------------------------------------------------------------------
    # Soft delete
    # ------------------------------------------------------------------

    def _move_to_trash(
        self, original_path: str, is_dir: bool, principal_root: str, deleted_at: datetime
    ) -> tuple[str, int]:
        if is_dir and not self._transfer.is_dir(original_path):
            raise PathNotFoundError(f"Directory not found: {original_path}")
        if not is_dir and not self._transfer.is_file(original_path):
            raise PathNotFoundError(f"File not found: {original_path}")

        trash_dir = self.trash_dir(principal_root)
        self._transfer.make_directory(trash_dir)
        _, name = split_path(original_path)
        trash_path = self._unique_trash_path(trash_dir, name, deleted_at)

        if is_dir:
            moved = self._transfer.move_directory(original_path, trash_path)
        else:
            moved = self._transfer.move_file(original_path, trash_path)
        if not moved:
            raise PathNotFoundError(f"Path vanished before it could be trashed: {original_path}")

        return trash_path, self._walker.total_size(trash_path)

    async def soft_delete(
        self,
        session: AsyncSession,
        principal: Principal,
        original_path: str,
        is_dir: bool | None = None,
        *,
        now: datetime | None = None,
    ) -> TrashItemBase:
        """Move *original_path* into the principal's trash and record it.

        The item must already be authorized for *principal*.  When
        *is_dir* is None the kind is detected from disk.
        """
        principal_root = PathGuard.principal_root(principal)
        if principal_root is None:
            raise UnauthorizedError(f"Principal {principal.user_id!r} has no usable root")

        original_path = normalize_path(original_path)
        if not is_within(original_path, principal_root):
            raise UnauthorizedError(f"Access denied: {original_path!r}")
        if original_path.casefold() == principal_root.casefold():
            raise InvalidArgumentError("Cannot delete the principal root")
        if self.is_trash_path(principal_root, original_path):
            raise InvalidArgumentError(f"Item is already in the trash: {original_path}")

        if is_dir is None:
            is_dir = await asyncio.to_thread(self._transfer.is_dir, original_path)

        deleted_at = now or datetime.now(UTC)
        trash_path, size = await asyncio.to_thread(
            self._move_to_trash, original_path, is_dir, principal_root, deleted_at
        )

        record = self._trash_model(
            user_id=principal.user_id,
            original_path=original_path,
            trash_path=trash_path,
            name=split_path(original_path)[1],
            type=(EntryType.DIR if is_dir else EntryType.FILE).value,
            size=size,
            deleted_at=deleted_at,
            expires_at=deleted_at + self._config.trash_retention,
        )
        session.add(record)
        try:
            await session.flush()
        except Exception:
            logger.error("Trash record for %s not saved; moving item back", original_path)
            await self.move_back(trash_path, original_path, is_dir)
            raise

        logger.info("Trashed %s -> %s (%d bytes)", original_path, trash_path, size)
        return record

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def _move_back(self, trash_path: str, original_path: str, is_dir: bool) -> bool:
        if is_dir:
            return self._transfer.move_directory(trash_path, original_path)
        return self._transfer.move_file(trash_path, original_path)

    async def move_back(self, trash_path: str, original_path: str, is_dir: bool) -> bool:
        """Undo a soft delete whose record never reached the database."""
        moved = await asyncio.to_thread(self._move_back, trash_path, original_path, is_dir)
        trash_dir, _ = split_path(trash_path)
        await asyncio.to_thread(self._transfer.remove_empty_directory, trash_dir)
        return moved

    async def restore(self, session: AsyncSession, record: TrashItemBase) -> str:
        """Move a trashed item back to its original path and drop the record.

        The original parent is recreated if needed and an item occupying
        the original path is replaced.  If the trashed item is gone from
        disk, ``PathNotFoundError`` is raised and the record is kept.
        """
        is_dir = record.type == EntryType.DIR.value
        moved = await asyncio.to_thread(
            self._move_back, record.trash_path, record.original_path, is_dir
        )
        if not moved:
            raise PathNotFoundError(f"Trashed item missing on disk: {record.trash_path}")

        trash_dir, _ = split_path(record.trash_path)
        await asyncio.to_thread(self._transfer.remove_empty_directory, trash_dir)

        await session.delete(record)
        await session.flush()
        logger.info("Restored %s from %s", record.original_path, record.trash_path)
        return record.original_path

    # ------------------------------------------------------------------
    # Permanent delete / purge
    # ------------------------------------------------------------------

    def _remove_from_disk(self, record: TrashItemBase) -> bool:
        if record.type == EntryType.DIR.value:
            return self._transfer.delete_tree(record.trash_path)
        return self._transfer.delete(record.trash_path)

    async def permanently_delete(self, session: AsyncSession, record: TrashItemBase) -> None:
        """Remove a trashed item from disk and drop its record."""
        removed = await asyncio.to_thread(self._remove_from_disk, record)
        if not removed:
            logger.warning("Trashed item already gone from disk: %s", record.trash_path)

        await session.delete(record)
        await session.flush()
        logger.info("Permanently deleted %s", record.trash_path)

    async def purge_expired(self, session: AsyncSession, now: datetime | None = None) -> PurgeResult:
        """Permanently delete every record with ``expires_at <= now``.

        A failure on one record is logged and reported; the sweep moves on.
        """
        now = now or datetime.now(UTC)
        model = self._trash_model
        result = await session.execute(
            select(model).where(
                model.expires_at.is_not(None),  # type: ignore[union-attr]
                model.expires_at <= now,  # type: ignore[operator]
            )
        )
        records = result.scalars().all()

        outcome = PurgeResult()
        for record in records:
            try:
                await self.permanently_delete(session, record)
            except (BurrowError, OSError) as e:
                logger.warning("Failed to purge trash record %s", record.id, exc_info=True)
                outcome.failed[record.id] = str(e)
                continue
            outcome.purged_ids.append(record.id)

        if records:
            logger.info(
                "Trash purge: %d purged, %d failed", outcome.purged_count, len(outcome.failed)
            )
        return outcome

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_records(self, session: AsyncSession, user_id: str) -> list[TrashItemBase]:
        """Trash records of *user_id*, most recently deleted first."""
        model = self._trash_model
        result = await session.execute(
            select(model)
            .where(model.user_id == user_id)
            .order_by(model.deleted_at.desc())  # type: ignore[union-attr]
        )
        return list(result.scalars().all())

    async def get_record(
        self, session: AsyncSession, record_id: str, user_id: str | None = None
    ) -> TrashItemBase | None:
        """Fetch a record by id, optionally requiring it to belong to *user_id*."""
        model = self._trash_model
        conditions = [model.id == record_id]
        if user_id is not None:
            conditions.append(model.user_id == user_id)
        result = await session.execute(select(model).where(*conditions))
        return result.scalar_one_or_none()


