"""TransferEngine — streamed save, move, delete and checksum on disk."""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import IO, TYPE_CHECKING

from burrow.config import DEFAULT_CHUNK_SIZE

from .exceptions import (
    AlreadyExistsError,
    InvalidArgumentError,
    PathNotFoundError,
    StorageError,
    TransferCancelledError,
)
from .utils import normalize_path, resolve_under

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable, Iterable

    from .walker import TreeWalker

    ProgressCallback = Callable[[int], None]

logger = logging.getLogger(__name__)


class TransferEngine:
    """Blocking file transfers beneath the store root.

    All paths are logical paths relative to the root.  Methods block on
    disk I/O; async callers run them in a worker thread.  Progress
    callbacks are invoked synchronously on that thread with the cumulative
    number of bytes copied by the current operation.
    """

    def __init__(
        self,
        root: Path,
        walker: TreeWalker,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.root = root
        self.walker = walker
        self.chunk_size = chunk_size

    def _resolve(self, path: str) -> Path:
        return resolve_under(self.root, path)

    # =========================================================================
    # Queries
    # =========================================================================

    def is_file(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def is_dir(self, path: str) -> bool:
        return self._resolve(path).is_dir()

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    # =========================================================================
    # Write
    # =========================================================================

    def save(self, path: str, stream: IO[bytes] | Iterable[bytes]) -> int:
        """Write *stream* to *path*, creating parent directories.

        Content goes to a temporary file next to the destination which then
        replaces it, so readers only ever see a complete file.  Returns the
        number of bytes written.
        """
        resolved = self._resolve(path)
        if resolved.is_dir():
            raise AlreadyExistsError(f"A directory already exists at: {path}")

        chunks = self._iter_chunks(stream)
        try:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(resolved.parent), suffix=".tmp")
        except OSError as e:
            raise StorageError(f"Failed to prepare {path}: {e}") from e

        written = 0
        try:
            with os.fdopen(fd, "wb") as f:
                for chunk in chunks:
                    f.write(chunk)
                    written += len(chunk)
            Path(tmp_path).replace(resolved)
        except Exception as e:
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            if isinstance(e, OSError):
                raise StorageError(f"Failed to write {path}: {e}") from e
            raise

        logger.info("Saved %s (%d bytes)", path, written)
        return written

    def _iter_chunks(self, stream: IO[bytes] | Iterable[bytes]) -> Iterable[bytes]:
        read = getattr(stream, "read", None)
        if read is None:
            return stream  # type: ignore[return-value]
        return iter(lambda: read(self.chunk_size), b"")

    def make_directory(self, path: str) -> bool:
        """Create *path* and missing parents.  Returns False if it already exists."""
        resolved = self._resolve(path)
        if resolved.is_dir():
            return False
        if resolved.exists():
            raise AlreadyExistsError(f"Path exists as file: {path}")
        try:
            resolved.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create directory {path}: {e}") from e
        logger.info("Created directory %s", path)
        return True

    # =========================================================================
    # Streamed copy
    # =========================================================================

    def _copy(
        self,
        src: Path,
        dst: Path,
        on_progress: ProgressCallback | None,
        cancel: threading.Event | None,
        offset: int = 0,
    ) -> int:
        """Copy *src* to *dst* chunk by chunk; returns ``offset`` + bytes copied.

        On failure or cancellation the partial destination is removed and
        the source is left untouched.
        """
        total = offset
        try:
            with src.open("rb") as reader, dst.open("wb") as writer:
                while True:
                    if cancel is not None and cancel.is_set():
                        raise TransferCancelledError(f"Transfer cancelled: {src.name}")
                    chunk = reader.read(self.chunk_size)
                    if not chunk:
                        break
                    writer.write(chunk)
                    total += len(chunk)
                    if on_progress is not None:
                        on_progress(total)
        except (OSError, TransferCancelledError) as e:
            with contextlib.suppress(OSError):
                dst.unlink()
            if isinstance(e, OSError):
                raise StorageError(f"Failed to copy {src.name}: {e}") from e
            raise
        shutil.copystat(src, dst)
        return total

    # =========================================================================
    # Move
    # =========================================================================

    def move_file(
        self,
        src: str,
        dst: str,
        on_progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Stream *src* to *dst* then delete *src*.

        Returns False when *src* is not an existing file.  An existing file
        at *dst* is replaced.
        """
        src_resolved = self._resolve(src)
        dst_resolved = self._resolve(dst)

        if not src_resolved.is_file():
            return False
        if src_resolved == dst_resolved:
            return True
        if dst_resolved.is_dir():
            raise AlreadyExistsError(f"A directory already exists at: {dst}")

        try:
            dst_resolved.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create parent of {dst}: {e}") from e

        self._copy(src_resolved, dst_resolved, on_progress, cancel)

        try:
            src_resolved.unlink()
        except OSError as e:
            raise StorageError(f"Copied but failed to remove source {src}: {e}") from e

        logger.info("Moved file %s -> %s", src, dst)
        return True

    def move_directory(
        self,
        src: str,
        dst: str,
        on_progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Recreate the *src* tree at *dst*, streaming every file, then remove *src*.

        Returns False when *src* is not a directory.  An existing tree at
        *dst* is replaced.  Progress is cumulative over all files.
        """
        src = normalize_path(src)
        src_resolved = self._resolve(src)
        dst_resolved = self._resolve(dst)

        if not src_resolved.is_dir():
            return False
        if src_resolved == dst_resolved:
            return True
        if dst_resolved.is_relative_to(src_resolved):
            raise InvalidArgumentError(f"Cannot move {src} into itself: {dst}")
        if src_resolved.is_relative_to(dst_resolved):
            raise InvalidArgumentError(f"Cannot replace {dst}: it contains the source {src}")

        sub_dirs = list(self.walker.walk_dirs(src, relative_base=""))
        files = list(self.walker.walk_files(src, relative_base=""))

        try:
            if dst_resolved.is_dir():
                shutil.rmtree(dst_resolved)
            elif dst_resolved.exists():
                dst_resolved.unlink()
            dst_resolved.mkdir(parents=True)
            # Parents first, so every file below has somewhere to land.
            for d in sub_dirs:
                (dst_resolved / d.relative_path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to prepare destination {dst}: {e}") from e

        moved = 0
        for f in files:
            source_file = src_resolved / f.relative_path
            target_file = dst_resolved / f.relative_path
            moved = self._copy(source_file, target_file, on_progress, cancel, offset=moved)
            try:
                source_file.unlink()
            except OSError as e:
                raise StorageError(f"Copied but failed to remove source {f.relative_path}: {e}") from e

        self._remove_empty_tree(src_resolved)
        logger.info("Moved directory %s -> %s (%d files, %d bytes)", src, dst, len(files), moved)
        return True

    @staticmethod
    def _remove_empty_tree(path: Path) -> int:
        """Best-effort removal of empty directories under *path*, leaf first.

        Directories that still hold files (written concurrently, or that
        could not be moved) are left in place.  Never raises; returns the
        number of directories removed.
        """
        removed = 0
        for dirpath, _dirnames, _filenames in os.walk(path, topdown=False):
            with contextlib.suppress(OSError):
                os.rmdir(dirpath)
                removed += 1
        if path.exists():
            logger.warning("Source directory not fully removed after move: %s", path)
        return removed

    # =========================================================================
    # Delete
    # =========================================================================

    def delete(self, path: str) -> bool:
        """Delete a file.  Returns False if there is no file at *path*."""
        resolved = self._resolve(path)
        if not resolved.is_file():
            return False
        try:
            resolved.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e
        logger.info("Deleted file %s", path)
        return True

    def delete_tree(self, path: str) -> bool:
        """Delete a directory recursively.  Returns False if it does not exist."""
        resolved = self._resolve(path)
        if not resolved.is_dir():
            return False
        if resolved == self.root:
            raise InvalidArgumentError("Refusing to delete the store root")
        try:
            shutil.rmtree(resolved)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete directory {path}: {e}") from e
        logger.info("Deleted directory %s", path)
        return True

    def remove_empty_directory(self, path: str) -> bool:
        """Remove *path* if it is an empty directory.  Returns True if removed."""
        resolved = self._resolve(path)
        if resolved == self.root or not resolved.is_dir() or any(resolved.iterdir()):
            return False
        try:
            resolved.rmdir()
        except OSError as e:
            raise StorageError(f"Failed to remove directory {path}: {e}") from e
        return True

    # =========================================================================
    # Read
    # =========================================================================

    def open_read(self, path: str) -> IO[bytes]:
        """Open a file for streaming.  The caller closes the returned stream."""
        resolved = self._resolve(path)
        if not resolved.is_file():
            raise PathNotFoundError(f"File not found: {path}")
        try:
            return resolved.open("rb")
        except OSError as e:
            raise StorageError(f"Cannot open {path}: {e}") from e

    def read_range(self, path: str, offset: int, length: int) -> bytes:
        """Read up to *length* bytes starting at *offset*."""
        if offset < 0 or length < 0:
            raise InvalidArgumentError(f"Invalid range: offset={offset}, length={length}")
        with self.open_read(path) as f:
            f.seek(offset)
            return f.read(length)

    def checksum(self, path: str) -> str:
        """Stream the file through SHA-256 and return the hex digest."""
        sha = hashlib.sha256()
        with self.open_read(path) as f:
            for chunk in iter(lambda: f.read(self.chunk_size), b""):
                sha.update(chunk)
        return sha.hexdigest()
