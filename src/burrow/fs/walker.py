"""TreeWalker — single-level listing and lazy recursive enumeration."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .exceptions import PathNotFoundError
from .types import EntryType, TreeEntry
from .utils import get_extension, join_path, normalize_path, resolve_under

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger = logging.getLogger(__name__)


class TreeWalker:
    """Read-only enumeration of the store beneath a logical path.

    Every relative path produced is relative to the store root and uses
    ``/`` separators.  Walks are generators that re-read the disk on each
    call; nothing is cached between calls.

    Symlinks and special files are not reported, and symlinked
    directories are never descended into.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _directory(self, path: str) -> Path:
        resolved = resolve_under(self.root, path)
        if not resolved.is_dir():
            raise PathNotFoundError(f"Directory not found: {path or '/'}")
        return resolved

    @staticmethod
    def _scan(directory: Path, relative_base: str) -> tuple[list[TreeEntry], list[tuple[TreeEntry, Path]]]:
        """Read one directory level.  Raises ``OSError`` if it cannot be opened."""
        files: list[TreeEntry] = []
        dirs: list[tuple[TreeEntry, Path]] = []
        with os.scandir(directory) as it:
            for entry in it:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        kind = EntryType.DIR
                    elif entry.is_file(follow_symlinks=False):
                        kind = EntryType.FILE
                    else:
                        continue
                    st = entry.stat(follow_symlinks=False)
                except OSError:
                    logger.warning("Cannot stat %s", entry.path, exc_info=True)
                    continue

                is_dir = kind is EntryType.DIR
                item = TreeEntry(
                    name=entry.name,
                    type=kind,
                    relative_path=join_path(relative_base, entry.name),
                    size=0 if is_dir else st.st_size,
                    last_modified=datetime.fromtimestamp(st.st_mtime, tz=UTC),
                    extension="" if is_dir else get_extension(entry.name),
                )
                if is_dir:
                    dirs.append((item, directory / entry.name))
                else:
                    files.append(item)

        files.sort(key=lambda e: e.name)
        dirs.sort(key=lambda d: d[0].name)
        return files, dirs

    # ------------------------------------------------------------------
    # Single level
    # ------------------------------------------------------------------

    def list_dir(self, path: str = "") -> tuple[list[TreeEntry], list[TreeEntry]]:
        """List files and directories directly under *path*.

        Returns empty lists (with a warning) when the directory exists but
        cannot be enumerated.
        """
        path = normalize_path(path)
        directory = self._directory(path)
        try:
            files, dirs = self._scan(directory, path)
        except OSError:
            logger.warning("Cannot enumerate %s", path or "/", exc_info=True)
            return [], []
        return files, [d for d, _ in dirs]

    def get_entry(self, path: str) -> TreeEntry | None:
        """Return metadata for a single file or directory, or None if absent."""
        path = normalize_path(path)
        resolved = resolve_under(self.root, path)
        try:
            st = resolved.stat()
        except (FileNotFoundError, NotADirectoryError):
            return None
        is_dir = resolved.is_dir()
        return TreeEntry(
            name=resolved.name,
            type=EntryType.DIR if is_dir else EntryType.FILE,
            relative_path=path,
            size=0 if is_dir else st.st_size,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=UTC),
            extension="" if is_dir else get_extension(resolved.name),
        )

    # ------------------------------------------------------------------
    # Recursive walks
    # ------------------------------------------------------------------

    def walk(
        self,
        path: str = "",
        relative_base: str | None = None,
        *,
        files: bool = True,
        dirs: bool = True,
    ) -> Iterator[TreeEntry]:
        """Depth-first walk below *path*, yielding files and/or directories.

        Relative paths are built from *relative_base* (defaults to *path*
        itself, i.e. relative to the store root).  Pass ``""`` to get paths
        relative to *path*.  Raises ``PathNotFoundError`` immediately when
        *path* is not a directory.
        """
        path = normalize_path(path)
        start = self._directory(path)
        base = path if relative_base is None else normalize_path(relative_base)
        return self._walk(start, base, files, dirs)

    def _walk(self, start: Path, base: str, want_files: bool, want_dirs: bool) -> Iterator[TreeEntry]:
        stack: list[tuple[Path, str]] = [(start, base)]
        while stack:
            directory, rel = stack.pop()
            try:
                level_files, level_dirs = self._scan(directory, rel)
            except OSError:
                logger.warning("Skipping unreadable directory %s", directory, exc_info=True)
                continue

            if want_files:
                yield from level_files
            if want_dirs:
                for entry, _ in level_dirs:
                    yield entry
            stack.extend(
                (child, entry.relative_path) for entry, child in reversed(level_dirs)
            )

    def walk_files(self, path: str = "", relative_base: str | None = None) -> Iterator[TreeEntry]:
        """Yield every file below *path*."""
        return self.walk(path, relative_base, files=True, dirs=False)

    def walk_dirs(self, path: str = "", relative_base: str | None = None) -> Iterator[TreeEntry]:
        """Yield every directory below *path*."""
        return self.walk(path, relative_base, files=False, dirs=True)

    def total_size(self, path: str) -> int:
        """Size of a file, or the sum of file sizes beneath a directory."""
        entry = self.get_entry(path)
        if entry is None:
            raise PathNotFoundError(f"Path not found: {path}")
        if not entry.is_directory:
            return entry.size
        return sum(f.size for f in self.walk_files(path))
