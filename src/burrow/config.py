"""BurrowConfig — explicit configuration injected into every component."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import cast

DEFAULT_CHUNK_SIZE = 80 * 1024  # 80KB
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 1000
DEFAULT_TRASH_RETENTION = timedelta(days=30)


@dataclass
class BurrowConfig:
    """Configuration for a file-tree manager instance."""

    root: Path | str
    """Absolute base directory of the shared store.  Must already exist."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    """Buffer size for streamed copies; progress is reported once per chunk."""

    trash_dir_name: str = ".trash"
    """Name of the reserved trash directory inside each principal root."""

    trash_retention: timedelta = field(default_factory=lambda: DEFAULT_TRASH_RETENTION)
    """How long a trashed item is kept before ``purge_expired`` removes it."""

    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE

    def __post_init__(self) -> None:
        self.root = Path(self.root).resolve()
        if not self.root.exists():
            raise FileNotFoundError(f"Root directory does not exist: {self.root}")
        if not self.root.is_dir():
            raise NotADirectoryError(f"Root path is not a directory: {self.root}")

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_page_size <= 0:
            raise ValueError(f"max_page_size must be positive, got {self.max_page_size}")
        if not 0 < self.default_page_size <= self.max_page_size:
            raise ValueError(
                f"default_page_size must be in [1, {self.max_page_size}], "
                f"got {self.default_page_size}"
            )
        if self.trash_retention <= timedelta(0):
            raise ValueError("trash_retention must be a positive duration")
        name = self.trash_dir_name
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            raise ValueError(f"Invalid trash_dir_name: {name!r}")

    @property
    def root_path(self) -> Path:
        """The resolved root as a ``Path``."""
        return cast("Path", self.root)
