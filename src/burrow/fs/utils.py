"""Path utilities, name validation, MIME and extension helpers."""

from __future__ import annotations

import mimetypes
import posixpath
from pathlib import Path

from .exceptions import UnauthorizedError

# Reserved filenames (Windows device names)
RESERVED_NAMES = {
    "CON", "PRN", "AUX", "NUL",
    "COM1", "COM2", "COM3", "COM4", "COM5", "COM6", "COM7", "COM8", "COM9",
    "LPT1", "LPT2", "LPT3", "LPT4", "LPT5", "LPT6", "LPT7", "LPT8", "LPT9",
}

MAX_PATH_LENGTH = 4096
MAX_NAME_LENGTH = 255


# =============================================================================
# Path Utilities
# =============================================================================


def normalize_path(path: str | None) -> str:
    """Normalize a logical path relative to the store root.

    - Converts ``\\`` separators to ``/``
    - Removes empty and ``.`` segments (double slashes, leading/trailing slash)
    - Keeps ``..`` segments untouched so callers can reject them

    Examples:
        normalize_path("/users/alice/") -> "users/alice"
        normalize_path("users\\\\alice//docs") -> "users/alice/docs"
        normalize_path("./a/./b") -> "a/b"
        normalize_path("") -> ""
    """
    if not path:
        return ""
    path = path.strip().replace("\\", "/")
    return "/".join(s for s in path.split("/") if s and s != ".")


def has_parent_reference(path: str) -> bool:
    """Check whether a normalized path contains a ``..`` segment."""
    return ".." in path.split("/")


def join_path(*parts: str) -> str:
    """Join logical path fragments with ``/`` and normalize the result.

    Examples:
        join_path("users/alice", "docs/a.txt") -> "users/alice/docs/a.txt"
        join_path("", "a.txt") -> "a.txt"
    """
    return normalize_path("/".join(p for p in parts if p))


def split_path(path: str) -> tuple[str, str]:
    """Split a logical path into (parent, name).

    Examples:
        split_path("users/alice/a.txt") -> ("users/alice", "a.txt")
        split_path("a.txt") -> ("", "a.txt")
        split_path("") -> ("", "")
    """
    path = normalize_path(path)
    if not path:
        return "", ""
    return posixpath.split(path)


def is_within(path: str, root: str) -> bool:
    """Case-insensitive path-segment prefix test on normalized paths."""
    path_cf = path.casefold()
    root_cf = root.casefold()
    return path_cf == root_cf or path_cf.startswith(root_cf + "/")


def validate_path(path: str) -> tuple[bool, str]:
    """Validate a logical path for security and compatibility issues.

    Returns:
        (is_valid, error_message) - error_message is empty if valid
    """
    if "\x00" in path:
        return False, "Path contains null bytes"

    for ch in path:
        code = ord(ch)
        if 0x01 <= code <= 0x1F:
            return False, f"Path contains control character: 0x{code:02x}"

    if len(path) > MAX_PATH_LENGTH:
        return False, f"Path too long (max {MAX_PATH_LENGTH} characters)"

    if has_parent_reference(normalize_path(path)):
        return False, "Path contains parent directory reference"

    return True, ""


def validate_name(name: str) -> tuple[bool, str]:
    """Validate a single file or folder name (no separators allowed)."""
    if not name or not name.strip():
        return False, "Name is empty"

    if "/" in name or "\\" in name:
        return False, f"Name contains a path separator: {name}"

    if name in (".", ".."):
        return False, f"Invalid name: {name}"

    valid, error = validate_path(name)
    if not valid:
        return False, error

    if len(name) > MAX_NAME_LENGTH:
        return False, f"Filename too long (max {MAX_NAME_LENGTH} characters)"

    name_upper = name.upper()
    base_name = name_upper.split(".")[0] if "." in name_upper else name_upper
    if base_name in RESERVED_NAMES:
        return False, f"Reserved filename: {name}"

    return True, ""


def resolve_under(root: Path, relative: str) -> Path:
    """Map a normalized logical path to a physical path beneath *root*.

    Resolves symlinks and verifies the result stays inside *root*, so a
    link planted inside a principal's tree cannot point elsewhere.
    """
    rel = normalize_path(relative)
    if not rel:
        return root

    resolved = (root / rel).resolve()
    try:
        resolved.relative_to(root)
    except ValueError:
        raise UnauthorizedError(
            f"Path traversal detected: {relative} resolves outside the store root"
        ) from None
    return resolved


# =============================================================================
# Names, extensions, MIME types
# =============================================================================


def get_extension(name: str) -> str:
    """Return the lower-cased extension of *name* including its dot, or ``""``."""
    return Path(name).suffix.lower()


def normalize_extension(ext: str) -> str:
    """Normalize an extension filter to lower case with a leading dot.

    Examples:
        normalize_extension("PDF") -> ".pdf"
        normalize_extension(" .txt ") -> ".txt"
    """
    ext = ext.strip().lower()
    if not ext:
        return ""
    return ext if ext.startswith(".") else "." + ext


def guess_mime_type(filename: str) -> str:
    """Guess the MIME type of a file based on its name."""
    mime_type, _ = mimetypes.guess_type(filename)
    return mime_type or "application/octet-stream"
