"""PathGuard — pure authorization of logical paths against a principal root."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .exceptions import UnauthorizedError
from .utils import is_within, normalize_path, validate_path

if TYPE_CHECKING:
    from .types import Principal


class PathGuard:
    """Decides whether a logical path lies inside a principal's subtree.

    Both sides are normalized to ``/`` separators without leading or
    trailing slashes, then compared case-insensitively as a path-segment
    prefix: root ``users/al`` authorizes ``users/al/x`` but never
    ``users/alice``.  The resolved path always carries the root's own
    casing, so ``USERS/AL/x`` resolves to ``users/al/x``.

    Fails closed: inactive principals, empty roots, ``..`` segments and
    control characters are rejected.  No I/O is performed and no input
    makes it raise.
    """

    @staticmethod
    def principal_root(principal: Principal | None) -> str | None:
        """Return the normalized root of an authorizable principal, else None."""
        if principal is None or not principal.active:
            return None
        raw = principal.root_path
        if not isinstance(raw, str):
            return None
        valid, _ = validate_path(raw)
        if not valid:
            return None
        return normalize_path(raw) or None

    def authorize(self, principal: Principal | None, logical_path: str | None) -> tuple[str, bool]:
        """Return ``(resolved_path, ok)``; ``resolved_path`` is ``""`` when denied."""
        root = self.principal_root(principal)
        if root is None or not isinstance(logical_path, str):
            return "", False

        valid, _ = validate_path(logical_path)
        if not valid:
            return "", False

        candidate = normalize_path(logical_path)
        if not candidate or not is_within(candidate, root):
            return "", False
        # Rebuild on the root's own casing; the disk may be case-sensitive.
        below = candidate.split("/")[len(root.split("/")) :]
        return "/".join([root, *below]), True

    def require(self, principal: Principal | None, logical_path: str | None) -> str:
        """Like :meth:`authorize` but raise ``UnauthorizedError`` when denied."""
        resolved, ok = self.authorize(principal, logical_path)
        if not ok:
            raise UnauthorizedError(f"Access denied: {logical_path!r}")
        return resolved
