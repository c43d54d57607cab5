"""Collaborator protocols — runtime-checkable interfaces the core consumes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .types import Principal


@runtime_checkable
class PrincipalResolver(Protocol):
    """Maps an opaque session credential to a ``Principal``.

    Token formats and user storage belong to the implementer; the core
    only needs the mapping.  Return None for unknown credentials.
    """

    async def resolve(self, credential: str) -> Principal | None: ...
