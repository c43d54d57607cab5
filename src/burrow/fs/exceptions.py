"""Custom exception hierarchy for the burrow filesystem layer."""


class BurrowError(Exception):
    """Base exception for all burrow filesystem errors."""


class UnauthorizedError(BurrowError):
    """Raised when a path lies outside the caller's authorized root."""


class PathNotFoundError(BurrowError):
    """Raised when a root, file, directory or trash record does not exist."""


class AlreadyExistsError(BurrowError):
    """Raised when a create or move target is already taken."""


class StorageError(BurrowError):
    """Raised on underlying storage failures (disk I/O, permissions, etc.)."""


class InvalidArgumentError(BurrowError):
    """Raised on malformed paths, names or query parameters."""


class TransferCancelledError(BurrowError):
    """Raised when a streamed copy is stopped through its cancel event."""
