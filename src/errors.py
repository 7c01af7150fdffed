"""Exception taxonomy shared by the codec, the adapters and the orchestrator.

Adapters translate whatever their backend raises into these classes so
that callers never have to know about vendor exception types.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base class for every storage error, also used for listing/connection failures."""

    def __init__(self, reason: str = "Storage operation failed") -> None:
        self.reason = reason
        super().__init__(reason)


class UnknownDriverError(StorageError, ValueError):
    """Raised when a driver identifier has no adapter."""

    def __init__(self, driver: str) -> None:
        self.driver = driver
        super().__init__(f"Unknown storage driver: {driver!r}")


# ── Read ─────────────────────────────────────────────────────────────


class ReadError(StorageError):
    """Content could not be read."""


class ContentNotFoundError(ReadError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Content not found at path: {path}")


class ReadFailedError(ReadError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.failure = reason
        super().__init__(f"Failed to read {path}: {reason}")


# ── Write ────────────────────────────────────────────────────────────


class WriteError(StorageError):
    """Content could not be written or deleted."""


class WriteFailedError(WriteError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.failure = reason
        super().__init__(f"Failed to write {path}: {reason}")


class NetworkFailureError(WriteError):
    def __init__(self, driver: str, reason: str) -> None:
        self.driver = driver
        self.failure = reason
        super().__init__(f"Network error writing to {driver}: {reason}")


class InvalidPathError(WriteError):
    """A resolved path was rejected before any backend call."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.failure = reason
        super().__init__(f"Invalid path {path!r}: {reason}")


class EmptyPathError(InvalidPathError):
    def __init__(self, path: str = "") -> None:
        super().__init__(path, "Path cannot be empty")


class PathTraversalError(InvalidPathError):
    def __init__(self, path: str) -> None:
        super().__init__(path, "Directory traversal not allowed")


class AbsolutePathError(InvalidPathError):
    def __init__(self, path: str) -> None:
        super().__init__(path, "Absolute paths not allowed")


class InvalidCharactersError(InvalidPathError):
    def __init__(self, path: str, characters: str = "") -> None:
        self.characters = characters
        detail = f" ({characters!r})" if characters else ""
        super().__init__(path, f"Path contains invalid characters{detail}")


class PathTooLongError(InvalidPathError):
    def __init__(self, path: str, limit: int) -> None:
        self.limit = limit
        super().__init__(path, f"Path too long (max {limit} characters)")


# ── Migration ────────────────────────────────────────────────────────


class MigrationError(StorageError):
    """A migration could not be started, run, or rolled back."""


class SameDriverError(MigrationError):
    def __init__(self, driver: str) -> None:
        self.driver = driver
        super().__init__(f"Cannot migrate from {driver} to {driver}")


class MigrationAlreadyRunningError(MigrationError):
    def __init__(self, content_type: str) -> None:
        self.content_type = content_type
        super().__init__(f"Migration already in progress for: {content_type}")


class MigrationNotCompletedError(MigrationError):
    def __init__(self, migration_id: int, status: str) -> None:
        self.migration_id = migration_id
        self.status = status
        super().__init__(
            f"Migration {migration_id} is {status}; only completed migrations can be rolled back"
        )


class MigrationNotFoundError(MigrationError, KeyError):
    def __init__(self, migration_id: int) -> None:
        self.migration_id = migration_id
        super().__init__(f"Migration not found: {migration_id}")

    def __str__(self) -> str:
        return self.reason


class MigrationStateError(MigrationError):
    """The record is not in a state that allows the requested transition."""
