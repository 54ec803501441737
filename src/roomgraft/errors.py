"""Exceptions raised by the room document and restore point helpers."""

from __future__ import annotations


class RoomGraftError(Exception):
    """Base class for errors surfaced to callers of the room tooling."""


class DocumentParseError(RoomGraftError, ValueError):
    """Raised when a room file is not a well-formed JSON object container."""


class RecordNotFoundError(RoomGraftError, LookupError):
    """Raised when a prop record cannot be located in a document."""

    def __init__(self, record_id: int, message: str | None = None) -> None:
        super().__init__(message or f"Prop record {record_id} does not exist.")
        self.record_id = record_id


class ParentNotFoundError(RecordNotFoundError):
    """Raised when the requested insertion parent is missing."""

    def __init__(self, record_id: int) -> None:
        super().__init__(
            record_id, f"The selected target parent {record_id} no longer exists."
        )


class RestorePointNotFoundError(RoomGraftError, LookupError):
    """Raised when a restore point file is missing on disk."""

    def __init__(self, path: object) -> None:
        super().__init__(f"Restore file '{path}' is missing.")
        self.path = path


class RestorePointCollisionError(RoomGraftError, RuntimeError):
    """Raised when a freshly allocated restore point path already exists."""


class AssetLogValidationError(RoomGraftError, ValueError):
    """Raised when an asset log entry is missing its mandatory snapshots."""


__all__ = [
    "AssetLogValidationError",
    "DocumentParseError",
    "ParentNotFoundError",
    "RecordNotFoundError",
    "RestorePointCollisionError",
    "RestorePointNotFoundError",
    "RoomGraftError",
]
