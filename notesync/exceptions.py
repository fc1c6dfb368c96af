"""Error types shared by the local store, the remote store client and the services.

Failures that threaten local durability (StorageWriteFailure, NoteNotFound) are
raised to the caller. Failures that only affect sync freshness
(RemoteSyncFailure, RemoteDeleteFailure) are raised by the remote store but
caught by the services and handed back inside result objects.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    STORAGE_WRITE_FAILURE = "storage_write_failure"
    REMOTE_SYNC_FAILURE = "remote_sync_failure"
    REMOTE_DELETE_FAILURE = "remote_delete_failure"
    NOT_FOUND = "not_found"


class NoteSyncError(Exception):
    """Base exception for notesync errors.

    Attributes:
        message: Human-readable error message
        kind: Machine-readable error kind
        details: Additional context about the error
    """

    kind = ErrorKind.STORAGE_WRITE_FAILURE

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.kind.name}] {self.message} ({detail_str})"
        return f"[{self.kind.name}] {self.message}"


class StorageWriteFailure(NoteSyncError):
    """The device store could not persist a value."""

    kind = ErrorKind.STORAGE_WRITE_FAILURE


class RemoteSyncFailure(NoteSyncError):
    """A push, pull or search against the remote store failed."""

    kind = ErrorKind.REMOTE_SYNC_FAILURE


class RemoteDeleteFailure(NoteSyncError):
    kind = ErrorKind.REMOTE_DELETE_FAILURE


class NoteNotFound(NoteSyncError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(message or f"Note with ID '{note_id}' not found", details={"note_id": note_id})
        self.note_id = note_id
