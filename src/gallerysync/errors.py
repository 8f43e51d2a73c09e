"""Error hierarchy shared by the sync engine and its collaborators."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from gallerysync.models import SyncResult


class GallerySyncError(Exception):
    """Base class for every error raised by Gallerysync."""


class ConfigurationError(GallerySyncError):
    """Raised when a required identifier or credential is missing."""


class DataError(GallerySyncError):
    """Raised for malformed persisted or remote data; always recovered locally."""


class RemoteError(GallerySyncError):
    """Raised when a collaborator call fails."""

    def __init__(self, message: str, *, status: int | None = None, operation: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.operation = operation


class AuthenticationError(RemoteError):
    """Raised for 401 responses; always fatal."""


class TransientRemoteError(RemoteError):
    """Raised for rate limiting, unavailability or missing responses."""


class TransferError(GallerySyncError):
    """Raised when an upload ultimately fails."""


class SyncAbortedError(GallerySyncError):
    """Raised when a fatal error stops a run after work has started.

    `result` describes what was already done (uploads stay registered in the identity cache).
    """

    def __init__(self, message: str, *, result: SyncResult) -> None:
        super().__init__(message)
        self.result = result
