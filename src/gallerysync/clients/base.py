"""Interfaces for the source store and destination host collaborators."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from gallerysync.models import RemoteObject, SourceFile, SourceFolder


class SourceStore(Protocol):
    """Remote folder tree the images are read from."""

    async def list_folders(self, parent_id: str) -> Sequence[SourceFolder]:
        """Return sub-folders of `parent_id`, alphabetical by name."""

    async def list_images(self, folder_id: str) -> Sequence[SourceFile]:
        """Return image files (image/* mime types) inside `folder_id`."""

    async def download(self, file_id: str) -> bytes:
        """Return the raw bytes of a file."""


class DestinationHost(Protocol):
    """Document/media host the gallery is published to.

    Implementations raise `AuthenticationError` for 401 responses, `TransientRemoteError` for
    rate limiting, unavailability or network failures, and `RemoteError` otherwise.
    """

    scope_key: str

    async def list_objects(self, page: int) -> tuple[Sequence[RemoteObject], int]:
        """Return one page of media objects and the total page count."""

    async def search_objects(self, query: str) -> Sequence[RemoteObject]:
        """Return media objects matching a free-text query."""

    async def create_object(self, data: bytes, filename: str, *, caption: str = "") -> RemoteObject:
        """Upload a new media object."""

    async def update_object_metadata(self, object_id: Any, fields: Mapping[str, Any]) -> None:
        """Apply secondary metadata (alt text and similar) to an uploaded object."""

    async def get_document(self, document_id: int) -> str:
        """Return the raw body of a page."""

    async def update_document(self, document_id: int, body: str) -> None:
        """Replace the body of a page."""
