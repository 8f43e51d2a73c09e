"""Google Drive source store backed by a service account."""

from __future__ import annotations

import asyncio
import io
import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any, TypeVar

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

from gallerysync.errors import (
    AuthenticationError,
    ConfigurationError,
    RemoteError,
    TransientRemoteError,
)
from gallerysync.models import SourceFile, SourceFolder

DRIVE_SCOPES = ("https://www.googleapis.com/auth/drive.readonly",)
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
PAGE_SIZE = 1000

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_modified(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _classify_http_error(exc: HttpError, operation: str) -> RemoteError:
    status = getattr(exc.resp, "status", None)
    try:
        status = int(status) if status is not None else None
    except (TypeError, ValueError):
        status = None
    if status == 401:
        return AuthenticationError(
            f"Google Drive authentication failed (401) while {operation}. "
            "Check GOOGLE_SERVICE_ACCOUNT_JSON and folder sharing.",
            status=status,
            operation=operation,
        )
    if status in (429, 503):
        return TransientRemoteError(
            f"Google Drive returned {status} while {operation}", status=status, operation=operation
        )
    return RemoteError(
        f"Google Drive returned {status} while {operation}: {exc}", status=status, operation=operation
    )


def credentials_from_json(raw: str | None) -> service_account.Credentials:
    """Build read-only Drive credentials from a service-account JSON document."""

    if not raw:
        raise ConfigurationError("GOOGLE_SERVICE_ACCOUNT_JSON env var is required")
    try:
        info = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError("GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON") from exc
    try:
        return service_account.Credentials.from_service_account_info(info, scopes=list(DRIVE_SCOPES))
    except (ValueError, KeyError) as exc:
        raise ConfigurationError(f"GOOGLE_SERVICE_ACCOUNT_JSON is not a usable service account: {exc}") from exc


@dataclass(slots=True)
class DriveSourceStore:
    """Source store over the Drive v3 API; blocking client calls run in the default executor.

    The discovery client is not thread-safe, so calls are serialized.
    """

    service: Any
    page_size: int = PAGE_SIZE
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @classmethod
    def from_service_account_json(cls, raw: str | None) -> DriveSourceStore:
        credentials = credentials_from_json(raw)
        service = build("drive", "v3", credentials=credentials, cache_discovery=False)
        return cls(service=service)

    async def list_folders(self, parent_id: str) -> list[SourceFolder]:
        query = f"'{parent_id}' in parents and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
        files = await self._run(
            partial(self._list_all, query, "id, name"), operation="listing folders"
        )
        folders = [SourceFolder(id=f["id"], name=f.get("name", "")) for f in files]
        folders.sort(key=lambda folder: folder.name.casefold())
        return folders

    async def list_images(self, folder_id: str) -> list[SourceFile]:
        query = f"'{folder_id}' in parents and trashed = false"
        files = await self._run(
            partial(self._list_all, query, "id, name, mimeType, modifiedTime, description"),
            operation="listing images",
        )
        images = []
        for f in files:
            mime_type = f.get("mimeType") or ""
            if not mime_type.startswith("image/"):
                continue
            images.append(
                SourceFile(
                    id=f["id"],
                    name=f.get("name") or "",
                    mime_type=mime_type,
                    modified_time=_parse_modified(f.get("modifiedTime")),
                    description=f.get("description") or "",
                )
            )
        logger.debug("Listed %s image(s) in folder %s", len(images), folder_id)
        return images

    async def download(self, file_id: str) -> bytes:
        return await self._run(partial(self._download, file_id), operation="downloading file")

    def _list_all(self, query: str, fields: str) -> list[dict[str, Any]]:
        collected: list[dict[str, Any]] = []
        page_token: str | None = None
        while True:
            response = (
                self.service.files()
                .list(
                    q=query,
                    fields=f"nextPageToken, files({fields})",
                    includeItemsFromAllDrives=True,
                    supportsAllDrives=True,
                    pageSize=self.page_size,
                    pageToken=page_token,
                )
                .execute()
            )
            collected.extend(response.get("files") or [])
            page_token = response.get("nextPageToken")
            if not page_token:
                return collected

    def _download(self, file_id: str) -> bytes:
        request = self.service.files().get_media(fileId=file_id, supportsAllDrives=True)
        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, request)
        done = False
        while not done:
            _, done = downloader.next_chunk()
        return buffer.getvalue()

    def _locked(self, func: Callable[[], T]) -> T:
        with self._lock:
            return func()

    async def _run(self, func: Callable[[], T], *, operation: str) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._locked, func)
        except HttpError as exc:
            raise _classify_http_error(exc, operation) from exc
        except OSError as exc:
            raise TransientRemoteError(
                f"No response from Google Drive while {operation}: {exc}", operation=operation
            ) from exc
