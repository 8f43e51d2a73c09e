"""Shared fakes for sync engine tests."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import pytest

from gallerysync.cache import CacheStore, IdentityCache
from gallerysync.models import RemoteObject, SourceFile, SourceFolder

SITE = "https://site.example"


@dataclass
class FakeHost:
    """In-memory destination with the same surface as `WordPressHost`."""

    objects: list[RemoteObject] = field(default_factory=list)
    documents: dict[int, str] = field(default_factory=dict)
    page_size: int = 100
    create_errors: list[Exception] = field(default_factory=list)
    search_error: Exception | None = None
    list_error: Exception | None = None
    metadata_error: Exception | None = None
    update_error: Exception | None = None
    search_calls: list[str] = field(default_factory=list)
    create_calls: list[str] = field(default_factory=list)
    metadata_calls: list[tuple[Any, dict[str, Any]]] = field(default_factory=list)
    list_calls: list[int] = field(default_factory=list)
    next_id: int = 1000

    @property
    def scope_key(self) -> str:
        return SITE

    async def list_objects(self, page: int) -> tuple[Sequence[RemoteObject], int]:
        self.list_calls.append(page)
        if self.list_error is not None:
            raise self.list_error
        start = (page - 1) * self.page_size
        total_pages = max(1, -(-len(self.objects) // self.page_size))
        return self.objects[start : start + self.page_size], total_pages

    async def search_objects(self, query: str) -> Sequence[RemoteObject]:
        self.search_calls.append(query)
        if self.search_error is not None:
            raise self.search_error
        return [
            obj
            for obj in self.objects
            if query in obj.title.lower() or query in obj.url.lower()
        ]

    async def create_object(self, data: bytes, filename: str, *, caption: str = "") -> RemoteObject:
        self.create_calls.append(filename)
        if self.create_errors:
            raise self.create_errors.pop(0)
        self.next_id += 1
        created = RemoteObject(
            id=self.next_id,
            url=f"{SITE}/wp-content/uploads/{filename}",
            title=filename.rsplit(".", 1)[0],
        )
        self.objects.append(created)
        return created

    async def update_object_metadata(self, object_id: Any, fields: Mapping[str, Any]) -> None:
        self.metadata_calls.append((object_id, dict(fields)))
        if self.metadata_error is not None:
            raise self.metadata_error

    async def get_document(self, document_id: int) -> str:
        return self.documents.get(document_id, "")

    async def update_document(self, document_id: int, body: str) -> None:
        if self.update_error is not None:
            raise self.update_error
        self.documents[document_id] = body


@dataclass
class FakeSource:
    """In-memory Drive tree: parent id -> folders, folder id -> files."""

    folders: dict[str, list[SourceFolder]] = field(default_factory=dict)
    files: dict[str, list[SourceFile]] = field(default_factory=dict)
    downloads: list[str] = field(default_factory=list)

    async def list_folders(self, parent_id: str) -> Sequence[SourceFolder]:
        return list(self.folders.get(parent_id, []))

    async def list_images(self, folder_id: str) -> Sequence[SourceFile]:
        return list(self.files.get(folder_id, []))

    async def download(self, file_id: str) -> bytes:
        self.downloads.append(file_id)
        await asyncio.sleep(0)
        return f"bytes:{file_id}".encode()


class SleepRecorder:
    """Async stand-in for `asyncio.sleep` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("tests.gallerysync")


@pytest.fixture
def store(tmp_path) -> CacheStore:
    return CacheStore(path=tmp_path / ".wp-media-cache.json")


@pytest.fixture
def cache(store) -> IdentityCache:
    return IdentityCache(scope_key=SITE, store=store)


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()
