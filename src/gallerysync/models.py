"""Data records exchanged between the sync engine and its collaborators."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

_EXTENSION_RE = re.compile(r"\.[^.]+$")


def strip_extension(name: str) -> str:
    """Drop the trailing extension (`photo.backup.jpg` -> `photo.backup`)."""

    return _EXTENSION_RE.sub("", name)


@dataclass(frozen=True, slots=True)
class MediaIdentity:
    """Destination-side reference to an uploaded object."""

    id: Any
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "url": self.url}


@dataclass(frozen=True, slots=True)
class RemoteObject:
    """A destination listing or search hit."""

    id: Any
    url: str
    title: str = ""

    @property
    def identity(self) -> MediaIdentity:
        return MediaIdentity(id=self.id, url=self.url)


@dataclass(frozen=True, slots=True)
class SourceFolder:
    id: str
    name: str


@dataclass(frozen=True, slots=True)
class SourceFile:
    """An image listed by the source store."""

    id: str
    name: str
    mime_type: str = ""
    modified_time: datetime | None = None
    description: str = ""

    @property
    def filename(self) -> str:
        return self.name or f"{self.id}.jpg"


@dataclass(frozen=True, slots=True)
class SectionItem:
    identity: MediaIdentity
    alt_text: str = ""


@dataclass(slots=True)
class Section:
    """Named, ordered group of images built from one source sub-folder."""

    name: str
    items: list[SectionItem] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class FileRef:
    folder: str
    filename: str


@dataclass(frozen=True, slots=True)
class SectionSummary:
    name: str
    image_count: int


@dataclass(slots=True)
class SyncResult:
    """Aggregate outcome of one sync run."""

    page_id: int | None
    updated: bool = False
    uploaded: list[FileRef] = field(default_factory=list)
    reused: list[FileRef] = field(default_factory=list)
    skipped_count: int = 0
    sections: list[SectionSummary] = field(default_factory=list)

    @property
    def uploaded_count(self) -> int:
        return len(self.uploaded)

    @property
    def reused_count(self) -> int:
        return len(self.reused)

    @property
    def total_placed(self) -> int:
        return sum(section.image_count for section in self.sections)

    @property
    def sections_count(self) -> int:
        return len(self.sections)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uploaded_count": self.uploaded_count,
            "reused_count": self.reused_count,
            "skipped_count": self.skipped_count,
            "total_placed": self.total_placed,
            "sections_count": self.sections_count,
            "sections": [
                {"name": section.name, "image_count": section.image_count}
                for section in self.sections
            ],
            "page_id": self.page_id,
            "updated": self.updated,
            "images": {
                "uploaded": [
                    {"folder": ref.folder, "filename": ref.filename} for ref in self.uploaded
                ],
                "reused": [{"folder": ref.folder, "filename": ref.filename} for ref in self.reused],
            },
        }
