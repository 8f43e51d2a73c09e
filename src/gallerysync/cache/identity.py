"""Persistent name -> media identity cache used to avoid duplicate uploads."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from bs4 import BeautifulSoup

from gallerysync.errors import DataError
from gallerysync.models import MediaIdentity, RemoteObject, strip_extension

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
CACHE_FILENAME = ".wp-media-cache.json"
DEFAULT_TTL = timedelta(hours=24)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def cache_keys(name: str) -> tuple[str, ...]:
    """Return the lookup keys for a filename: full name first, then the extension-less title."""

    full = name.lower()
    stripped = strip_extension(name).lower()
    if not stripped or stripped == full:
        return (full,)
    return (full, stripped)


def url_basename(url: str) -> str:
    """Return the last path component of a media URL."""

    if not url:
        return ""
    path = urlparse(url).path if "://" in url else url
    return unquote(path.rsplit("/", 1)[-1])


def title_text(rendered: str) -> str:
    """Strip markup from a rendered title and normalize it for comparison."""

    if not rendered:
        return ""
    return BeautifulSoup(rendered, "html.parser").get_text().strip().lower()


@dataclass(slots=True)
class CacheStore:
    """JSON file holding a serialized `IdentityCache`."""

    path: Path = field(default_factory=lambda: Path.cwd() / CACHE_FILENAME)

    def load(self) -> IdentityCache | None:
        """Read the persisted cache, returning None when absent or unreadable."""

        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            cache = IdentityCache.from_payload(payload)
        except (OSError, json.JSONDecodeError, DataError) as exc:
            logger.warning("Ignoring unreadable media cache %s: %s", self.path, exc)
            return None
        cache.store = self
        return cache

    def save(self, cache: IdentityCache) -> bool:
        """Write the cache; failures are logged and reported via the return value."""

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            tmp_path.write_text(json.dumps(cache.to_payload(), indent=2), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            logger.warning("Failed to save media cache %s: %s", self.path, exc)
            return False
        logger.debug("Saved %s media cache entries to %s", len(cache.entries), self.path)
        return True

    def clear(self) -> bool:
        """Delete the persisted cache file. Returns True when a file was removed."""

        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True


@dataclass(slots=True)
class IdentityCache:
    """In-memory identity index bound to one destination (its scope)."""

    scope_key: str
    created_at: datetime = field(default_factory=_utcnow)
    entries: dict[str, MediaIdentity] = field(default_factory=dict)
    store: CacheStore | None = field(default=None, repr=False, compare=False)
    ttl: timedelta = field(default=DEFAULT_TTL, compare=False)
    warm: bool = field(default=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @classmethod
    def open(
        cls,
        store: CacheStore | None,
        scope_key: str,
        *,
        refresh: bool = False,
        ttl: timedelta = DEFAULT_TTL,
        now: datetime | None = None,
    ) -> IdentityCache:
        """Return the persisted cache when still valid, otherwise an empty cold one."""

        if store is not None and not refresh:
            persisted = store.load()
            if persisted is not None:
                persisted.ttl = ttl
                if persisted.is_valid(scope_key, now=now):
                    persisted.warm = True
                    logger.info("Using cached media data (%s entries)", len(persisted.entries))
                    return persisted
                logger.info("Discarding stale or foreign media cache for %s", scope_key)
        return cls(scope_key=scope_key, created_at=now or _utcnow(), store=store, ttl=ttl)

    def is_valid(self, scope_key: str, now: datetime | None = None) -> bool:
        if self.scope_key != scope_key:
            return False
        age = (now or _utcnow()) - self.created_at
        return age < self.ttl

    def lookup(self, name: str) -> MediaIdentity | None:
        for key in cache_keys(name):
            identity = self.entries.get(key)
            if identity is not None:
                return identity
        return None

    def put(self, name: str, identity: MediaIdentity) -> None:
        """Index `identity` under both keys of `name` and persist merged with the on-disk copy."""

        keys = cache_keys(name)
        with self._lock:
            for key in keys:
                self.entries[key] = identity
            if self.store is None:
                return

            on_disk = self.store.load()
            if on_disk is not None and on_disk.scope_key == self.scope_key:
                merged = dict(on_disk.entries)
                for key in keys:
                    merged[key] = identity
                snapshot = IdentityCache(
                    scope_key=self.scope_key, created_at=self.created_at, entries=merged
                )
            else:
                snapshot = self
            self.store.save(snapshot)

    def populate(self, objects: Iterable[RemoteObject]) -> int:
        """Bulk-index a destination listing by URL basename and, when unclaimed, by title."""

        added = 0
        with self._lock:
            for obj in objects:
                identity = obj.identity
                filename = url_basename(obj.url).lower()
                if filename:
                    self.entries[filename] = identity
                    added += 1
                title = title_text(obj.title)
                if title and title not in self.entries:
                    self.entries[title] = identity
            self.warm = True
            if self.store is not None:
                self.store.save(self)
        return added

    def to_payload(self) -> dict[str, Any]:
        return {
            "scope_key": self.scope_key,
            "created_at": self.created_at.strftime(ISO_FORMAT),
            "entries": {key: identity.to_dict() for key, identity in self.entries.items()},
        }

    @classmethod
    def from_payload(cls, payload: Any) -> IdentityCache:
        if not isinstance(payload, Mapping):
            raise DataError("cache root must be an object")
        scope_key = payload.get("scope_key")
        if not isinstance(scope_key, str):
            raise DataError("cache is missing 'scope_key'")
        try:
            created_at = datetime.strptime(str(payload.get("created_at")), ISO_FORMAT).replace(
                tzinfo=timezone.utc
            )
        except ValueError as exc:
            raise DataError(f"invalid 'created_at': {exc}") from exc

        raw_entries = payload.get("entries")
        if not isinstance(raw_entries, Mapping):
            raise DataError("cache is missing 'entries'")
        entries: dict[str, MediaIdentity] = {}
        for key, value in raw_entries.items():
            if not isinstance(value, Mapping) or "id" not in value:
                raise DataError(f"malformed entry for {key!r}")
            entries[str(key)] = MediaIdentity(id=value["id"], url=str(value.get("url") or ""))
        return cls(scope_key=scope_key, created_at=created_at, entries=entries)
