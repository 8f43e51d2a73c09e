"""Resolve candidate filenames to existing destination media."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from gallerysync.cache import IdentityCache, title_text, url_basename
from gallerysync.clients.base import DestinationHost
from gallerysync.errors import AuthenticationError, DataError, RemoteError
from gallerysync.models import MediaIdentity, RemoteObject, strip_extension


def _identifier_sort_key(identifier: Any) -> tuple[int, int, str]:
    try:
        return (0, int(identifier), "")
    except (TypeError, ValueError):
        return (1, 0, str(identifier))


def select_match(filename: str, candidates: Iterable[RemoteObject]) -> RemoteObject | None:
    """Pick the candidate that represents `filename`, lowest identifier first on ties.

    A candidate matches when its URL basename equals the filename, or when its rendered title
    equals the filename without extension (both case-insensitive).
    """

    name_lc = filename.lower()
    title_lc = strip_extension(filename).lower()
    matches = [
        candidate
        for candidate in candidates
        if url_basename(candidate.url).lower() == name_lc
        or (title_lc and title_text(candidate.title) == title_lc)
    ]
    if not matches:
        return None
    return min(matches, key=lambda candidate: _identifier_sort_key(candidate.id))


@dataclass(slots=True)
class IdentityResolver:
    """Cache-first lookup with a remote search fallback."""

    cache: IdentityCache
    host: DestinationHost
    logger: logging.Logger

    async def resolve(self, filename: str) -> MediaIdentity | None:
        cached = self.cache.lookup(filename)
        if cached is not None:
            return cached

        query = strip_extension(filename).lower() or filename.lower()
        try:
            candidates = await self.host.search_objects(query)
        except AuthenticationError:
            raise
        except (RemoteError, DataError) as exc:
            self.logger.warning("Media search for %r failed; treating as not found: %s", filename, exc)
            return None

        match = select_match(filename, candidates)
        if match is None:
            return None
        identity = match.identity
        self.register(filename, identity)
        self.logger.debug("Found existing media %s for %r via search", identity.id, filename)
        return identity

    def register(self, filename: str, identity: MediaIdentity) -> None:
        """Record an identity discovered or created for `filename`."""

        self.cache.put(filename, identity)
