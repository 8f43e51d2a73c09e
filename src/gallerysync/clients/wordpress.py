"""WordPress REST API destination host."""

from __future__ import annotations

import mimetypes
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from gallerysync.errors import AuthenticationError, DataError, RemoteError, TransientRemoteError
from gallerysync.models import RemoteObject

SEARCH_PAGE_SIZE = 100
LIST_PAGE_SIZE = 100

_RETRYABLE_STATUSES = frozenset({429, 503})

_AUTH_HINTS: dict[str, str] = {
    "uploading media": "The user may also lack permission to upload media.",
    "updating page": "The user may also lack permission to edit pages.",
    "reading page": "The REST API may also be blocked by a security plugin.",
}


def _media_from_payload(item: Mapping[str, Any]) -> RemoteObject:
    url = item.get("source_url") or ""
    if not url:
        sizes = (item.get("media_details") or {}).get("sizes") or {}
        url = (sizes.get("large") or {}).get("source_url") or ""
    title = item.get("title") or {}
    rendered = title.get("rendered", "") if isinstance(title, Mapping) else str(title)
    return RemoteObject(id=item.get("id"), url=url, title=rendered or "")


@dataclass(slots=True)
class WordPressHost:
    """Async client for `/wp-json/wp/v2` authenticated with an application password."""

    base_url: str
    username: str
    app_password: str
    timeout: float = 60.0
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)
    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    @property
    def scope_key(self) -> str:
        return self.base_url

    @property
    def api_root(self) -> str:
        return f"{self.base_url.rstrip('/')}/wp-json"

    async def __aenter__(self) -> WordPressHost:
        self._client = httpx.AsyncClient(
            base_url=self.api_root,
            auth=httpx.BasicAuth(self.username, self.app_password),
            headers={"Accept": "application/json"},
            timeout=self.timeout,
            transport=self.transport,
        )
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def list_objects(self, page: int) -> tuple[Sequence[RemoteObject], int]:
        response = await self._request(
            "GET",
            "/wp/v2/media",
            operation="fetching media",
            params={"per_page": LIST_PAGE_SIZE, "page": page},
        )
        items = _json_list(response, "fetching media")
        try:
            total_pages = int(response.headers.get("x-wp-totalpages", "1"))
        except ValueError:
            total_pages = 1
        return [_media_from_payload(item) for item in items], total_pages

    async def search_objects(self, query: str) -> Sequence[RemoteObject]:
        response = await self._request(
            "GET",
            "/wp/v2/media",
            operation="searching media",
            params={"per_page": SEARCH_PAGE_SIZE, "search": query},
        )
        return [_media_from_payload(item) for item in _json_list(response, "searching media")]

    async def create_object(self, data: bytes, filename: str, *, caption: str = "") -> RemoteObject:
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        form: dict[str, str] = {}
        if caption:
            form["caption"] = caption
        response = await self._request(
            "POST",
            "/wp/v2/media",
            operation="uploading media",
            files={"file": (filename, data, content_type)},
            data=form,
        )
        return _media_from_payload(_json_object(response, "uploading media"))

    async def update_object_metadata(self, object_id: Any, fields: Mapping[str, Any]) -> None:
        await self._request(
            "POST",
            f"/wp/v2/media/{object_id}",
            operation="updating media",
            json=dict(fields),
        )

    async def get_document(self, document_id: int) -> str:
        response = await self._request(
            "GET",
            f"/wp/v2/pages/{document_id}",
            operation="reading page",
            params={"context": "edit"},
        )
        content = _json_object(response, "reading page").get("content") or {}
        if not isinstance(content, Mapping):
            raise DataError("Expected a content object from WordPress while reading page")
        return content.get("raw") or content.get("rendered") or ""

    async def update_document(self, document_id: int, body: str) -> None:
        await self._request(
            "POST",
            f"/wp/v2/pages/{document_id}",
            operation="updating page",
            json={"content": body},
        )

    async def _request(self, method: str, path: str, *, operation: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("WordPressHost must be used as an async context manager.")
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as exc:
            raise TransientRemoteError(
                f"No response from WordPress while {operation}: {exc}", operation=operation
            ) from exc

        status = response.status_code
        if status < 400:
            return response

        detail = _error_detail(response)
        if status == 401:
            hint = _AUTH_HINTS.get(operation, "")
            message = (
                f"WordPress authentication failed (401) while {operation}. "
                f"Check WP_USERNAME and WP_APP_PASSWORD. {hint}"
            ).strip()
            if detail:
                message = f"{message} Error: {detail}"
            raise AuthenticationError(message, status=status, operation=operation)
        if status in _RETRYABLE_STATUSES:
            raise TransientRemoteError(
                f"WordPress returned {status} while {operation}", status=status, operation=operation
            )
        raise RemoteError(
            f"WordPress returned {status} while {operation}: {detail or response.reason_phrase}",
            status=status,
            operation=operation,
        )


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return ""
    if isinstance(payload, Mapping):
        return str(payload.get("message") or "")
    return ""


def _json_object(response: httpx.Response, operation: str) -> Mapping[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise DataError(f"Malformed JSON from WordPress while {operation}") from exc
    if not isinstance(payload, Mapping):
        raise DataError(f"Expected an object from WordPress while {operation}")
    return payload


def _json_list(response: httpx.Response, operation: str) -> list[Mapping[str, Any]]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise DataError(f"Malformed JSON from WordPress while {operation}") from exc
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise DataError(f"Expected a list from WordPress while {operation}")
    return [item for item in payload if isinstance(item, Mapping)]
