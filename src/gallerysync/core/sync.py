"""Sync orchestration: source folders -> resolved identities -> merged gallery page."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from gallerysync.cache import CacheStore, IdentityCache
from gallerysync.clients import DriveSourceStore, WordPressHost
from gallerysync.clients.base import DestinationHost, SourceStore
from gallerysync.config import Config
from gallerysync.config.loader import SORT_ORDERS
from gallerysync.content import RenderOptions, merge, render
from gallerysync.core.resolver import IdentityResolver
from gallerysync.core.transfer import DEFAULT_BACKOFF_SECONDS, TransferMetadata, TransferPolicy
from gallerysync.errors import (
    AuthenticationError,
    ConfigurationError,
    DataError,
    GallerySyncError,
    RemoteError,
    SyncAbortedError,
)
from gallerysync.imaging import resize_if_needed
from gallerysync.models import (
    FileRef,
    Section,
    SectionItem,
    SectionSummary,
    SourceFile,
    SourceFolder,
    SyncResult,
    strip_extension,
)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)
_FOLDER_PREFIX_RE = re.compile(r"[^A-Za-z0-9]+")


def sort_files(files: Sequence[SourceFile], order: str) -> list[SourceFile]:
    """Order files for display; unknown orders fall back to `name_asc`."""

    if order not in SORT_ORDERS:
        order = "name_asc"
    if order.startswith("modified"):
        return sorted(
            files,
            key=lambda f: f.modified_time or _EPOCH,
            reverse=order == "modified_desc",
        )
    return sorted(files, key=lambda f: f.name.casefold(), reverse=order == "name_desc")


def make_unique_filename(folder_name: str, filename: str) -> str:
    """Prefix a filename with its sanitized folder name (`Summer 2024!` -> `Summer-2024-photo.jpg`)."""

    prefix = _FOLDER_PREFIX_RE.sub("-", folder_name).strip("-")
    return f"{prefix}-{filename}" if prefix else filename


@dataclass(slots=True)
class SyncOptions:
    """Per-run parameters."""

    folder_id: str | None
    page_id: int | None
    order: str = "name_asc"
    dry_run: bool = False
    clear_content: bool = False
    refresh_cache: bool = False
    max_size: int = 1024
    upload_limit: int = 0
    unique_filenames: bool = False
    max_parallel_sections: int = 1

    @classmethod
    def from_config(cls, config: Config, **overrides: Any) -> SyncOptions:
        """Build options from configuration; `None` overrides are ignored."""

        values: dict[str, Any] = {
            "folder_id": config.source.folder_id,
            "page_id": config.destination.page_id,
            "order": config.source.order,
            "dry_run": config.sync.dry_run,
            "clear_content": config.sync.clear_content,
            "refresh_cache": config.sync.refresh_cache,
            "max_size": config.sync.max_size,
            "upload_limit": config.sync.upload_limit,
            "unique_filenames": config.sync.unique_filenames,
            "max_parallel_sections": config.sync.max_parallel_sections,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def validate(self) -> None:
        if not self.folder_id:
            raise ConfigurationError("folder id required (GOOGLE_DRIVE_FOLDER_ID)")
        if not self.page_id:
            raise ConfigurationError("page id required (WP_PAGE_ID)")


@dataclass(slots=True)
class GallerySync:
    """Run one sync between a source store and a destination page."""

    source: SourceStore
    host: DestinationHost
    cache: IdentityCache
    options: SyncOptions
    logger: logging.Logger
    render_options: RenderOptions = field(default_factory=RenderOptions)
    retries: int = 3
    backoff_seconds: Sequence[float] = DEFAULT_BACKOFF_SECONDS
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)
    resize: Callable[[bytes, int], bytes] = field(default=resize_if_needed, repr=False)
    _resolver: IdentityResolver = field(init=False, repr=False)
    _transfer: TransferPolicy = field(init=False, repr=False)
    _reserved: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        self._resolver = IdentityResolver(cache=self.cache, host=self.host, logger=self.logger)
        self._transfer = TransferPolicy(
            host=self.host,
            cache=self.cache,
            logger=self.logger,
            retries=self.retries,
            backoff_seconds=self.backoff_seconds,
            sleep=self.sleep,
        )

    async def run(self) -> SyncResult:
        """Execute the sync.

        Raises `ConfigurationError` before any work starts, and `SyncAbortedError` (carrying
        the partial result) for fatal errors afterwards.
        """

        self.options.validate()
        result = SyncResult(page_id=self.options.page_id)
        self._reserved = 0
        try:
            await self._run(result)
        except GallerySyncError as exc:
            self.logger.error(
                "Sync aborted after %s upload(s) and %s reuse(s): %s",
                result.uploaded_count,
                result.reused_count,
                exc,
            )
            raise SyncAbortedError(str(exc), result=result) from exc
        return result

    async def _run(self, result: SyncResult) -> None:
        if not self.cache.warm:
            await self._warm_cache()

        folders = await self.source.list_folders(self.options.folder_id)
        self.logger.info("Found %s sub-folder(s)", len(folders))

        semaphore = asyncio.Semaphore(self.options.max_parallel_sections)
        outcomes = await asyncio.gather(
            *(self._build_section(folder, result, semaphore) for folder in folders),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        sections = [section for section in outcomes if section.items]
        result.sections = [SectionSummary(s.name, len(s.items)) for s in sections]

        if self.options.dry_run:
            self.logger.info("Dry run: %s file(s) would be uploaded", result.uploaded_count)
            return

        page_id = self.options.page_id
        existing = await self.host.get_document(page_id)
        self.logger.info("Previous content length: %s", len(existing))
        fragment = render(sections, self.render_options)
        if self.options.clear_content:
            self.logger.info("Clearing existing page content")
        body = merge(existing, fragment, replace_all=self.options.clear_content)
        self.logger.info(
            "Generated %s section(s); new content length: %s", len(sections), len(body)
        )
        await self.host.update_document(page_id, body)
        result.updated = True
        self.logger.info("Page %s content updated", page_id)

    async def _warm_cache(self) -> None:
        self.logger.info("Fetching all media from the destination...")
        objects = []
        page = 1
        while True:
            try:
                items, total_pages = await self.host.list_objects(page)
            except AuthenticationError:
                raise
            except (RemoteError, DataError) as exc:
                self.logger.warning("Error fetching media page %s; keeping partial listing: %s", page, exc)
                break
            if not items:
                break
            objects.extend(items)
            self.logger.info("Fetched media page %s (%s items so far)", page, len(objects))
            if page >= total_pages:
                break
            page += 1
        self.cache.populate(objects)

    async def _build_section(
        self, folder: SourceFolder, result: SyncResult, semaphore: asyncio.Semaphore
    ) -> Section:
        async with semaphore:
            self.logger.info("Processing folder: %s", folder.name)
            files = sort_files(await self.source.list_images(folder.id), self.options.order)
            section = Section(name=folder.name)
            for source_file in files:
                item = await self._place_file(folder, source_file, result)
                if item is not None:
                    section.items.append(item)
            return section

    async def _place_file(
        self, folder: SourceFolder, source_file: SourceFile, result: SyncResult
    ) -> SectionItem | None:
        filename = source_file.filename
        if self.options.unique_filenames:
            filename = make_unique_filename(folder.name, filename)
        alt_text = strip_extension(source_file.filename)
        ref = FileRef(folder=folder.name, filename=filename)

        identity = await self._resolver.resolve(filename)
        if identity is not None:
            result.reused.append(ref)
            return SectionItem(identity=identity, alt_text=alt_text)

        # Reserve the upload slot before the first await so parallel sections share the limit.
        limit = self.options.upload_limit
        if limit > 0 and self._reserved >= limit:
            result.skipped_count += 1
            return None
        self._reserved += 1

        if self.options.dry_run:
            result.uploaded.append(ref)
            return None

        metadata = TransferMetadata(caption=source_file.description, alt_text=alt_text)
        try:
            data = await self.source.download(source_file.id)
            if self.options.max_size > 0:
                loop = asyncio.get_running_loop()
                data = await loop.run_in_executor(None, self.resize, data, self.options.max_size)
            identity = await self._transfer.upload(data, filename, metadata)
        except BaseException:
            self._reserved -= 1
            raise
        result.uploaded.append(ref)
        await self._transfer.apply_metadata(identity, metadata)
        return SectionItem(identity=identity, alt_text=alt_text)


async def run_sync(
    config: Config,
    options: SyncOptions,
    *,
    logger: logging.Logger,
    app_password: str | None,
    service_account_json: str | None,
    source: SourceStore | None = None,
) -> SyncResult:
    """Wire the real Drive and WordPress clients from configuration and run one sync."""

    destination = config.destination
    if not destination.base_url or not destination.username or not app_password:
        raise ConfigurationError(
            "WordPress credentials/base URL required (WP_BASE_URL, WP_USERNAME, WP_APP_PASSWORD)"
        )
    options.validate()
    if source is None:
        source = DriveSourceStore.from_service_account_json(service_account_json)

    store = CacheStore(path=config.cache.path)
    render_settings = config.render
    async with WordPressHost(
        base_url=destination.base_url,
        username=destination.username,
        app_password=app_password,
        timeout=config.transfer.timeout_seconds,
    ) as host:
        cache = IdentityCache.open(
            store,
            host.scope_key,
            refresh=options.refresh_cache,
            ttl=timedelta(hours=config.cache.ttl_hours),
        )
        sync = GallerySync(
            source=source,
            host=host,
            cache=cache,
            options=options,
            logger=logger,
            render_options=RenderOptions(
                lightbox_group=render_settings.lightbox_group,
                make_sections=render_settings.make_sections,
                toc_label=render_settings.toc_label,
                toc_placeholder=render_settings.toc_placeholder,
            ),
            retries=config.transfer.retries,
            backoff_seconds=tuple(config.transfer.backoff_seconds),
        )
        return await sync.run()
