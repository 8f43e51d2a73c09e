"""Tests for the sync orchestrator."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from gallerysync.cache import IdentityCache
from gallerysync.core import GallerySync, SyncOptions
from gallerysync.core.sync import make_unique_filename, sort_files
from gallerysync.errors import (
    AuthenticationError,
    ConfigurationError,
    RemoteError,
    SyncAbortedError,
)
from gallerysync.models import RemoteObject, SourceFile, SourceFolder

ROOT = "root-folder"
PAGE_ID = 42


def _no_resize(data: bytes, max_size: int) -> bytes:
    return data


def _trip(source, host) -> None:
    source.folders[ROOT] = [SourceFolder(id="f-trip", name="Trip")]
    source.files["f-trip"] = [
        SourceFile(id="d-sunset", name="sunset.jpg", mime_type="image/jpeg"),
        SourceFile(id="d-beach", name="beach.jpg", mime_type="image/jpeg"),
    ]
    host.objects.append(
        RemoteObject(id=7, url="https://site.example/wp-content/uploads/2023/beach-scaled.jpg", title="beach")
    )
    host.documents[PAGE_ID] = "<p>Our holidays</p>"


def _sync(source, host, cache, logger, sleep, **options) -> GallerySync:
    return GallerySync(
        source=source,
        host=host,
        cache=cache,
        options=SyncOptions(folder_id=ROOT, page_id=PAGE_ID, **options),
        logger=logger,
        sleep=sleep,
        resize=_no_resize,
    )


@pytest.mark.asyncio
async def test_trip_scenario_uploads_new_and_reuses_existing(source, host, cache, logger, sleep):
    _trip(source, host)

    result = await _sync(source, host, cache, logger, sleep).run()

    assert result.uploaded_count == 1
    assert result.reused_count == 1
    assert [(s.name, s.image_count) for s in result.sections] == [("Trip", 2)]
    assert result.updated
    assert host.create_calls == ["sunset.jpg"]
    assert source.downloads == ["d-sunset"]

    body = host.documents[PAGE_ID]
    assert body.startswith("<p>Our holidays</p>\n\n")
    assert body.count("<!-- wp:heading") == 1
    assert '<h2 id="trip" class="wp-block-heading">Trip</h2>' in body
    assert body.count("<!-- wp:gallery ") == 1
    assert body.count("<!-- wp:image ") == 2
    # name order: beach before sunset
    assert body.index("beach-scaled.jpg") < body.index("sunset.jpg")


@pytest.mark.asyncio
async def test_rerun_reuses_everything_and_keeps_body_length(
    source, host, store, logger, sleep
):
    _trip(source, host)
    first_cache = IdentityCache.open(store, host.scope_key)
    await _sync(source, host, first_cache, logger, sleep).run()
    first_body = host.documents[PAGE_ID]

    second_cache = IdentityCache.open(store, host.scope_key)
    assert second_cache.warm
    result = await _sync(source, host, second_cache, logger, sleep).run()

    assert result.uploaded_count == 0
    assert result.reused_count == 2
    assert host.create_calls == ["sunset.jpg"]
    assert host.list_calls == [1]
    assert len(host.documents[PAGE_ID]) == len(first_body)
    assert host.documents[PAGE_ID] == first_body


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(source, host, cache, logger, sleep):
    _trip(source, host)

    result = await _sync(source, host, cache, logger, sleep, dry_run=True).run()

    assert result.uploaded_count == 1
    assert result.reused_count == 1
    assert not result.updated
    assert host.create_calls == []
    assert source.downloads == []
    assert host.documents[PAGE_ID] == "<p>Our holidays</p>"


@pytest.mark.asyncio
async def test_upload_limit_skips_extra_files(source, host, cache, logger, sleep):
    source.folders[ROOT] = [SourceFolder(id="f1", name="Album")]
    source.files["f1"] = [SourceFile(id=f"d{i}", name=f"img{i}.jpg") for i in range(4)]

    result = await _sync(source, host, cache, logger, sleep, upload_limit=2).run()

    assert result.uploaded_count == 2
    assert result.skipped_count == 2
    assert [(s.name, s.image_count) for s in result.sections] == [("Album", 2)]


@pytest.mark.asyncio
async def test_upload_limit_holds_across_parallel_sections(source, host, cache, logger, sleep):
    source.folders[ROOT] = [SourceFolder(id=f"f{i}", name=f"Album {i}") for i in range(3)]
    for i in range(3):
        source.files[f"f{i}"] = [SourceFile(id=f"d{i}", name=f"new{i}.jpg")]

    result = await _sync(
        source, host, cache, logger, sleep, upload_limit=1, max_parallel_sections=3
    ).run()

    assert result.uploaded_count == 1
    assert result.skipped_count == 2
    assert len(host.create_calls) == 1
    assert len(source.downloads) == 1


@pytest.mark.asyncio
async def test_alt_text_authentication_failure_still_counts_upload(source, host, store, logger, sleep):
    source.folders[ROOT] = [SourceFolder(id="f-trip", name="Trip")]
    source.files["f-trip"] = [SourceFile(id="d-sunset", name="sunset.jpg")]
    host.metadata_error = AuthenticationError("denied", status=401, operation="updating media")
    cache = IdentityCache.open(store, host.scope_key)

    with pytest.raises(SyncAbortedError, match="denied") as excinfo:
        await _sync(source, host, cache, logger, sleep).run()

    partial = excinfo.value.result
    assert partial.uploaded_count == 1
    assert partial.uploaded[0].filename == "sunset.jpg"
    assert host.create_calls == ["sunset.jpg"]
    persisted = store.load()
    assert persisted is not None
    assert persisted.lookup("sunset.jpg") is not None


@pytest.mark.asyncio
async def test_empty_folders_are_left_out(source, host, cache, logger, sleep):
    source.folders[ROOT] = [SourceFolder(id="f1", name="Empty"), SourceFolder(id="f2", name="Full")]
    source.files["f2"] = [SourceFile(id="d1", name="a.jpg")]

    result = await _sync(source, host, cache, logger, sleep).run()

    assert [s.name for s in result.sections] == ["Full"]
    assert "Empty" not in host.documents[PAGE_ID]


@pytest.mark.asyncio
async def test_clear_content_replaces_whole_body(source, host, cache, logger, sleep):
    _trip(source, host)

    await _sync(source, host, cache, logger, sleep, clear_content=True).run()

    body = host.documents[PAGE_ID]
    assert "Our holidays" not in body
    assert body.startswith("<!-- gallerysync:start -->")


@pytest.mark.asyncio
async def test_page_update_failure_carries_partial_result(source, host, store, logger, sleep):
    _trip(source, host)
    host.update_error = RemoteError("page locked", status=500, operation="updating page")
    cache = IdentityCache.open(store, host.scope_key)

    with pytest.raises(SyncAbortedError) as excinfo:
        await _sync(source, host, cache, logger, sleep).run()

    partial = excinfo.value.result
    assert partial.uploaded_count == 1
    assert partial.reused_count == 1
    assert not partial.updated
    persisted = store.load()
    assert persisted is not None
    assert persisted.lookup("sunset.jpg") is not None


@pytest.mark.asyncio
async def test_authentication_failure_during_listing_aborts(source, host, cache, logger, sleep):
    _trip(source, host)
    host.list_error = AuthenticationError("denied", status=401, operation="fetching media")

    with pytest.raises(SyncAbortedError, match="denied"):
        await _sync(source, host, cache, logger, sleep).run()

    assert host.create_calls == []


@pytest.mark.asyncio
async def test_listing_failure_keeps_going_with_search(source, host, cache, logger, sleep):
    _trip(source, host)
    host.list_error = RemoteError("boom", status=500, operation="fetching media")

    result = await _sync(source, host, cache, logger, sleep).run()

    assert result.reused_count == 1
    assert "beach" in host.search_calls


@pytest.mark.asyncio
@pytest.mark.parametrize("folder_id,page_id", [(None, PAGE_ID), (ROOT, None)])
async def test_missing_identifiers_fail_before_any_work(source, host, cache, logger, folder_id, page_id):
    sync = GallerySync(
        source=source,
        host=host,
        cache=cache,
        options=SyncOptions(folder_id=folder_id, page_id=page_id),
        logger=logger,
    )

    with pytest.raises(ConfigurationError):
        await sync.run()

    assert host.list_calls == []


@pytest.mark.asyncio
async def test_parallel_sections_keep_folder_order(source, host, cache, logger, sleep):
    names = ["Alpha", "Beta", "Gamma"]
    source.folders[ROOT] = [SourceFolder(id=f"f{i}", name=name) for i, name in enumerate(names)]
    for i, name in enumerate(names):
        source.files[f"f{i}"] = [SourceFile(id=f"d{i}", name=f"{name.lower()}.jpg")]

    result = await _sync(source, host, cache, logger, sleep, max_parallel_sections=3).run()

    assert [s.name for s in result.sections] == names
    body = host.documents[PAGE_ID]
    assert body.index('id="alpha"') < body.index('id="beta"') < body.index('id="gamma"')


@pytest.mark.asyncio
async def test_unique_filenames_prefix_folder_name(source, host, cache, logger, sleep):
    source.folders[ROOT] = [SourceFolder(id="f1", name="Summer 2024!")]
    source.files["f1"] = [SourceFile(id="d1", name="photo.jpg")]

    result = await _sync(source, host, cache, logger, sleep, unique_filenames=True).run()

    assert host.create_calls == ["Summer-2024-photo.jpg"]
    assert result.uploaded[0].filename == "Summer-2024-photo.jpg"
    assert host.metadata_calls[0][1] == {"alt_text": "photo"}


def test_sort_files_orders():
    files = [
        SourceFile(id="1", name="b.jpg", modified_time=datetime(2024, 1, 2, tzinfo=timezone.utc)),
        SourceFile(id="2", name="A.jpg", modified_time=datetime(2024, 1, 3, tzinfo=timezone.utc)),
        SourceFile(id="3", name="c.jpg", modified_time=datetime(2024, 1, 1, tzinfo=timezone.utc)),
    ]

    assert [f.id for f in sort_files(files, "name_asc")] == ["2", "1", "3"]
    assert [f.id for f in sort_files(files, "name_desc")] == ["3", "1", "2"]
    assert [f.id for f in sort_files(files, "modified_desc")] == ["2", "1", "3"]
    assert [f.id for f in sort_files(files, "modified_asc")] == ["3", "1", "2"]
    assert [f.id for f in sort_files(files, "bogus")] == ["2", "1", "3"]


@pytest.mark.parametrize(
    "folder,filename,expected",
    [
        ("Summer 2024!", "photo.jpg", "Summer-2024-photo.jpg"),
        ("Été 2024", "photo.jpg", "t-2024-photo.jpg"),
        ("***", "photo.jpg", "photo.jpg"),
    ],
)
def test_make_unique_filename(folder, filename, expected):
    assert make_unique_filename(folder, filename) == expected


def test_source_file_without_name_gets_id_filename():
    assert SourceFile(id="abc", name="").filename == "abc.jpg"
