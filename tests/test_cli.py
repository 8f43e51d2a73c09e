"""Tests for the command line interface."""

from __future__ import annotations

import json
import logging

import pytest
from typer.testing import CliRunner

from gallerysync import get_version
from gallerysync.cache import CacheStore, IdentityCache
from gallerysync.cli import app as cli_app
from gallerysync.errors import SyncAbortedError
from gallerysync.models import FileRef, SectionSummary, SyncResult

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("WP_BASE_URL", "WP_PAGE_ID", "WP_USERNAME", "WP_APP_PASSWORD", "GOOGLE_DRIVE_FOLDER_ID"):
        monkeypatch.delenv(name, raising=False)
    yield
    logger = logging.getLogger("gallerysync")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_version_flag():
    result = runner.invoke(cli_app.app, ["--version"])

    assert result.exit_code == 0
    assert result.stdout.strip() == get_version()


def test_sync_passes_flag_overrides(monkeypatch):
    captured: dict = {}

    async def fake_run_sync(config, options, *, logger, app_password, service_account_json):
        captured["options"] = options
        captured["app_password"] = app_password
        result = SyncResult(page_id=options.page_id, updated=True)
        result.uploaded.append(FileRef(folder="Trip", filename="sunset.jpg"))
        result.sections.append(SectionSummary(name="Trip", image_count=2))
        return result

    monkeypatch.setattr(cli_app, "run_sync", fake_run_sync)
    monkeypatch.setenv("WP_APP_PASSWORD", "secret")

    result = runner.invoke(
        cli_app.app,
        ["sync", "--folder-id", "drive-1", "--page-id", "9", "--dry-run", "--upload-limit", "3"],
    )

    assert result.exit_code == 0, result.output
    options = captured["options"]
    assert options.folder_id == "drive-1"
    assert options.page_id == 9
    assert options.dry_run is True
    assert options.upload_limit == 3
    assert options.clear_content is False
    assert captured["app_password"] == "secret"
    assert "Trip" in result.stdout
    assert "uploaded=1" in result.stdout


def test_sync_without_credentials_exits_with_configuration_error():
    result = runner.invoke(cli_app.app, ["sync", "--folder-id", "drive-1", "--page-id", "9"])

    assert result.exit_code == 2


def test_sync_aborted_prints_partial_result(monkeypatch):
    async def aborting_run_sync(config, options, **kwargs):
        partial = SyncResult(page_id=9)
        partial.uploaded.append(FileRef(folder="Trip", filename="sunset.jpg"))
        raise SyncAbortedError("page locked", result=partial)

    monkeypatch.setattr(cli_app, "run_sync", aborting_run_sync)

    result = runner.invoke(cli_app.app, ["sync"])

    assert result.exit_code == 1
    assert "uploaded=1" in result.stdout


def test_cache_show_and_clear(tmp_path):
    store = CacheStore(path=tmp_path / ".wp-media-cache.json")
    cache = IdentityCache(scope_key="https://site.example", store=store)
    cache.populate([])

    shown = runner.invoke(cli_app.app, ["cache", "show"])
    assert shown.exit_code == 0, shown.output
    assert "scope: https://site.example" in shown.stdout
    assert "entries: 0" in shown.stdout

    cleared = runner.invoke(cli_app.app, ["cache", "clear"])
    assert cleared.exit_code == 0
    assert "Removed" in cleared.stdout
    assert not store.path.exists()

    missing = runner.invoke(cli_app.app, ["cache", "show"])
    assert missing.exit_code == 1


def test_config_show_json():
    result = runner.invoke(cli_app.app, ["config", "show", "--format", "json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["transfer"]["backoff_seconds"] == [2.0, 5.0, 10.0]
    assert payload["render"]["lightbox_group"] == "gallery-lightbox"
