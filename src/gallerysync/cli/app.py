"""Command line interface for Gallerysync."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import pathlib
from datetime import datetime, timezone
from typing import Optional

import typer
import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from gallerysync import get_version
from gallerysync.cache import CacheStore
from gallerysync.config import Config, load_config
from gallerysync.core import SyncOptions, run_sync
from gallerysync.errors import ConfigurationError, GallerySyncError, SyncAbortedError
from gallerysync.logging import configure_logging, log_file_path
from gallerysync.models import SyncResult

app = typer.Typer(
    name="gallerysync",
    help="Sync Google Drive photo folders into a WordPress gallery page.",
    no_args_is_help=True,
    add_completion=False,
)

config_app = typer.Typer(help="Configuration utilities.", no_args_is_help=True)
cache_app = typer.Typer(help="Inspect or reset the media identity cache.", no_args_is_help=True)
app.add_typer(config_app, name="config")
app.add_typer(cache_app, name="cache")

console = Console()


def _load_environment(env_file: Optional[pathlib.Path]) -> None:
    """Load environment variables from .env files."""

    if env_file is not None:
        load_dotenv(dotenv_path=env_file, override=True)
    else:
        load_dotenv(override=False)


def _prepare_logging(
    config: Config,
    override_path: Optional[pathlib.Path],
    override_level: Optional[str],
) -> tuple[logging.Logger, Optional[pathlib.Path]]:
    """Configure logging based on configuration and overrides."""

    configured_path = override_path or config.logging.path
    configured_level = (override_level or config.logging.level).upper()
    logger = configure_logging(
        log_path=configured_path,
        level=configured_level,
        mirror_to_console=False,
    )
    return logger, log_file_path(logger)


def _version_callback(value: bool) -> None:
    """Print the package version and exit when requested."""

    if value:
        typer.echo(get_version())
        raise typer.Exit()


def _print_result(result: SyncResult, *, title: str) -> None:
    table = Table(title=title)
    table.add_column("Section")
    table.add_column("Images", justify="right")
    for section in result.sections:
        table.add_row(section.name, str(section.image_count))
    console.print(table)
    console.print(
        f"uploaded={result.uploaded_count} reused={result.reused_count} "
        f"skipped={result.skipped_count} placed={result.total_placed} "
        f"page={result.page_id} updated={result.updated}"
    )


@app.callback()
def main(  # pragma: no cover - exercised via CLI invocation
    ctx: typer.Context,
    config: Optional[pathlib.Path] = typer.Option(
        None,
        "--config",
        metavar="PATH",
        help="Path to YAML configuration file (used exclusively).",
    ),
    env_file: Optional[pathlib.Path] = typer.Option(
        None,
        "--env-file",
        metavar="PATH",
        help="Load environment variables from .env-style file before execution.",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        metavar="LEVEL",
        help="Override the configured log level (debug, info, warn, error).",
    ),
    log_path: Optional[pathlib.Path] = typer.Option(
        None,
        "--log-path",
        metavar="PATH",
        help="Override the base directory or file for log output.",
    ),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show Gallerysync version and exit.",
    ),
) -> None:
    """CLI root; loads environment, configuration and logging."""

    ctx.ensure_object(dict)
    _load_environment(env_file)

    try:
        config_obj = load_config(config)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc

    logger, log_file = _prepare_logging(config_obj, log_path, log_level)
    ctx.obj.update(
        {
            "config": config_obj,
            "config_path": config,
            "logger": logger,
            "log_file": log_file,
        }
    )


@app.command()
def sync(
    ctx: typer.Context,
    folder_id: Optional[str] = typer.Option(None, "--folder-id", help="Drive folder to sync."),
    page_id: Optional[int] = typer.Option(None, "--page-id", min=1, help="WordPress page ID."),
    order: Optional[str] = typer.Option(
        None, "--order", help="name_asc, name_desc, modified_desc or modified_asc."
    ),
    dry_run: Optional[bool] = typer.Option(
        None, "--dry-run/--no-dry-run", help="Report what would change without writing."
    ),
    clear_content: Optional[bool] = typer.Option(
        None, "--clear-content/--keep-content", help="Replace the whole page body."
    ),
    refresh_cache: Optional[bool] = typer.Option(
        None, "--refresh-cache/--use-cache", help="Rebuild the media cache from the site."
    ),
    max_size: Optional[int] = typer.Option(
        None, "--max-size", min=0, help="Longest image edge in pixels (0 disables resizing)."
    ),
    upload_limit: Optional[int] = typer.Option(
        None, "--upload-limit", help="Maximum uploads this run (0 = unlimited)."
    ),
) -> None:
    """Run one sync from Drive to the configured WordPress page."""

    config: Config = ctx.obj["config"]
    logger: logging.Logger = ctx.obj["logger"]
    options = SyncOptions.from_config(
        config,
        folder_id=folder_id,
        page_id=page_id,
        order=order,
        dry_run=dry_run,
        clear_content=clear_content,
        refresh_cache=refresh_cache,
        max_size=max_size,
        upload_limit=upload_limit,
    )

    try:
        result = asyncio.run(
            run_sync(
                config,
                options,
                logger=logger,
                app_password=os.environ.get("WP_APP_PASSWORD"),
                service_account_json=os.environ.get("GOOGLE_SERVICE_ACCOUNT_JSON"),
            )
        )
    except ConfigurationError as exc:
        typer.echo(f"Configuration error: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    except SyncAbortedError as exc:
        typer.echo(f"Sync aborted: {exc}", err=True)
        _print_result(exc.result, title="Partial result")
        raise typer.Exit(code=1) from exc
    except GallerySyncError as exc:
        typer.echo(f"Sync failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    _print_result(result, title="Dry run" if options.dry_run else "Sync complete")


@cache_app.command("show")
def cache_show(ctx: typer.Context) -> None:
    """Show the persisted cache scope, age and entry count."""

    config: Config = ctx.obj["config"]
    store = CacheStore(path=config.cache.path)
    cache = store.load()
    if cache is None:
        typer.echo(f"No usable cache at {store.path}")
        raise typer.Exit(code=1)

    age = datetime.now(timezone.utc) - cache.created_at
    scope = config.destination.base_url
    valid = scope is not None and cache.is_valid(scope)
    typer.echo(f"path: {store.path}")
    typer.echo(f"scope: {cache.scope_key}")
    typer.echo(f"age_hours: {age.total_seconds() / 3600:.1f}")
    typer.echo(f"entries: {len(cache.entries)}")
    typer.echo(f"valid_for_configured_site: {valid}")


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Delete the persisted cache so the next sync rebuilds it."""

    config: Config = ctx.obj["config"]
    store = CacheStore(path=config.cache.path)
    if store.clear():
        typer.echo(f"Removed {store.path}")
    else:
        typer.echo(f"No cache at {store.path}")


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    format: str = typer.Option(
        "yaml",
        "--format",
        help="Output format (yaml or json).",
    ),
    paths: bool = typer.Option(
        False,
        "--paths",
        help="Explain configuration precedence and selected inputs.",
    ),
) -> None:
    """Show the effective configuration for this invocation."""

    config: Config = ctx.obj["config"]
    config_path: Optional[pathlib.Path] = ctx.obj.get("config_path")

    normalized_format = format.strip().lower()
    if normalized_format not in {"yaml", "json"}:
        raise typer.BadParameter("Format must be 'yaml' or 'json'.", param_hint="--format")

    if paths:
        if config.loaded_from:
            typer.echo("Loaded configuration from:", err=True)
            for entry in config.loaded_from:
                typer.echo(f"- {entry}", err=True)
        if config_path is not None:
            typer.echo("Mode: replace-by-default", err=True)
        else:
            typer.echo("Config precedence (when --config is not provided):", err=True)
            typer.echo("1) ./config/default.yaml (or packaged default if missing)", err=True)
            typer.echo("2) ./config/local.yaml (optional)", err=True)
        typer.echo("Unset values are then filled from the environment.", err=True)

    data = config.model.model_dump(mode="json")
    if normalized_format == "json":
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(yaml.safe_dump(data, sort_keys=False))
