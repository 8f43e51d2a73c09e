"""Configuration loading for Gallerysync."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_PATH = Path("config/default.yaml")
LOCAL_CONFIG_PATH = Path("config/local.yaml")

SORT_ORDERS = ("name_asc", "name_desc", "modified_desc", "modified_asc")


def parse_bool(value: Any, default: bool = False) -> bool:
    """Only the string `true` (any case) is truthy; None yields `default`."""

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def env(name: str, fallback: str | None = None, environ: Mapping[str, str] | None = None) -> str | None:
    """Read an environment variable, treating empty strings as unset."""

    source = os.environ if environ is None else environ
    value = source.get(name)
    return fallback if value is None or value == "" else value


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")

    path: Path | None = None
    level: str = Field(default="info")

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        if not isinstance(value, str):
            raise TypeError("Logging level must be a string.")
        normalized = value.strip().lower()
        if normalized not in {"debug", "info", "warn", "warning", "error", "critical"}:
            raise ValueError(f"Unsupported logging level: {value!r}")
        return normalized


class CacheSettings(BaseModel):
    """Identity cache persistence."""

    model_config = ConfigDict(extra="forbid")

    path: Path = Path(".wp-media-cache.json")
    ttl_hours: float = Field(default=24.0, gt=0.0)


class TransferSettings(BaseModel):
    """Upload retry policy."""

    model_config = ConfigDict(extra="forbid")

    retries: int = Field(default=3, ge=0)
    backoff_seconds: list[float] = Field(default_factory=lambda: [2.0, 5.0, 10.0])
    timeout_seconds: float = Field(default=60.0, ge=1.0)

    @field_validator("backoff_seconds")
    @classmethod
    def _validate_backoff(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("backoff_seconds needs at least one delay.")
        if any(delay < 0 for delay in value):
            raise ValueError("backoff_seconds must not contain negative delays.")
        return value


class SourceSettings(BaseModel):
    """Google Drive folder to sync from."""

    model_config = ConfigDict(extra="forbid")

    folder_id: str | None = None
    order: str = Field(default="name_asc")

    @field_validator("order", mode="before")
    @classmethod
    def _normalize_order(cls, value: Any) -> str:
        if value is None:
            return "name_asc"
        if not isinstance(value, str):
            raise TypeError("order must be a string.")
        normalized = value.strip().lower()
        return normalized if normalized in SORT_ORDERS else "name_asc"


class DestinationSettings(BaseModel):
    """WordPress site and page to publish to. The application password is read from the env only."""

    model_config = ConfigDict(extra="forbid")

    base_url: str | None = None
    page_id: int | None = Field(default=None, ge=1)
    username: str | None = None


class RenderSettings(BaseModel):
    """Gallery markup options."""

    model_config = ConfigDict(extra="forbid")

    lightbox_group: str = "gallery-lightbox"
    make_sections: bool = True
    toc_label: str = "Jump to section:"
    toc_placeholder: str = "-- Choose a section --"


class SyncSettings(BaseModel):
    """Run behaviour."""

    model_config = ConfigDict(extra="forbid")

    dry_run: bool = False
    clear_content: bool = False
    refresh_cache: bool = False
    max_size: int = Field(default=1024, ge=0)
    upload_limit: int = 0
    unique_filenames: bool = False
    max_parallel_sections: int = Field(default=1, ge=1)


class ConfigModel(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    transfer: TransferSettings = Field(default_factory=TransferSettings)
    source: SourceSettings = Field(default_factory=SourceSettings)
    destination: DestinationSettings = Field(default_factory=DestinationSettings)
    render: RenderSettings = Field(default_factory=RenderSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)


# Environment variable -> (section, key). Applied only where the config leaves a value unset.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "GOOGLE_DRIVE_FOLDER_ID": ("source", "folder_id"),
    "ORDER": ("source", "order"),
    "WP_BASE_URL": ("destination", "base_url"),
    "WP_PAGE_ID": ("destination", "page_id"),
    "WP_USERNAME": ("destination", "username"),
    "DRY_RUN": ("sync", "dry_run"),
    "CLEAR_CONTENT": ("sync", "clear_content"),
    "REFRESH_CACHE": ("sync", "refresh_cache"),
    "MAX_SIZE": ("sync", "max_size"),
    "UPLOAD_LIMIT": ("sync", "upload_limit"),
}
_BOOL_KEYS = {"dry_run", "clear_content", "refresh_cache"}


@dataclass(slots=True)
class Config:
    """Validated configuration with convenience helpers."""

    model: ConfigModel
    raw: Mapping[str, Any] = field(repr=False)
    loaded_from: tuple[str, ...] = field(default_factory=tuple, repr=False)

    @property
    def logging(self) -> LoggingSettings:
        return self.model.logging

    @property
    def cache(self) -> CacheSettings:
        return self.model.cache

    @property
    def transfer(self) -> TransferSettings:
        return self.model.transfer

    @property
    def source(self) -> SourceSettings:
        return self.model.source

    @property
    def destination(self) -> DestinationSettings:
        return self.model.destination

    @property
    def render(self) -> RenderSettings:
        return self.model.render

    @property
    def sync(self) -> SyncSettings:
        return self.model.sync

    def model_dump(self) -> Mapping[str, Any]:
        """Expose the parsed configuration as a mapping."""

        return self.model.model_dump()


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> Config:
    """Load configuration from defaults/local overrides (or an explicit file), then the env."""

    merged: dict[str, Any] = {}
    loaded_from: list[str] = []

    if path is not None:
        override_path = _resolve_path(path)
        if override_path is None or not override_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")
        merged = _merge_dicts(merged, _read_yaml(override_path))
        loaded_from.append(str(override_path))
    else:
        default_candidate = _resolve_path(DEFAULT_CONFIG_PATH)
        packaged_default = _resolve_packaged_path(DEFAULT_CONFIG_PATH)
        if default_candidate and default_candidate.exists():
            merged = _merge_dicts(merged, _read_yaml(default_candidate))
            loaded_from.append(str(default_candidate))
        elif packaged_default and packaged_default.exists():
            merged = _merge_dicts(merged, _read_yaml(packaged_default))
            loaded_from.append(str(packaged_default))
        else:
            packaged_payload = _read_packaged_yaml("gallerysync.config", "default.yaml")
            if packaged_payload is not None:
                merged = _merge_dicts(merged, packaged_payload)
                loaded_from.append("gallerysync.config:default.yaml")

        local_candidate = _resolve_path(LOCAL_CONFIG_PATH)
        if local_candidate and local_candidate.exists():
            merged = _merge_dicts(merged, _read_yaml(local_candidate))
            loaded_from.append(str(local_candidate))

    merged = apply_environment(merged, environ)

    try:
        model = ConfigModel.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc

    return Config(model=model, raw=merged, loaded_from=tuple(loaded_from))


def apply_environment(
    payload: Mapping[str, Any], environ: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """Fill unset configuration values from environment variables."""

    result = _merge_dicts({}, payload)
    for name, (section, key) in ENV_OVERRIDES.items():
        value = env(name, environ=environ)
        if value is None:
            continue
        current = result.get(section)
        if not isinstance(current, dict):
            current = {}
            result[section] = current
        if current.get(key) is not None:
            continue
        current[key] = parse_bool(value) if key in _BOOL_KEYS else value
    return result


def _resolve_path(path: Path) -> Path | None:
    """Resolve configuration paths relative to the current working directory."""

    if path is None:
        return None
    return path if path.is_absolute() else Path.cwd() / path


def _resolve_packaged_path(path: Path) -> Path | None:
    """Resolve paths embedded in packaged binaries (e.g., PyInstaller)."""

    base = getattr(sys, "_MEIPASS", None)
    if not base:
        return None
    return Path(base) / path


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML file into a dictionary."""

    content = path.read_text(encoding="utf-8")
    data = yaml.safe_load(content) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must define a mapping at the top level.")
    return data


def _read_packaged_yaml(package: str, name: str) -> dict[str, Any] | None:
    """Read YAML embedded in a Python package via importlib.resources."""

    try:
        content = resources.files(package).joinpath(name).read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    data = yaml.safe_load(content) or {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Packaged configuration {package}:{name} must define a mapping at the top level."
        )
    return data


def _merge_dicts(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge two dictionaries, with override values taking precedence."""

    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dicts(result[key], value)
        elif isinstance(value, dict):
            result[key] = _merge_dicts({}, value)
        else:
            result[key] = value
    return result
