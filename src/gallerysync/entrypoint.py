"""Request/response entry point (functions-runtime style `handler(event, context)`)."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Mapping
from typing import Any

from gallerysync.config import Config, load_config, parse_bool
from gallerysync.core import SyncOptions, run_sync
from gallerysync.errors import SyncAbortedError
from gallerysync.logging import LOGGER_NAME, configure_logging

_JSON_HEADERS = {"content-type": "application/json"}


def _request_params(event: Mapping[str, Any]) -> dict[str, Any]:
    """Merge query-string parameters over a JSON body (only read for JSON requests)."""

    headers = {str(k).lower(): str(v) for k, v in (event.get("headers") or {}).items()}
    body: dict[str, Any] = {}
    raw_body = event.get("body")
    if raw_body and "json" in headers.get("content-type", "").lower():
        parsed = json.loads(raw_body)
        if isinstance(parsed, dict):
            body = parsed
    query = event.get("queryStringParameters") or {}
    return {**body, **{k: v for k, v in query.items() if v is not None}}


def _as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _as_bool(value: Any) -> bool | None:
    return None if value is None else parse_bool(value)


def _with_destination(config: Config, params: Mapping[str, Any]) -> Config:
    updates = {
        key: params[param]
        for param, key in (("wpBaseUrl", "base_url"), ("wpUser", "username"))
        if params.get(param)
    }
    if not updates:
        return config
    destination = config.model.destination.model_copy(update=updates)
    model = config.model.model_copy(update={"destination": destination})
    return Config(model=model, raw=config.raw, loaded_from=config.loaded_from)


def _response(status: int, payload: Mapping[str, Any]) -> dict[str, Any]:
    return {"statusCode": status, "headers": dict(_JSON_HEADERS), "body": json.dumps(payload)}


def handler(event: Mapping[str, Any] | None, context: Any = None) -> dict[str, Any]:
    """Run one sync for an HTTP-style event and wrap the outcome in a JSON envelope."""

    logger = logging.getLogger(LOGGER_NAME)
    try:
        config = load_config()
        logger = configure_logging(level=config.logging.level, write_file=False)
        params = _request_params(event or {})
        config = _with_destination(config, params)
        options = SyncOptions.from_config(
            config,
            folder_id=params.get("folderId"),
            page_id=_as_int(params.get("pageId")),
            order=params.get("order"),
            dry_run=_as_bool(params.get("dryRun")),
            clear_content=_as_bool(params.get("clearContent")),
            refresh_cache=_as_bool(params.get("refreshCache")),
            max_size=_as_int(params.get("maxSize")),
            upload_limit=_as_int(params.get("uploadLimit")),
        )
        result = asyncio.run(
            run_sync(
                config,
                options,
                logger=logger,
                app_password=params.get("wpPass") or os.environ.get("WP_APP_PASSWORD"),
                service_account_json=os.environ.get("GOOGLE_SERVICE_ACCOUNT_JSON"),
            )
        )
    except SyncAbortedError as exc:
        logger.error("Sync aborted: %s", exc)
        return _response(500, {"ok": False, "error": str(exc), "partial": exc.result.to_dict()})
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Sync failed")
        return _response(500, {"ok": False, "error": str(exc)})

    return _response(200, {"ok": True, "result": result.to_dict()})
