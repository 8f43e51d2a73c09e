"""Upload retry policy built on tenacity."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from gallerysync.cache import IdentityCache
from gallerysync.clients.base import DestinationHost
from gallerysync.errors import AuthenticationError, RemoteError, TransferError, TransientRemoteError
from gallerysync.models import MediaIdentity

DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_SECONDS: tuple[float, ...] = (2.0, 5.0, 10.0)


class FixedScheduleWait(wait_base):
    """Wait `delays[n - 1]` after the n-th failed attempt, repeating the last delay."""

    def __init__(self, delays: Sequence[float]) -> None:
        self.delays = tuple(float(delay) for delay in delays) or (0.0,)

    def __call__(self, retry_state: RetryCallState) -> float:
        index = max(0, retry_state.attempt_number - 1)
        return self.delays[min(index, len(self.delays) - 1)]


@dataclass(frozen=True, slots=True)
class TransferMetadata:
    caption: str = ""
    alt_text: str = ""


@dataclass(slots=True)
class TransferPolicy:
    """Upload one file with bounded retries and register the result in the identity cache."""

    host: DestinationHost
    cache: IdentityCache
    logger: logging.Logger
    retries: int = DEFAULT_RETRIES
    backoff_seconds: Sequence[float] = DEFAULT_BACKOFF_SECONDS
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    async def transfer(
        self, data: bytes, filename: str, metadata: TransferMetadata | None = None
    ) -> MediaIdentity:
        """Upload, register, then apply secondary metadata."""

        metadata = metadata or TransferMetadata()
        identity = await self.upload(data, filename, metadata)
        await self.apply_metadata(identity, metadata)
        return identity

    async def upload(
        self, data: bytes, filename: str, metadata: TransferMetadata | None = None
    ) -> MediaIdentity:
        """Create the object with bounded retries and register it in the cache."""

        metadata = metadata or TransferMetadata()
        total_attempts = max(0, self.retries) + 1
        retrying = AsyncRetrying(
            stop=stop_after_attempt(total_attempts),
            wait=FixedScheduleWait(self.backoff_seconds),
            retry=retry_if_exception_type(TransientRemoteError),
            sleep=self.sleep,
            before_sleep=self._log_retry(filename, total_attempts),
            reraise=False,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    created = await self.host.create_object(data, filename, caption=metadata.caption)
        except RetryError as exc:
            last = exc.last_attempt
            error = last.exception() if last else None
            attempts = last.attempt_number if last else total_attempts
            size_mb = len(data) / (1024 * 1024)
            raise TransferError(
                f"Upload of {filename!r} ({size_mb:.2f}MB) failed after {attempts} attempt(s): "
                f"{error or exc}"
            ) from error

        identity = created.identity
        self.cache.put(filename, identity)
        self.logger.info("Uploaded %r as media %s", filename, identity.id)
        return identity

    async def apply_metadata(self, identity: MediaIdentity, metadata: TransferMetadata) -> None:
        """Best-effort alt text update; only authentication failures propagate."""

        if metadata.alt_text:
            try:
                await self.host.update_object_metadata(identity.id, {"alt_text": metadata.alt_text})
            except AuthenticationError:
                raise
            except RemoteError as exc:
                self.logger.warning("Alt text update for media %s failed: %s", identity.id, exc)

    def _log_retry(self, filename: str, total_attempts: int) -> Callable[[RetryCallState], None]:
        def _before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            status = getattr(error, "status", None) or "network error"
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            self.logger.warning(
                "Upload failed for %r (%s), retrying in %ss (attempt %s/%s)",
                filename,
                status,
                delay,
                retry_state.attempt_number,
                total_attempts,
            )

        return _before_sleep
