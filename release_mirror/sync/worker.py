"""Per-repository sync with exponential backoff."""

import asyncio
import logging
from dataclasses import asdict
from enum import Enum

from ..crawler.github_client import GitHubClient
from ..crawler.repo_list import split_identifier
from ..errors import UpstreamError, UpstreamNetworkError
from ..store.cache_store import CacheStore, EntryPatch, SyncMetadata, format_timestamp

logger = logging.getLogger(__name__)

DEFAULT_RETRY_BASE_DELAY = 5 * 60
DEFAULT_MAX_RETRY_ATTEMPTS = 5
DEFAULT_RETRY_PAUSE = 24 * 60 * 60


class SyncOutcome(str, Enum):
    """Result of handing one repository to the worker."""

    SKIPPED_INVALID = "skipped_invalid"
    IN_COOLDOWN = "in_cooldown"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def attempted(self) -> bool:
        return self in (SyncOutcome.SUCCEEDED, SyncOutcome.FAILED)


def next_retry_after_failure(
    attempts: int,
    now: float,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    max_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS,
    pause: float = DEFAULT_RETRY_PAUSE,
) -> float:
    """Timestamp before which a repository with *attempts* failures must wait.

    Grows as ``base_delay * 2**attempts`` until *max_attempts* is reached,
    after which the repository is checked once per *pause*.
    """
    if attempts >= max_attempts:
        return now + pause
    return now + base_delay * (2 ** attempts)


class SyncWorker:
    """Runs the retry state machine for one repository at a time.

    Upstream failures are recorded in the cache entry and never raised to
    the caller.
    """

    def __init__(
        self,
        store: CacheStore,
        client: GitHubClient,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        max_retry_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS,
        retry_pause: float = DEFAULT_RETRY_PAUSE,
    ):
        self.store = store
        self.client = client
        self.retry_base_delay = retry_base_delay
        self.max_retry_attempts = max_retry_attempts
        self.retry_pause = retry_pause

    def had_failed(self, repo: str) -> bool:
        """True if the repository's last attempt failed."""
        entry = self.store.get(repo)
        return entry is not None and entry.sync.attempts > 0

    async def sync_repository(self, repo: str, now: float) -> SyncOutcome:
        """Refresh one repository unless it is invalid or cooling down."""
        parts = split_identifier(repo)
        if parts is None:
            logger.debug("Skipping invalid repository identifier %r", repo)
            return SyncOutcome.SKIPPED_INVALID
        owner, name = parts

        entry = self.store.get(repo)
        sync = entry.sync if entry else SyncMetadata()
        if sync.in_cooldown(now):
            remaining = int((sync.next_retry - now) // 60) + 1
            logger.info("[%s] cooling down, %d min left", repo, remaining)
            return SyncOutcome.IN_COOLDOWN

        try:
            info = await asyncio.to_thread(self.client.fetch_repo_info, owner, name)
            release = await asyncio.to_thread(self.client.fetch_latest_release, owner, name)
        except UpstreamError as e:
            self._record_failure(repo, sync, now, e)
            return SyncOutcome.FAILED
        except Exception as e:
            logger.exception("[%s] unexpected error during sync", repo)
            self._record_failure(repo, sync, now, UpstreamNetworkError(repo, str(e)))
            return SyncOutcome.FAILED

        saved = self._write(repo, EntryPatch(
            version=release.tag,
            assets=[asdict(asset) for asset in release.assets],
            updated_at=format_timestamp(now),
            meta=asdict(info),
            sync=SyncMetadata(attempts=0, next_retry=0, last_success=now),
        ))
        if not saved:
            return SyncOutcome.FAILED
        logger.info("[%s] synced %s (%d assets)", repo, release.tag, len(release.assets))
        return SyncOutcome.SUCCEEDED

    def _record_failure(
        self, repo: str, sync: SyncMetadata, now: float, error: UpstreamError
    ) -> None:
        attempts = sync.attempts + 1
        next_retry = next_retry_after_failure(
            attempts,
            now,
            base_delay=self.retry_base_delay,
            max_attempts=self.max_retry_attempts,
            pause=self.retry_pause,
        )
        self._write(repo, EntryPatch(
            last_error=format_timestamp(now),
            last_error_reason=f"{error.kind}: {error.message}",
            sync=SyncMetadata(
                attempts=attempts,
                next_retry=next_retry,
                last_success=sync.last_success,
            ),
        ))

        logger.warning("[%s] sync failed (%s): %s", repo, error.kind, error.message)
        if attempts >= self.max_retry_attempts:
            logger.error(
                "[%s] reached %d failed attempts, pausing until %s",
                repo, attempts, format_timestamp(next_retry),
            )

    def _write(self, repo: str, patch: EntryPatch) -> bool:
        """Persist *patch*; a failed cache write is logged and reported as False."""
        try:
            self.store.upsert(repo, patch)
        except OSError as e:
            logger.error("[%s] could not write cache file: %s", repo, e)
            return False
        return True
