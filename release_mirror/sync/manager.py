"""Sync pass runner for the release mirror.

Runs the priority queue through the worker strictly sequentially, with a
courtesy delay between upstream calls, and owns the triggers that start a
pass: once on startup, at the top of every hour, and every few minutes so
that repositories whose cooldown elapsed are not left waiting an hour.
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from ..crawler.repo_list import RepositoryList
from ..errors import ConfigError
from ..store.cache_store import CacheStore
from .queue import build_queue
from .worker import SyncOutcome, SyncWorker

logger = logging.getLogger(__name__)


class SyncTrigger(str, Enum):
    """What started a sync pass."""

    STARTUP = "startup"
    HOURLY = "hourly"
    RETRY = "retry"
    MANUAL = "manual"


def seconds_until_next_tick(now: float, interval: float) -> float:
    """Seconds from *now* to the next multiple of *interval* since the epoch."""
    remainder = now % interval
    return interval - remainder if remainder else interval


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SyncRun:
    """Represents a single sync pass."""

    run_id: str
    trigger: str = ""
    status: str = "idle"  # idle | running | completed | failed
    started_at: str | None = None
    completed_at: str | None = None
    total: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    current: str | None = None
    error: str | None = None
    log: deque = field(default_factory=lambda: deque(maxlen=200))

    def to_dict(self) -> dict:
        """Convert the run state to a plain dictionary."""
        return {
            "run_id": self.run_id,
            "trigger": self.trigger,
            "status": self.status,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "current": self.current,
            "error": self.error,
            "log": list(self.log),
        }


class SyncManager:
    """Schedules and executes sync passes, one at a time.

    Usage::

        manager = SyncManager(repo_list, store, worker)
        await manager.start()          # startup pass + periodic triggers
        manager.request_pass()         # manual trigger, False if busy
        status = manager.get_status()
        await manager.stop()
    """

    def __init__(
        self,
        repo_list: RepositoryList,
        store: CacheStore,
        worker: SyncWorker,
        request_interval: float = 3.0,
        retry_request_interval: float = 10.0,
        full_sync_interval: float = 60 * 60,
        retry_sync_interval: float = 5 * 60,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.repo_list = repo_list
        self.store = store
        self.worker = worker
        self.request_interval = request_interval
        self.retry_request_interval = retry_request_interval
        self.full_sync_interval = full_sync_interval
        self.retry_sync_interval = retry_sync_interval
        self._clock = clock
        self._sleep = sleep
        self.run: SyncRun = SyncRun(run_id="none")
        self._in_flight = False
        self._tasks: set[asyncio.Task] = set()

    def is_running(self) -> bool:
        """Return True while a pass is executing."""
        return self._in_flight

    def get_status(self) -> dict:
        """Return the current (or last) pass state as a plain dict."""
        return self.run.to_dict()

    async def run_pass(self, trigger: SyncTrigger = SyncTrigger.MANUAL) -> SyncRun | None:
        """Run one full pass, or return None if another pass is in flight."""
        if self._in_flight:
            logger.info("Sync pass already running, skipping %s trigger", trigger.value)
            return None

        self._in_flight = True
        return await self._run_claimed(trigger)

    def request_pass(self, trigger: SyncTrigger = SyncTrigger.MANUAL) -> bool:
        """Start a pass in the background. Returns False if one is running.

        The in-flight flag is claimed before the task is scheduled, so a
        second request arriving before the task first runs is refused.
        """
        if self._in_flight:
            return False
        self._in_flight = True
        self._spawn(self._run_claimed(trigger), name=f"sync-{trigger.value}")
        return True

    async def _run_claimed(self, trigger: SyncTrigger) -> SyncRun:
        self.run = SyncRun(
            run_id=uuid.uuid4().hex[:12],
            trigger=trigger.value,
            status="running",
            started_at=_utcnow(),
        )
        try:
            await self._process()
        except ConfigError as e:
            self._finish("failed", error=str(e))
            logger.error("Sync pass aborted: %s", e)
        except Exception as e:
            self._finish("failed", error=str(e))
            logger.exception("Sync pass crashed")
        else:
            self._finish("completed")
        finally:
            self._in_flight = False
        return self.run

    async def start(self, sync_on_startup: bool = True) -> None:
        """Kick off the startup pass and the periodic triggers."""
        if sync_on_startup:
            self._spawn(self.run_pass(SyncTrigger.STARTUP), name="sync-startup")
        self._spawn(
            self._periodic(self.full_sync_interval, SyncTrigger.HOURLY),
            name="sync-hourly",
        )
        self._spawn(
            self._periodic(self.retry_sync_interval, SyncTrigger.RETRY),
            name="sync-retry",
        )
        logger.info(
            "Sync triggers started (full every %ss, retry every %ss)",
            self.full_sync_interval, self.retry_sync_interval,
        )

    async def stop(self) -> None:
        """Cancel all triggers and any pass in progress."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._in_flight = False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _periodic(self, interval: float, trigger: SyncTrigger) -> None:
        while True:
            await self._sleep(seconds_until_next_tick(self._clock(), interval))
            await self.run_pass(trigger)

    def _log(self, message: str) -> None:
        """Append a timestamped message to the run log."""
        timestamp = datetime.now(timezone.utc).strftime("%H:%M:%S")
        self.run.log.append(f"[{timestamp}] {message}")

    def _finish(self, status: str, error: str | None = None) -> None:
        self.run.status = status
        self.run.error = error
        self.run.current = None
        self.run.completed_at = _utcnow()
        self._log(f"Pass {status}" + (f": {error}" if error else ""))

    async def _process(self) -> None:
        repos = self.repo_list.list()
        queue = build_queue(repos, self.store, self._clock())
        self.run.total = len(queue)
        self._log(f"Pass started ({self.run.trigger}), {len(queue)} repositories queued")
        logger.info("Sync pass %s (%s): %d repositories", self.run.run_id, self.run.trigger, len(queue))

        for repo in queue:
            self.run.current = repo
            was_failing = self.worker.had_failed(repo)
            outcome = await self.worker.sync_repository(repo, self._clock())
            self.run.processed += 1

            if outcome is SyncOutcome.SUCCEEDED:
                self.run.succeeded += 1
            elif outcome is SyncOutcome.FAILED:
                self.run.failed += 1
                self._log(f"{repo}: failed")
            else:
                self.run.skipped += 1

            if outcome.attempted:
                delay = self.retry_request_interval if was_failing else self.request_interval
                await self._sleep(delay)

        logger.info(
            "Sync pass %s done: %d succeeded, %d failed, %d skipped",
            self.run.run_id, self.run.succeeded, self.run.failed, self.run.skipped,
        )
