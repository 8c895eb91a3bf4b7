"""Sync engine: priority queue, retry worker and pass scheduling."""

from .manager import SyncManager, SyncRun, SyncTrigger
from .queue import build_queue, compute_priority
from .worker import SyncOutcome, SyncWorker

__all__ = [
    "SyncManager",
    "SyncRun",
    "SyncTrigger",
    "SyncOutcome",
    "SyncWorker",
    "build_queue",
    "compute_priority",
]
