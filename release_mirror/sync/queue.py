"""Priority ordering of repositories for a sync pass."""

from ..store.cache_store import CacheEntry, CacheStore

# Seconds-equivalent weights: a never-synced repository ranks like one that
# has been stale for a day, and an expired cooldown adds two days.
NEVER_SYNCED_PRIORITY = 24 * 60 * 60
RETRY_BONUS = 48 * 60 * 60


def compute_priority(entry: CacheEntry | None, now: float) -> float:
    """Score a repository; higher scores are processed first."""
    if entry is None:
        return NEVER_SYNCED_PRIORITY

    sync = entry.sync
    if sync.last_success is None:
        priority = NEVER_SYNCED_PRIORITY
    else:
        priority = now - sync.last_success

    if 0 < sync.next_retry <= now:
        priority += RETRY_BONUS
    return priority


def build_queue(repos: list[str], store: CacheStore, now: float) -> list[str]:
    """Order *repos* by descending priority, keeping list order on ties.

    Nothing is filtered out here: repositories still cooling down stay in
    the queue and are skipped by the worker when dequeued.
    """
    return sorted(
        repos,
        key=lambda repo: compute_priority(store.get(repo), now),
        reverse=True,
    )
