"""Tests for the per-repository retry state machine."""

import pytest

from release_mirror.errors import UpstreamNetworkError, UpstreamRateLimited
from release_mirror.store import cache_store
from release_mirror.store.cache_store import EntryPatch, SyncMetadata
from release_mirror.sync.worker import SyncOutcome, SyncWorker, next_retry_after_failure

NOW = 1_700_000_000.0
BASE = 300
DAY = 86400


@pytest.fixture
def worker(store, fake_client):
    return SyncWorker(store, fake_client, retry_base_delay=BASE, max_retry_attempts=3, retry_pause=DAY)


def test_backoff_doubles_until_ceiling():
    delays = [next_retry_after_failure(k, NOW, BASE, 5, DAY) - NOW for k in range(1, 5)]
    assert delays == [BASE * 2, BASE * 4, BASE * 8, BASE * 16]
    assert next_retry_after_failure(5, NOW, BASE, 5, DAY) == NOW + DAY
    assert next_retry_after_failure(9, NOW, BASE, 5, DAY) == NOW + DAY


@pytest.mark.asyncio
async def test_first_sync_success(worker, store):
    outcome = await worker.sync_repository("a/b", NOW)

    assert outcome is SyncOutcome.SUCCEEDED
    entry = store.get("a/b")
    assert entry.version == "2.0.0"
    assert len(entry.assets) == 2
    assert entry.assets[0] == {
        "name": "tool-linux.tar.gz",
        "download_url": "https://github.com/a/b/releases/download/2.0.0/tool-linux.tar.gz",
    }
    assert entry.meta["stars"] == 10
    assert entry.sync == SyncMetadata(attempts=0, next_retry=0, last_success=NOW)
    assert entry.updated_at.startswith("2023-11-14T22:13:20")


@pytest.mark.asyncio
async def test_consecutive_failures_back_off_then_pause(worker, store, fake_client):
    fake_client.errors["c/d"] = UpstreamNetworkError("c/d", "connection reset")

    now = NOW
    await worker.sync_repository("c/d", now)
    assert store.get("c/d").sync.next_retry == now + BASE * 2

    now = store.get("c/d").sync.next_retry
    await worker.sync_repository("c/d", now)
    assert store.get("c/d").sync.next_retry == now + BASE * 4

    now = store.get("c/d").sync.next_retry
    outcome = await worker.sync_repository("c/d", now)

    entry = store.get("c/d")
    assert outcome is SyncOutcome.FAILED
    assert entry.sync.attempts == 3
    assert entry.sync.next_retry == now + DAY
    assert entry.last_error_reason == "network_error: connection reset"


@pytest.mark.asyncio
async def test_paused_repository_keeps_count_and_pause(worker, store, fake_client):
    fake_client.errors["c/d"] = UpstreamRateLimited("c/d", "rate limit exceeded")
    store.upsert("c/d", EntryPatch(sync=SyncMetadata(attempts=3, next_retry=NOW - 1)))

    await worker.sync_repository("c/d", NOW)

    sync = store.get("c/d").sync
    assert sync.attempts == 4
    assert sync.next_retry == NOW + DAY


@pytest.mark.asyncio
async def test_cooldown_skips_without_calls(worker, store, fake_client):
    store.upsert("a/b", EntryPatch(
        version="1.0", sync=SyncMetadata(attempts=1, next_retry=NOW + 60),
    ))
    before = store.get("a/b")

    outcome = await worker.sync_repository("a/b", NOW)

    assert outcome is SyncOutcome.IN_COOLDOWN
    assert fake_client.calls == []
    assert store.get("a/b") == before


@pytest.mark.asyncio
async def test_success_resets_prior_failures(worker, store):
    store.upsert("a/b", EntryPatch(
        last_error="2023-11-01T00:00:00+00:00",
        sync=SyncMetadata(attempts=7, next_retry=NOW - 1),
    ))

    await worker.sync_repository("a/b", NOW)

    entry = store.get("a/b")
    assert entry.sync.attempts == 0
    assert entry.sync.next_retry == 0
    assert entry.last_error == "2023-11-01T00:00:00+00:00"


@pytest.mark.asyncio
async def test_failure_keeps_previous_release_data(worker, store, fake_client):
    await worker.sync_repository("a/b", NOW)
    fake_client.errors["a/b"] = UpstreamNetworkError("a/b", "timeout")

    await worker.sync_repository("a/b", NOW + 3600)

    entry = store.get("a/b")
    assert entry.version == "2.0.0"
    assert len(entry.assets) == 2
    assert entry.sync.attempts == 1
    assert entry.sync.last_success == NOW


@pytest.mark.asyncio
async def test_missing_release_counts_as_failure(worker, store):
    outcome = await worker.sync_repository("no/release", NOW)

    assert outcome is SyncOutcome.FAILED
    assert store.get("no/release").last_error_reason.startswith("not_found")


@pytest.mark.asyncio
async def test_unexpected_exception_is_recorded(worker, store, fake_client):
    fake_client.errors["a/b"] = RuntimeError("boom")

    outcome = await worker.sync_repository("a/b", NOW)

    assert outcome is SyncOutcome.FAILED
    assert store.get("a/b").sync.attempts == 1


@pytest.mark.asyncio
async def test_invalid_identifier_is_skipped(worker, store, fake_client):
    outcome = await worker.sync_repository("not-a-repo", NOW)

    assert outcome is SyncOutcome.SKIPPED_INVALID
    assert len(store) == 0
    assert fake_client.calls == []


def test_had_failed(worker, store):
    assert not worker.had_failed("a/b")
    store.upsert("a/b", EntryPatch(sync=SyncMetadata(attempts=1)))
    assert worker.had_failed("a/b")


@pytest.mark.asyncio
async def test_cache_write_error_is_reported_as_failure(worker, store, fake_client, monkeypatch):
    def broken_write(path, payload):
        raise OSError("read-only file system")

    monkeypatch.setattr(cache_store, "atomic_write_json", broken_write)

    assert await worker.sync_repository("a/b", NOW) is SyncOutcome.FAILED
    fake_client.errors["a/b"] = UpstreamNetworkError("a/b", "down")
    assert await worker.sync_repository("a/b", NOW) is SyncOutcome.FAILED
    assert "a/b" not in store
