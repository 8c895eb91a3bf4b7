"""Tests for the CacheStore."""

import json

import pytest

from release_mirror.store import cache_store
from release_mirror.store.cache_store import (
    CacheEntry,
    CacheStore,
    EntryPatch,
    SyncMetadata,
    apply_patch,
)


def test_missing_file_loads_empty(store):
    assert store.load() == {}
    assert len(store) == 0


def test_corrupt_file_loads_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json")
    store = CacheStore(path)
    assert store.load() == {}


def test_non_object_file_loads_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("[1, 2, 3]")
    assert CacheStore(path).load() == {}


def test_malformed_entry_is_dropped(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({"a/b": "oops", "c/d": {"version": "1.0"}}))
    entries = CacheStore(path).load()
    assert list(entries) == ["c/d"]


def test_upsert_creates_entry_and_saves(store):
    entry = store.upsert("a/b", EntryPatch(version="1.0", assets=[]))

    assert entry.version == "1.0"
    assert "a/b" in store
    on_disk = json.loads(store.path.read_text())
    assert on_disk["a/b"]["version"] == "1.0"
    assert on_disk["a/b"]["_syncMeta"] == {"attempts": 0, "nextRetry": 0, "lastSuccess": None}


def test_upsert_preserves_unset_fields(store):
    store.upsert("a/b", EntryPatch(
        version="1.0",
        assets=[{"name": "x.zip", "download_url": "https://example.com/x.zip"}],
        meta={"stars": 5},
    ))
    store.upsert("a/b", EntryPatch(
        last_error="2024-01-01T00:00:00+00:00",
        sync=SyncMetadata(attempts=1, next_retry=100.0),
    ))

    entry = store.get("a/b")
    assert entry.version == "1.0"
    assert entry.meta == {"stars": 5}
    assert entry.assets[0]["name"] == "x.zip"
    assert entry.last_error == "2024-01-01T00:00:00+00:00"
    assert entry.sync.attempts == 1


def test_apply_patch_does_not_mutate_original():
    original = CacheEntry(version="1.0")
    patched = apply_patch(original, EntryPatch(version="2.0"))
    assert original.version == "1.0"
    assert patched.version == "2.0"


def test_save_load_round_trip(tmp_path):
    payload = {
        "a/b": {
            "version": "v1.2.3",
            "assets": [{"name": "x.zip", "download_url": "https://example.com/x.zip"}],
            "updated_at": "2024-05-01T10:00:00+00:00",
            "meta": {"stars": 42, "description": None, "language": "Rust", "last_commit": "2024-04-30T00:00:00+00:00"},
            "last_error": "2024-04-01T00:00:00+00:00",
            "custom_field": {"kept": True},
            "_syncMeta": {"attempts": 0, "nextRetry": 0.0, "lastSuccess": 1714557600.0},
        },
        "c/d": {
            "last_error": "2024-05-01T10:00:00+00:00",
            "last_error_reason": "not_found: c/d: no release",
            "_syncMeta": {"attempts": 2, "nextRetry": 1714560000.0, "lastSuccess": None},
        },
    }
    path = tmp_path / "cache.json"
    path.write_text(json.dumps(payload))

    store = CacheStore(path)
    store.load()
    store.save()

    assert json.loads(path.read_text()) == payload


def test_save_leaves_no_temp_file(store):
    store.upsert("a/b", EntryPatch(version="1.0"))
    assert [p.name for p in store.path.parent.iterdir()] == ["repo_cache.json"]


def test_legacy_entry_is_migrated(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({
        "a/b": {
            "version": "1.0",
            "updated_at": "2024-05-01T10:00:00.000Z",
            "retryCount": 2,
            "nextRetry": 1714560000000,
        }
    }))

    entry = CacheStore(path).load()["a/b"]

    assert entry.sync.attempts == 2
    assert entry.sync.next_retry == 1714560000.0
    assert entry.sync.last_success == 1714557600.0
    assert "retryCount" not in entry.to_dict()


def test_find_asset():
    entry = CacheEntry(assets=[{"name": "a.zip", "download_url": "u"}])
    assert entry.find_asset("a.zip") == {"name": "a.zip", "download_url": "u"}
    assert entry.find_asset("b.zip") is None
    assert CacheEntry().find_asset("a.zip") is None


def test_undecodable_file_loads_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_bytes(b'{"a/b": {"version": "\xff\xfe"}}')
    store = CacheStore(path)
    assert store.load() == {}
    assert len(store) == 0


def test_unreadable_path_loads_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.mkdir()
    assert CacheStore(path).load() == {}


def test_explicit_nulls_survive_round_trip(tmp_path):
    payload = {
        "a/b": {
            "version": None,
            "assets": None,
            "meta": None,
            "last_error": "2024-05-01T10:00:00+00:00",
            "last_error_reason": None,
            "_syncMeta": {"attempts": 1, "nextRetry": 1714560000.0, "lastSuccess": None},
        },
    }
    path = tmp_path / "cache.json"
    path.write_text(json.dumps(payload))

    store = CacheStore(path)
    store.load()
    store.save()

    assert json.loads(path.read_text()) == payload


def test_entries_with_wrong_shapes_are_dropped(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({
        "meta/string": {"version": "1.0", "meta": "oops"},
        "meta/stars": {"version": "1.0", "meta": {"stars": "many"}},
        "meta/bool": {"version": "1.0", "meta": {"stars": True}},
        "meta/desc": {"version": "1.0", "meta": {"description": ["x"]}},
        "assets/string": {"version": "1.0", "assets": "x.zip"},
        "assets/item": {"version": "1.0", "assets": ["x.zip"]},
        "assets/name": {"version": "1.0", "assets": [{"name": 5, "download_url": "u"}]},
        "assets/url": {"version": "1.0", "assets": [{"name": "x.zip", "download_url": 5}]},
        "version/number": {"version": 2},
        "good/one": {
            "version": "1.0",
            "meta": {"stars": 3, "description": None},
            "assets": [{"name": "x.zip", "download_url": "https://example.com/x.zip"}],
        },
    }))

    assert list(CacheStore(path).load()) == ["good/one"]


def test_failed_write_leaves_memory_untouched(store, monkeypatch):
    store.upsert("a/b", EntryPatch(version="1.0"))

    def broken_write(path, payload):
        raise OSError("disk full")

    monkeypatch.setattr(cache_store, "atomic_write_json", broken_write)

    with pytest.raises(OSError):
        store.upsert("a/b", EntryPatch(version="2.0"))
    with pytest.raises(OSError):
        store.upsert("c/d", EntryPatch(version="0.1"))

    assert store.get("a/b").version == "1.0"
    assert "c/d" not in store
    assert json.loads(store.path.read_text())["a/b"]["version"] == "1.0"
