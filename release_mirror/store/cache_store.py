"""Durable repository cache backed by a single JSON file."""

import json
import logging
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..errors import CacheCorrupt

logger = logging.getLogger(__name__)

SYNC_META_KEY = "_syncMeta"

# Keys written by the earlier single-file script, migrated on load.
_LEGACY_KEYS = ("retryCount", "nextRetry")


def format_timestamp(ts: float) -> str:
    """Render epoch seconds as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def parse_timestamp(value: str | None) -> float | None:
    """Parse an ISO-8601 string back to epoch seconds, None if unparseable."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


@dataclass
class SyncMetadata:
    """Retry bookkeeping for one repository."""

    attempts: int = 0
    next_retry: float = 0
    last_success: float | None = None

    def in_cooldown(self, now: float) -> bool:
        return self.next_retry > now

    def to_dict(self) -> dict:
        return {
            "attempts": self.attempts,
            "nextRetry": self.next_retry,
            "lastSuccess": self.last_success,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SyncMetadata":
        return cls(
            attempts=int(data.get("attempts") or 0),
            next_retry=float(data.get("nextRetry") or 0),
            last_success=(
                float(data["lastSuccess"]) if data.get("lastSuccess") is not None else None
            ),
        )


@dataclass
class CacheEntry:
    """Last known sync outcome for one repository.

    Optional fields that are None are omitted from the JSON document unless
    they were stored as an explicit null (tracked in ``null_keys``). Keys
    this version does not know about are carried in ``extra``, so a
    load/save cycle leaves the file content unchanged.
    """

    version: str | None = None
    assets: list[dict] | None = None
    updated_at: str | None = None
    meta: dict | None = None
    last_error: str | None = None
    last_error_reason: str | None = None
    sync: SyncMetadata = field(default_factory=SyncMetadata)
    extra: dict = field(default_factory=dict)
    null_keys: frozenset = frozenset()

    def find_asset(self, filename: str) -> dict | None:
        """Return the asset named *filename*, if this entry lists it."""
        for asset in self.assets or []:
            if asset.get("name") == filename:
                return asset
        return None

    def to_dict(self) -> dict:
        payload: dict[str, Any] = dict(self.extra)
        for name in _OPTIONAL_FIELDS:
            value = getattr(self, name)
            if value is not None or name in self.null_keys:
                payload[name] = value
        payload[SYNC_META_KEY] = self.sync.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        """Decode one entry, raising ValueError if a known field has the wrong shape."""
        _check_shape(data)
        extra = {
            k: v for k, v in data.items()
            if k not in _OPTIONAL_FIELDS and k != SYNC_META_KEY
        }
        raw_sync = data.get(SYNC_META_KEY)
        if isinstance(raw_sync, dict):
            sync = SyncMetadata.from_dict(raw_sync)
        elif any(k in data for k in _LEGACY_KEYS):
            sync = _migrate_legacy(data)
            for key in _LEGACY_KEYS:
                extra.pop(key, None)
        else:
            sync = SyncMetadata()

        return cls(
            version=data.get("version"),
            assets=data.get("assets"),
            updated_at=data.get("updated_at"),
            meta=data.get("meta"),
            last_error=data.get("last_error"),
            last_error_reason=data.get("last_error_reason"),
            sync=sync,
            extra=extra,
            null_keys=frozenset(
                name for name in _OPTIONAL_FIELDS if name in data and data[name] is None
            ),
        )


_OPTIONAL_FIELDS = ("version", "assets", "updated_at", "meta", "last_error", "last_error_reason")
_STRING_FIELDS = ("version", "updated_at", "last_error", "last_error_reason")
_META_STRING_FIELDS = ("description", "language", "last_commit")


def _check_shape(data: dict) -> None:
    for name in _STRING_FIELDS:
        if data.get(name) is not None and not isinstance(data[name], str):
            raise ValueError(f"{name} must be a string")

    meta = data.get("meta")
    if meta is not None:
        if not isinstance(meta, dict):
            raise ValueError("meta must be an object")
        stars = meta.get("stars")
        if stars is not None and (isinstance(stars, bool) or not isinstance(stars, int)):
            raise ValueError("meta.stars must be an integer")
        for name in _META_STRING_FIELDS:
            if meta.get(name) is not None and not isinstance(meta[name], str):
                raise ValueError(f"meta.{name} must be a string")

    assets = data.get("assets")
    if assets is not None:
        if not isinstance(assets, list):
            raise ValueError("assets must be a list")
        for asset in assets:
            if not isinstance(asset, dict) or not isinstance(asset.get("name"), str):
                raise ValueError("each asset needs a string name")
            if asset.get("download_url") is not None and not isinstance(asset["download_url"], str):
                raise ValueError("asset download_url must be a string")


def _migrate_legacy(data: dict) -> SyncMetadata:
    """Build sync metadata from the old top-level retryCount/nextRetry keys."""
    next_retry_ms = data.get("nextRetry") or 0
    last_success = parse_timestamp(data.get("updated_at")) if data.get("version") else None
    return SyncMetadata(
        attempts=int(data.get("retryCount") or 0),
        next_retry=float(next_retry_ms) / 1000,
        last_success=last_success,
    )


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class EntryPatch:
    """Field-level update for a cache entry.

    Every field given a value replaces the stored one; fields left UNSET
    keep whatever the entry already holds. ``meta`` and ``sync`` are
    replaced as whole values.
    """

    version: Any = UNSET
    assets: Any = UNSET
    updated_at: Any = UNSET
    meta: Any = UNSET
    last_error: Any = UNSET
    last_error_reason: Any = UNSET
    sync: Any = UNSET


def apply_patch(entry: CacheEntry, patch: EntryPatch) -> CacheEntry:
    """Return a copy of *entry* with the set fields of *patch* applied."""
    changes = {
        f.name: getattr(patch, f.name)
        for f in fields(patch)
        if getattr(patch, f.name) is not UNSET
    }
    return replace(entry, **changes)


def encode_cache(entries: dict[str, CacheEntry]) -> dict:
    return {repo: entry.to_dict() for repo, entry in entries.items()}


def decode_cache(payload: Any) -> dict[str, CacheEntry]:
    """Decode a parsed cache document, raising CacheCorrupt on a bad shape."""
    if not isinstance(payload, dict):
        raise CacheCorrupt(f"expected a JSON object, got {type(payload).__name__}")

    entries: dict[str, CacheEntry] = {}
    for repo, data in payload.items():
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed cache entry for %s", repo)
            continue
        try:
            entries[repo] = CacheEntry.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring malformed cache entry for %s: %s", repo, e)
    return entries


def atomic_write_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp_path.replace(path)


class CacheStore:
    """In-memory repository cache mirrored to a JSON file.

    A single instance is shared by the sync worker (the only writer) and the
    HTTP surface (read-only). Every mutation is flushed to disk before it
    returns.
    """

    def __init__(self, path: Path | str = "repo_cache.json"):
        self.path = Path(path)
        self._entries: dict[str, CacheEntry] = {}

    def load(self) -> dict[str, CacheEntry]:
        """Load the cache file, falling back to an empty cache."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No cache file at %s, starting empty", self.path)
            self._entries = {}
            return {}
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cache file %s is unreadable, starting empty: %s", self.path, e)
            self._entries = {}
            return {}

        try:
            self._entries = decode_cache(json.loads(raw))
        except (json.JSONDecodeError, CacheCorrupt) as e:
            logger.warning("Cache file %s is corrupt, starting empty: %s", self.path, e)
            self._entries = {}
        else:
            logger.info("Loaded cache for %d repositories", len(self._entries))
        return dict(self._entries)

    def save(self) -> None:
        """Write the whole cache atomically."""
        atomic_write_json(self.path, encode_cache(self._entries))

    def get(self, repo: str) -> CacheEntry | None:
        return self._entries.get(repo)

    def upsert(self, repo: str, patch: EntryPatch) -> CacheEntry:
        """Merge *patch* into the entry for *repo*, creating it if needed, and save.

        The in-memory cache only changes once the file is written; an OSError
        from the write propagates and leaves both untouched.
        """
        entry = apply_patch(self._entries.get(repo) or CacheEntry(), patch)
        updated = {**self._entries, repo: entry}
        atomic_write_json(self.path, encode_cache(updated))
        self._entries = updated
        return entry

    def entries(self) -> dict[str, CacheEntry]:
        """Snapshot of all entries."""
        return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, repo: object) -> bool:
        return repo in self._entries
