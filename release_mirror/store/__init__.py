"""Durable cache of repository sync results."""

from .cache_store import CacheEntry, CacheStore, EntryPatch, SyncMetadata

__all__ = ["CacheEntry", "CacheStore", "EntryPatch", "SyncMetadata"]
