"""Shared data models for upstream results."""

from dataclasses import dataclass, field


@dataclass
class RepoMetadata:
    """Repository metadata."""
    stars: int | None = None
    description: str | None = None
    language: str | None = None
    last_commit: str | None = None


@dataclass
class AssetInfo:
    """A downloadable file attached to a release."""
    name: str
    download_url: str


@dataclass
class ReleaseInfo:
    """Latest release of a repository."""
    tag: str
    assets: list[AssetInfo] = field(default_factory=list)
