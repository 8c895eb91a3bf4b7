"""Upstream access: tracked repository list and GitHub client."""

from .models import AssetInfo, ReleaseInfo, RepoMetadata
from .github_client import GitHubClient
from .repo_list import RepositoryList

__all__ = ["AssetInfo", "ReleaseInfo", "RepoMetadata", "GitHubClient", "RepositoryList"]
