"""GitHub API client for repository metadata and latest releases."""

import logging

import requests
from github import (
    Auth,
    Github,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

from ..errors import (
    UpstreamError,
    UpstreamNetworkError,
    UpstreamNotFound,
    UpstreamRateLimited,
)
from .models import AssetInfo, ReleaseInfo, RepoMetadata

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_USER_AGENT = "release-mirror"


def translate_error(repo: str, exc: Exception) -> UpstreamError:
    """Map a PyGithub or transport exception onto the upstream error taxonomy."""
    if isinstance(exc, UnknownObjectException):
        return UpstreamNotFound(repo, "repository or release not found")
    if isinstance(exc, RateLimitExceededException):
        return UpstreamRateLimited(repo, "rate limit exceeded")
    if isinstance(exc, GithubException):
        message = str(exc)
        if exc.status == 404:
            return UpstreamNotFound(repo, message)
        if exc.status == 429 or (exc.status == 403 and "rate limit" in message.lower()):
            return UpstreamRateLimited(repo, message)
        return UpstreamNetworkError(repo, f"HTTP {exc.status}: {message}")
    if isinstance(exc, requests.exceptions.Timeout):
        return UpstreamNetworkError(repo, "request timed out")
    return UpstreamNetworkError(repo, str(exc) or type(exc).__name__)


class GitHubClient:
    """Stateless client for the two read-only calls the sync worker needs.

    Retries are disabled on the underlying PyGithub requester: retry policy
    belongs to the sync worker. Every request carries a timeout.
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        auth = Auth.Token(token) if token else None
        self.gh = Github(
            auth=auth,
            base_url=base_url,
            timeout=timeout,
            user_agent=user_agent,
            retry=None,
        )

    def fetch_repo_info(self, owner: str, name: str) -> RepoMetadata:
        """Fetch stars, description, language and last push time."""
        full_name = f"{owner}/{name}"
        try:
            repo = self.gh.get_repo(full_name)
            return RepoMetadata(
                stars=repo.stargazers_count,
                description=repo.description,
                language=repo.language,
                last_commit=repo.pushed_at.isoformat() if repo.pushed_at else None,
            )
        except (GithubException, requests.exceptions.RequestException) as e:
            raise translate_error(full_name, e) from e

    def fetch_latest_release(self, owner: str, name: str) -> ReleaseInfo:
        """Fetch the latest published release and its assets."""
        full_name = f"{owner}/{name}"
        try:
            release = self.gh.get_repo(full_name, lazy=True).get_latest_release()
            assets = [
                AssetInfo(name=asset.name, download_url=asset.browser_download_url)
                for asset in release.get_assets()
            ]
        except (GithubException, requests.exceptions.RequestException) as e:
            raise translate_error(full_name, e) from e

        return ReleaseInfo(tag=release.tag_name, assets=_unique_by_name(assets))


def _unique_by_name(assets: list[AssetInfo]) -> list[AssetInfo]:
    """Drop assets whose name was already seen, keeping upstream order."""
    seen: set[str] = set()
    unique = []
    for asset in assets:
        if asset.name in seen:
            logger.debug("Duplicate asset name %s dropped", asset.name)
            continue
        seen.add(asset.name)
        unique.append(asset)
    return unique
