"""Shared test fixtures."""

import pytest

from release_mirror.config import MirrorConfig
from release_mirror.crawler.models import AssetInfo, ReleaseInfo, RepoMetadata
from release_mirror.crawler.repo_list import RepositoryList
from release_mirror.errors import UpstreamNotFound
from release_mirror.store.cache_store import CacheStore

NOW = 1_700_000_000.0


class FakeGitHubClient:
    """Stands in for GitHubClient; records calls and replays canned results."""

    def __init__(self):
        self.releases: dict[str, ReleaseInfo] = {}
        self.infos: dict[str, RepoMetadata] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []

    def fetch_repo_info(self, owner, name):
        repo = f"{owner}/{name}"
        self.calls.append(repo)
        if repo in self.errors:
            raise self.errors[repo]
        return self.infos.get(repo, RepoMetadata(stars=10, description="A tool", language="Go"))

    def fetch_latest_release(self, owner, name):
        repo = f"{owner}/{name}"
        if repo not in self.releases:
            raise UpstreamNotFound(repo, "no release")
        return self.releases[repo]


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sample_release():
    """A release with two assets."""
    return ReleaseInfo(
        tag="2.0.0",
        assets=[
            AssetInfo(name="tool-linux.tar.gz", download_url="https://github.com/a/b/releases/download/2.0.0/tool-linux.tar.gz"),
            AssetInfo(name="tool-windows.zip", download_url="https://github.com/a/b/releases/download/2.0.0/tool-windows.zip"),
        ],
    )


@pytest.fixture
def fake_client(sample_release):
    client = FakeGitHubClient()
    client.releases["a/b"] = sample_release
    return client


@pytest.fixture
def store(tmp_path):
    """An empty store writing to a temporary file."""
    return CacheStore(tmp_path / "repo_cache.json")


@pytest.fixture
def repos_file(tmp_path):
    path = tmp_path / "repos.txt"
    path.write_text("# tracked\na/b\n\nc/d\n")
    return path


@pytest.fixture
def repo_list(repos_file):
    return RepositoryList(repos_file)


@pytest.fixture
def config(tmp_path, repos_file):
    return MirrorConfig(
        repos_file=repos_file,
        cache_file=tmp_path / "repo_cache.json",
        mirror_base="https://mirror.example/",
        max_retry_attempts=3,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
