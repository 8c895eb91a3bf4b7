"""Tracked repository list read from a plain text file."""

import logging
from pathlib import Path

from ..errors import ConfigError

logger = logging.getLogger(__name__)


def parse_repositories(text: str) -> list[str]:
    """Parse ``owner/name`` lines, skipping blanks, comments and duplicates."""
    repos: list[str] = []
    seen: set[str] = set()
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line in seen:
            continue
        seen.add(line)
        repos.append(line)
    return repos


def split_identifier(repo: str) -> tuple[str, str] | None:
    """Split ``owner/name`` into its parts, or None if either part is missing."""
    owner, _, name = repo.partition("/")
    if not owner or not name or "/" in name:
        return None
    return owner, name


class RepositoryList:
    """Reads the tracked repositories from a newline-delimited file.

    The file is re-read on every call so edits take effect on the next
    sync pass without a restart.
    """

    def __init__(self, path: Path | str = "repos.txt"):
        self.path = Path(path)

    def list(self) -> list[str]:
        """Return tracked repositories in file order."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Cannot read repository list {self.path}: {e}") from e
        return parse_repositories(text)
