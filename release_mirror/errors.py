"""Exception types shared across the mirror."""


class MirrorError(Exception):
    """Base class for all mirror errors."""


class ConfigError(MirrorError):
    """Configuration could not be read or is invalid."""


class CacheCorrupt(MirrorError):
    """The cache file exists but cannot be decoded."""


class UpstreamError(MirrorError):
    """A call to the upstream API failed."""

    kind = "upstream_error"

    def __init__(self, repo: str, message: str):
        super().__init__(f"{repo}: {message}")
        self.repo = repo
        self.message = message


class UpstreamNotFound(UpstreamError):
    """The repository or its latest release does not exist."""

    kind = "not_found"


class UpstreamRateLimited(UpstreamError):
    """The upstream signalled throttling."""

    kind = "rate_limited"


class UpstreamNetworkError(UpstreamError):
    """Transport failure, timeout or unexpected upstream response."""

    kind = "network_error"
