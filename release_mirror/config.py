"""Configuration loading: defaults, optional YAML file, environment overrides."""

import logging
import os
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError

DEFAULT_CONFIG_PATH = "config/config.yaml"

# Environment variable -> config field
ENV_OVERRIDES = {
    "HOST": "host",
    "PORT": "port",
    "MIRROR_BASE": "mirror_base",
    "REPOS_FILE": "repos_file",
    "CACHE_FILE": "cache_file",
    "RETRY_BASE_DELAY": "retry_base_delay",
    "MAX_RETRY_ATTEMPTS": "max_retry_attempts",
    "RETRY_PAUSE": "retry_pause",
    "REQUEST_INTERVAL": "request_interval",
    "RETRY_REQUEST_INTERVAL": "retry_request_interval",
    "REQUEST_TIMEOUT": "request_timeout",
    "GITHUB_TOKEN": "github_token",
    "GITHUB_API_URL": "github_api_url",
    "LOG_LEVEL": "log_level",
}


class MirrorConfig(BaseModel):
    """Runtime settings for the mirror server and sync engine."""
    host: str = Field("0.0.0.0", description="Address the HTTP server binds to")
    port: int = Field(3100, ge=1, le=65535, description="HTTP listening port")
    mirror_base: str = Field(
        "https://gh.thfls.club/",
        description="Prefix prepended to original asset URLs when redirecting downloads",
    )
    repos_file: Path = Field(Path("repos.txt"), description="Newline-delimited owner/name list")
    cache_file: Path = Field(Path("repo_cache.json"), description="JSON cache file")
    retry_base_delay: float = Field(300, gt=0, description="Backoff base delay in seconds")
    max_retry_attempts: int = Field(5, ge=1, description="Failures before the daily pause")
    retry_pause: float = Field(86400, gt=0, description="Pause after exhausting retries, seconds")
    request_interval: float = Field(3.0, ge=0, description="Delay after each attempt, seconds")
    retry_request_interval: float = Field(
        10.0, ge=0, description="Delay after attempting a previously failed repository"
    )
    request_timeout: float = Field(30.0, gt=0, description="Per-request upstream timeout")
    full_sync_interval: float = Field(3600, gt=0, description="Full sync period, seconds")
    retry_sync_interval: float = Field(300, gt=0, description="Retry sync period, seconds")
    sync_on_startup: bool = True
    github_token: str | None = Field(None, description="Token raising the API rate limit")
    github_api_url: str = "https://api.github.com"
    log_level: str = "INFO"

    @field_validator("github_token")
    @classmethod
    def _blank_token_is_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {value!r}")
        return level


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping, got: {type(data).__name__}")
    return data


def load_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> MirrorConfig:
    """Build the config from an optional YAML file and the environment.

    A missing file at the default location is not an error; an explicitly
    named file must exist.
    """
    environ = os.environ if environ is None else environ
    values: dict = {}

    if config_path is not None:
        path = Path(config_path)
        if path.exists() or str(config_path) != DEFAULT_CONFIG_PATH:
            values.update(_read_yaml(path))

    for env_name, field_name in ENV_OVERRIDES.items():
        if env_name in environ:
            values[field_name] = environ[env_name]

    try:
        return MirrorConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
