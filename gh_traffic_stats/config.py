#!/usr/bin/env python3
"""
Configuration loading.

Values come from built-in defaults, then an optional TOML config file, then
environment variables.
"""

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .cache import DEFAULT_TTL
from .exceptions import ConfigError
from .github import DEFAULT_RATE_LIMIT_DELAY, DEFAULT_TIMEOUT, ClientConfig


@dataclass
class Settings:
    """Runtime settings for a single invocation."""
    github_token: str = ""
    github_user: str = ""
    database_path: str = "github_stats.db"
    cache_dir: str = "cache"
    stats_dir: str = "stats"
    cache_ttl: float = DEFAULT_TTL
    rate_limit_delay: float = DEFAULT_RATE_LIMIT_DELAY
    request_timeout: float = DEFAULT_TIMEOUT
    days: int = 30

    def require_credentials(self) -> None:
        """Raise ConfigError unless both the GitHub user and token are set."""
        if not self.github_user:
            raise ConfigError("no GitHub user configured (GITHUB_USERNAME or [github] user)")
        if not self.github_token:
            raise ConfigError("no GitHub API key configured (GITHUB_TOKEN or [github] apikey)")

    def client_config(self) -> ClientConfig:
        return ClientConfig(
            token=self.github_token,
            timeout=self.request_timeout,
            rate_limit_delay=self.rate_limit_delay,
        )


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"config key [{name}] must be a table")
    return section


def _apply_file(settings: Settings, path: Path) -> None:
    if not path.exists():
        raise ConfigError(f"couldn't find config file {path}")
    if path.is_dir():
        raise ConfigError(f"config must be a file: {path}")

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"config file error: {e}") from e

    github = _section(data, "github")
    database = _section(data, "database")
    cache = _section(data, "cache")
    stats = _section(data, "stats")

    settings.github_token = github.get("apikey", settings.github_token)
    settings.github_user = github.get("user", settings.github_user)
    settings.database_path = database.get("filename", settings.database_path)
    settings.cache_dir = cache.get("directory", settings.cache_dir)
    settings.stats_dir = stats.get("directory", settings.stats_dir)

    try:
        settings.cache_ttl = float(cache.get("ttl", settings.cache_ttl))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid [cache] ttl: {e}") from e


def _apply_env(settings: Settings, environ) -> None:
    settings.github_token = environ.get("GITHUB_TOKEN") or settings.github_token
    settings.github_user = environ.get("GITHUB_USERNAME") or settings.github_user
    settings.database_path = environ.get("DATABASE_PATH") or settings.database_path
    settings.cache_dir = environ.get("CACHE_DIR") or settings.cache_dir
    settings.stats_dir = environ.get("STATS_DIR") or settings.stats_dir


def load_settings(config_path: Optional[str] = None, environ=None) -> Settings:
    """Load settings from an optional TOML file and the environment."""
    settings = Settings()
    if config_path:
        _apply_file(settings, Path(config_path))
    _apply_env(settings, os.environ if environ is None else environ)
    return settings
