#!/usr/bin/env python3
"""
Exception hierarchy for gh-traffic-stats.
"""


class TrafficStatsError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(TrafficStatsError):
    """Configuration is missing or invalid."""


class FetchError(TrafficStatsError):
    """A request to the GitHub API failed or returned an unusable response."""


class DecodeError(TrafficStatsError):
    """A payload could not be decoded into the expected shape."""


class CacheWriteError(TrafficStatsError):
    """A cache entry could not be placed atomically."""


class StoreError(TrafficStatsError):
    """The traffic database rejected a write."""


class DateRangeError(TrafficStatsError):
    """Calendar arithmetic went out of range."""


class IngestError(TrafficStatsError):
    """Ingestion of a repository failed."""

    def __init__(self, owner: str, repo: str, kind: str, cause: Exception):
        self.owner = owner
        self.repo = repo
        self.kind = kind
        self.cause = cause
        target = f"{owner}/{repo}" if repo else owner
        super().__init__(f"{kind} for {target}: {cause}")


class RenderError(TrafficStatsError):
    """A chart could not be written."""
