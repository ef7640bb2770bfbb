"""
GitHub Repository Traffic Statistics

Fetches clone and view counters from the GitHub traffic API, keeps them in a
local SQLite database and renders SVG charts of trailing windows.
"""

__version__ = "1.0.0"

from .app import TrafficIngestor, run_sync
from .cache import CacheStore
from .db import TrafficDatabase
from .github import ClientConfig, GitHubFetcher
from .models import DailyCounter, MetricKind, Repository, TrafficRow

__all__ = [
    "CacheStore",
    "ClientConfig",
    "DailyCounter",
    "GitHubFetcher",
    "MetricKind",
    "Repository",
    "TrafficDatabase",
    "TrafficIngestor",
    "TrafficRow",
    "run_sync",
]
