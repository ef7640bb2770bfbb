#!/usr/bin/env python3
"""
GitHub Repository Traffic Statistics Tracker

Fetches daily clone and view counters from the GitHub traffic API and merges
them into a local SQLite time-series store.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .cache import CacheStore
from .config import Settings
from .db import TrafficDatabase
from .exceptions import IngestError, TrafficStatsError
from .github import GitHubFetcher
from .models import MetricKind, Repository

logger = logging.getLogger(__name__)


@dataclass
class IngestSummary:
    """What a sync run touched."""
    owner: str
    repositories: List[str] = field(default_factory=list)
    days_written: Dict[MetricKind, int] = field(
        default_factory=lambda: {kind: 0 for kind in MetricKind}
    )

    def __str__(self) -> str:
        return (
            f"{len(self.repositories)} repositories for {self.owner}, "
            f"{self.days_written[MetricKind.CLONES]} clone days, "
            f"{self.days_written[MetricKind.VIEWS]} view days"
        )


class TrafficIngestor:
    """Pulls traffic for every repository of an owner into the database."""

    def __init__(self, fetcher: GitHubFetcher, db_manager: TrafficDatabase):
        """
        Initialize the ingestor.

        Args:
            fetcher: GitHub fetcher (cache-aware, rate limited)
            db_manager: Open TrafficDatabase
        """
        self.fetcher = fetcher
        self.db_manager = db_manager
        self.logger = logging.getLogger(__name__)

    def _update_repository(self, repo: Repository, summary: IngestSummary) -> None:
        """
        Update clones and views of a single repository.

        Both metric kinds are attempted even if the first one fails; the first
        failure is raised once both attempts are done.
        """
        failures: List[IngestError] = []

        for kind in MetricKind:
            try:
                counters = self.fetcher.daily_counters(repo.owner, repo.name, kind)
                if not counters:
                    self.logger.info(f"No {kind.value} reported for {repo}")
                    continue
                self.logger.info(f"Updating {kind.value} for {repo}...")
                written = self.db_manager.upsert(repo.owner, repo.name, kind, counters)
                summary.days_written[kind] += written
            except TrafficStatsError as e:
                self.logger.error(f"error traffic {kind.value} for {repo}: {e}")
                failures.append(IngestError(repo.owner, repo.name, kind.value, e))

        if failures:
            raise failures[0] from failures[0].cause

    def update_all_repositories(self, owner: str) -> IngestSummary:
        """Update traffic data for every repository ``owner`` has access to."""
        summary = IngestSummary(owner)

        self.logger.info(f"Fetching repository list for https://github.com/{owner} ..")
        try:
            repos = self.fetcher.list_resources(owner)
        except TrafficStatsError as e:
            raise IngestError(owner, "", "repositories", e) from e

        if not repos:
            self.logger.info("No repositories found")
            return summary

        for repo in repos:
            self.logger.info(f"Repo {repo.html_url} :")
            self._update_repository(repo, summary)
            summary.repositories.append(repo.full_name)

        self.logger.info(f"Finished updating {summary}")
        return summary


def run_sync(settings: Settings) -> Tuple[bool, str]:
    """Runs the GitHub traffic synchronization."""
    try:
        settings.require_credentials()

        cache = CacheStore(settings.cache_dir, ttl=settings.cache_ttl)
        cache.cleanup_temp_files()

        with TrafficDatabase(settings.database_path) as db_manager, \
                GitHubFetcher(settings.client_config(), cache) as fetcher:
            db_manager.setup_database()
            summary = TrafficIngestor(fetcher, db_manager).update_all_repositories(
                settings.github_user
            )
        logger.info(f"Database file {settings.database_path} updated.")
        return True, f"Sync successful: {summary}"
    except TrafficStatsError as e:
        logger.error(f"Sync failed: {e}")
        return False, str(e)
