#!/usr/bin/env python3
"""
Command-line interface for gh-traffic-stats.
"""

import argparse
import logging
import os
import sys
from datetime import date, datetime, timezone
from typing import Optional

from .app import run_sync
from .chart import render_repository_charts
from .config import Settings, load_settings
from .db import TrafficDatabase
from .exceptions import ConfigError, TrafficStatsError
from .report import build_window


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="gh-traffic-stats",
        description="Generate project traffic statistics charts from the GitHub API"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Be verbose")
    parser.add_argument("-c", "--config", default=None, help="TOML config file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("fetch", help="Fetch traffic statistics from GitHub to a local database")
    subparsers.add_parser("list-repos", help="List repositories found in local database")

    stats_parser = subparsers.add_parser("stats", help="Generate statistics for repo from local database")
    stats_parser.add_argument("repo", help="Repository name, or owner/name")
    stats_parser.add_argument("-d", "--days", type=int, default=None, help="Days (default: 30)")

    generate_parser = subparsers.add_parser("generate", help="Generate all statistics from local database")
    generate_parser.add_argument("-d", "--days", type=int, default=None, help="Days (default: 30)")

    return parser


def _open_existing_database(settings: Settings) -> TrafficDatabase:
    if not os.path.exists(settings.database_path):
        raise ConfigError(f"missing database file {settings.database_path}")
    return TrafficDatabase(settings.database_path)


def _generate(db: TrafficDatabase, settings: Settings, owner: str, repo: str,
              reference_date: date, days: int) -> None:
    if not db.resource_exists(owner, repo):
        raise TrafficStatsError(f"repo named {owner}/{repo} doesn't exist in local database")
    window = build_window(db, owner, repo, reference_date, days)
    render_repository_charts(window, settings.stats_dir, settings.cache_dir)


def _list_repos(settings: Settings) -> None:
    with _open_existing_database(settings) as db:
        rows = [
            (owner, repo, f"https://github.com/{owner}/{repo}")
            for owner, repo in db.list_resources()
        ]

    if not rows:
        return
    widths = [max(len(row[i]) for row in rows) for i in range(3)]
    for owner, repo, url in rows:
        print(f"{owner:<{widths[0]}} {repo:>{widths[1]}} {url:<{widths[2]}}".rstrip())


def run_command(args: argparse.Namespace, settings: Settings, reference_date: date) -> int:
    if args.command == "fetch":
        success, message = run_sync(settings)
        if not success:
            print(f"error: {message}", file=sys.stderr)
            return 1
        print(message)
        return 0

    if args.command == "list-repos":
        _list_repos(settings)
        return 0

    days = args.days if args.days is not None else settings.days

    if args.command == "stats":
        owner, _, repo = args.repo.rpartition("/")
        owner = owner or settings.github_user
        if not owner:
            raise ConfigError("no GitHub user in config; pass the repository as owner/name")
        with _open_existing_database(settings) as db:
            _generate(db, settings, owner, repo, reference_date, days)
        return 0

    if args.command == "generate":
        with _open_existing_database(settings) as db:
            for owner, repo in db.list_resources():
                _generate(db, settings, owner, repo, reference_date, days)
        return 0

    return 1


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    # Fixed once so a run crossing midnight keeps the same date range
    reference_date = datetime.now(timezone.utc).date()

    try:
        settings = load_settings(args.config)
        return run_command(args, settings, reference_date)
    except TrafficStatsError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
