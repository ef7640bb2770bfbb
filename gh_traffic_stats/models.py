#!/usr/bin/env python3
"""
Data models for GitHub repository traffic statistics.

Contains the core data classes used throughout the application.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Tuple

from .exceptions import DecodeError


class MetricKind(Enum):
    """The two traffic facets GitHub reports per repository."""
    CLONES = "clones"
    VIEWS = "views"

    def __str__(self) -> str:
        return self.value


def _parse_day(raw: Any) -> date:
    """Parse a GitHub day timestamp such as '2023-03-26T00:00:00Z'."""
    if not isinstance(raw, str):
        raise DecodeError(f"timestamp is not a string: {raw!r}")
    try:
        return datetime.strptime(raw, "%Y-%m-%dT%H:%M:%SZ").date()
    except ValueError as e:
        raise DecodeError(f"invalid timestamp {raw!r}: {e}") from e


def _parse_counter(entry: Dict[str, Any], field: str) -> int:
    value = entry.get(field)
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DecodeError(f"invalid {field} value: {value!r}")
    return value


@dataclass(frozen=True)
class Repository:
    """A repository descriptor from the GitHub repository list."""
    owner: str
    name: str
    full_name: str

    def __str__(self) -> str:
        return self.full_name

    @property
    def html_url(self) -> str:
        return f"https://github.com/{self.full_name}"

    @classmethod
    def from_github_entry(cls, entry: Dict[str, Any]) -> 'Repository':
        """Create a Repository from a GitHub API repository object."""
        if not isinstance(entry, dict):
            raise DecodeError(f"repository entry is not an object: {entry!r}")
        owner = entry.get("owner")
        name = entry.get("name")
        if not isinstance(owner, dict) or not isinstance(owner.get("login"), str):
            raise DecodeError(f"repository entry without owner login: {name!r}")
        if not isinstance(name, str) or not name:
            raise DecodeError("repository entry without a name")
        login = owner["login"]
        full_name = entry.get("full_name") or f"{login}/{name}"
        return cls(owner=login, name=name, full_name=full_name)


@dataclass(frozen=True)
class DailyCounter:
    """One day of traffic with total count and unique visitors/cloners."""
    date: date
    count: int
    uniques: int

    def __str__(self) -> str:
        return f"{self.count} {self.date.isoformat()} {self.uniques}"

    @classmethod
    def from_github_entry(cls, entry: Dict[str, Any]) -> 'DailyCounter':
        """Create a DailyCounter from a GitHub traffic API entry."""
        if not isinstance(entry, dict):
            raise DecodeError(f"traffic entry is not an object: {entry!r}")
        return cls(
            _parse_day(entry.get("timestamp")),
            _parse_counter(entry, "count"),
            _parse_counter(entry, "uniques"),
        )


@dataclass(frozen=True)
class TrafficRow:
    """A stored day of traffic for one repository, both metric kinds."""
    date: date
    owner: str
    repo: str
    clone_count: int = 0
    clone_uniques: int = 0
    view_count: int = 0
    view_uniques: int = 0

    def counters(self, kind: MetricKind) -> Tuple[int, int]:
        """Return the (count, uniques) pair belonging to ``kind``."""
        if kind is MetricKind.CLONES:
            return self.clone_count, self.clone_uniques
        return self.view_count, self.view_uniques
