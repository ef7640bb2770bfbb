#!/usr/bin/env python3
"""
On-disk cache for raw GitHub API responses.

Every entry is a single JSON file under ``<root>/repos/<owner>/``. Files are
written to a temporary name in the cache root and renamed into place, so a
reader either sees a complete entry or none at all. Entries older than the
TTL are deleted on lookup.
"""

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Callable, Optional, Tuple

from .exceptions import CacheWriteError, ConfigError
from .models import MetricKind

# One hour, same as the GitHub traffic refresh cadence we care about
DEFAULT_TTL = 60 * 60

TEMP_PREFIX = ".tmp."

CacheKey = Tuple[str, str]

logger = logging.getLogger(__name__)


def page_key(owner: str, page: int) -> CacheKey:
    """Key of one page of an owner's repository list."""
    return owner, f"_REPOS_p{page}.json"


def metric_key(owner: str, repo: str, kind: MetricKind) -> CacheKey:
    """Key of the daily traffic of one repository."""
    return owner, f"{repo}_{kind.value}.json"


def _check_component(part: str) -> str:
    if not part or part in (".", "..") or "/" in part or os.sep in part:
        raise ConfigError(f"invalid cache key component: {part!r}")
    return part


class CacheStore:
    """File cache with TTL and atomic replace."""

    def __init__(self, root: str, ttl: float = DEFAULT_TTL,
                 clock: Callable[[], float] = time.time):
        """
        Initialize the cache store.

        Args:
            root: Cache root directory. Created on first write.
            ttl: Default maximum entry age in seconds.
            clock: Returns the current time as a UNIX timestamp.
        """
        self.root = Path(root)
        self.ttl = ttl
        self.clock = clock

    def path_for(self, key: CacheKey) -> Path:
        """Map a cache key to its file path."""
        owner, filename = key
        return self.root / "repos" / _check_component(owner) / _check_component(filename)

    def age(self, key: CacheKey) -> Optional[float]:
        """Seconds since the entry was written, or None if it does not exist."""
        try:
            mtime = self.path_for(key).stat().st_mtime
        except FileNotFoundError:
            return None
        return self.clock() - mtime

    def is_stale(self, key: CacheKey, ttl: Optional[float] = None) -> bool:
        """Whether an existing entry has outlived the TTL. Absent entries are not stale."""
        age = self.age(key)
        if age is None:
            return False
        return age >= (self.ttl if ttl is None else ttl)

    def invalidate(self, key: CacheKey) -> None:
        """Delete an entry if present."""
        path = self.path_for(key)
        try:
            path.unlink()
            logger.debug(f"Removed cache entry {path}")
        except FileNotFoundError:
            pass

    def get(self, key: CacheKey, ttl: Optional[float] = None) -> Optional[bytes]:
        """
        Return the payload stored under ``key``.

        Stale entries are deleted and reported as absent, forcing the caller
        to refetch.
        """
        path = self.path_for(key)
        if self.is_stale(key, ttl):
            logger.info(f"Cache entry {path} is stale, removing")
            self.invalidate(key)
            return None
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def put(self, key: CacheKey, payload: bytes) -> None:
        """
        Store ``payload`` under ``key``.

        The payload is written and fsynced under a random temporary name in
        the cache root, then renamed over the target. A failed rename raises
        CacheWriteError and leaves the temporary file behind.
        """
        path = self.path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=TEMP_PREFIX, suffix=path.suffix, dir=str(self.root)
            )
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise CacheWriteError(f"Failed to write cache entry {path}: {e}") from e

        try:
            os.replace(tmp_name, path)
        except OSError as e:
            raise CacheWriteError(
                f"Failed to move {tmp_name} to {path}: {e}"
            ) from e
        logger.debug(f"Cached {len(payload)} bytes at {path}")

    def cleanup_temp_files(self) -> int:
        """Remove temporary files left behind by interrupted writes."""
        if not self.root.is_dir():
            return 0
        removed = 0
        for tmp in self.root.glob(f"{TEMP_PREFIX}*"):
            try:
                tmp.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        if removed:
            logger.info(f"Removed {removed} leftover temporary cache files")
        return removed
