#!/usr/bin/env python3
"""
SQLite time-series store for daily repository traffic.

One row per (year, month, day, owner, repo) holding clone and view counters.
Rows are created on first sight of a date and overwritten by later syncs,
since GitHub keeps re-reporting the trailing two weeks with refined totals.
"""

import logging
import sqlite3
from datetime import date
from typing import Iterable, List, Tuple

from .exceptions import StoreError
from .models import DailyCounter, MetricKind, TrafficRow
from .report import subtract_days

_COLUMNS = {
    MetricKind.CLONES: ("c_count", "c_uniq"),
    MetricKind.VIEWS: ("v_count", "v_uniq"),
}


class TrafficDatabase:
    """Handles all database operations for traffic statistics."""

    def __init__(self, db_path: str):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self.conn = None
        self.logger = logging.getLogger(__name__)

    def __enter__(self):
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.conn:
            self.conn.close()
            self.conn = None

    def setup_database(self):
        """Create the traffic table if it doesn't exist."""
        try:
            with self.conn:
                # See https://www.sqlite.org/lang_createtable.html
                self.conn.execute("""
                    CREATE TABLE IF NOT EXISTS traffic (
                        y INTEGER NOT NULL,
                        m INTEGER NOT NULL,
                        d INTEGER NOT NULL,

                        owner TEXT NOT NULL,
                        repo TEXT NOT NULL,

                        c_count INTEGER NOT NULL DEFAULT 0,
                        c_uniq INTEGER NOT NULL DEFAULT 0,

                        v_count INTEGER NOT NULL DEFAULT 0,
                        v_uniq INTEGER NOT NULL DEFAULT 0,

                        PRIMARY KEY (y, m, d, owner, repo)
                    )
                """)
            self.logger.info("Database setup complete.")
        except sqlite3.Error as e:
            self.logger.error(f"Database setup failed: {e}")
            raise StoreError(f"Database setup failed: {e}") from e

    def upsert(self, owner: str, repo: str, kind: MetricKind,
               counters: Iterable[DailyCounter]) -> int:
        """
        Merge daily counters of one metric kind into the store.

        For each day an all-zero row is inserted if missing, then the two
        columns of ``kind`` are overwritten. The other kind's columns are left
        alone. The whole batch runs in one transaction.

        Returns the number of days written.
        """
        count_col, uniq_col = _COLUMNS[kind]
        update_sql = (
            f"UPDATE traffic SET {count_col} = ?, {uniq_col} = ? "
            "WHERE y = ? AND m = ? AND d = ? AND owner = ? AND repo = ?"
        )

        written = 0
        try:
            with self.conn:
                for counter in counters:
                    day = counter.date
                    key = (day.year, day.month, day.day, owner, repo)
                    self.conn.execute(
                        "INSERT OR IGNORE INTO traffic (y, m, d, owner, repo) VALUES (?, ?, ?, ?, ?)",
                        key
                    )
                    cursor = self.conn.execute(update_sql, (counter.count, counter.uniques) + key)
                    if cursor.rowcount != 1:
                        raise StoreError(
                            f"expected one row for {owner}/{repo} on {day}, got {cursor.rowcount}"
                        )
                    written += 1
        except sqlite3.Error as e:
            self.logger.error(f"Failed to update {kind.value} for {owner}/{repo}: {e}")
            raise StoreError(f"Failed to update {kind.value} for {owner}/{repo}: {e}") from e

        self.logger.info(f"Updated {written} days of {kind.value} for {owner}/{repo}.")
        return written

    def list_resources(self) -> List[Tuple[str, str]]:
        """Get all (owner, repo) pairs found in the database."""
        cursor = self.conn.execute(
            "SELECT owner, repo FROM traffic GROUP BY owner, repo ORDER BY owner, repo"
        )
        return [(row["owner"], row["repo"]) for row in cursor.fetchall()]

    def resource_exists(self, owner: str, repo: str) -> bool:
        """Does the given repository have any rows?"""
        row = self.conn.execute(
            "SELECT 1 FROM traffic WHERE owner = ? AND repo = ? LIMIT 1",
            (owner, repo)
        ).fetchone()
        return row is not None

    def window(self, owner: str, repo: str, reference_date: date,
               day_count: int) -> List[TrafficRow]:
        """
        Get the stored rows of a repository between ``reference_date - day_count``
        and ``reference_date``, most recent first, at most ``day_count`` rows.

        Dates without a row are simply missing from the result.
        """
        start = subtract_days(reference_date, day_count)
        cursor = self.conn.execute(
            """
            SELECT DATE(printf('%04d-%02d-%02d', y, m, d)) AS day,
                   c_count, c_uniq, v_count, v_uniq
            FROM traffic
            WHERE owner = ? AND repo = ? AND day >= DATE(?) AND day <= DATE(?)
            ORDER BY day DESC
            LIMIT ?
            """,
            (owner, repo, start.isoformat(), reference_date.isoformat(), day_count)
        )
        return [
            TrafficRow(
                date=date.fromisoformat(row["day"]),
                owner=owner,
                repo=repo,
                clone_count=row["c_count"],
                clone_uniques=row["c_uniq"],
                view_count=row["v_count"],
                view_uniques=row["v_uniq"],
            )
            for row in cursor.fetchall()
        ]
