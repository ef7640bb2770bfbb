#!/usr/bin/env python3
"""
Dense reporting windows built from the traffic store.

The store only holds days GitHub reported; charts want one point per day.
This module walks the window backward from the reference date and fills the
gaps with zeroes.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List

from .exceptions import DateRangeError
from .models import MetricKind, TrafficRow

# Metric indexes understood by the chart renderer
COUNT = 0
UNIQUE = 1

LABELS = {COUNT: "Count", UNIQUE: "Unique"}


def subtract_days(reference: date, days: int) -> date:
    """Return ``reference - days``, raising DateRangeError instead of overflowing."""
    if days < 0:
        raise DateRangeError(f"negative day count: {days}")
    try:
        return reference - timedelta(days=days)
    except OverflowError as e:
        raise DateRangeError(f"cannot go {days} days back from {reference}") from e


@dataclass(frozen=True)
class SeriesPoint:
    """One day of a dense series. ``offset`` 0 is the reference date."""
    offset: int
    date: date
    values: Dict[int, int]


def build_series(rows: Iterable[TrafficRow], reference_date: date, day_count: int,
                 kind: MetricKind) -> List[SeriesPoint]:
    """Build a gap-free series of ``day_count`` days for one metric kind."""
    by_date = {row.date: row for row in rows}

    series = []
    for offset in range(day_count):
        day = subtract_days(reference_date, offset)
        row = by_date.get(day)
        count, uniques = row.counters(kind) if row else (0, 0)
        series.append(SeriesPoint(offset, day, {COUNT: count, UNIQUE: uniques}))
    return series


def series_totals(series: Iterable[SeriesPoint]) -> Dict[int, int]:
    """Sum each metric index over the series."""
    totals = {COUNT: 0, UNIQUE: 0}
    for point in series:
        for index, value in point.values.items():
            totals[index] = totals.get(index, 0) + value
    return totals


@dataclass
class TrafficWindow:
    """Dense clone and view series of one repository."""
    owner: str
    repo: str
    reference_date: date
    day_count: int
    series: Dict[MetricKind, List[SeriesPoint]] = field(default_factory=dict)

    @property
    def start_date(self) -> date:
        return subtract_days(self.reference_date, self.day_count)


def build_window(db, owner: str, repo: str, reference_date: date,
                 day_count: int) -> TrafficWindow:
    """Query the store and build dense series for both metric kinds."""
    if day_count < 1:
        raise DateRangeError(f"window must cover at least one day, got {day_count}")

    rows = db.window(owner, repo, reference_date, day_count)
    window = TrafficWindow(owner, repo, reference_date, day_count)
    for kind in MetricKind:
        window.series[kind] = build_series(rows, reference_date, day_count, kind)
    return window
