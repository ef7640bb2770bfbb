#!/usr/bin/env python3
"""
SVG charts of repository traffic.

Renders the dense series of a TrafficWindow as a point chart with one series
per metric index (count, unique) and writes it with a temp-file-and-rename.
"""

import logging
import math
import os
import tempfile
from html import escape
from pathlib import Path
from typing import Dict, List

from .cache import TEMP_PREFIX
from .exceptions import RenderError
from .models import MetricKind
from .report import LABELS, SeriesPoint, TrafficWindow, series_totals, subtract_days

logger = logging.getLogger(__name__)

# First entries of the Palette99 color cycle
COLORS = ["#e6194b", "#3cb44b", "#ffe119", "#4363d8"]

WIDTH = 640
HEIGHT = 480
MARGIN_LEFT = 70
MARGIN_RIGHT = 25
MARGIN_TOP = 55
MARGIN_BOTTOM = 90

MAX_X_LABELS = 15
Y_LABELS = 10


def format_count(value: float) -> str:
    """Human readable axis label: exact below 10000, then 12.3k / 4.5M."""
    if value < 10000:
        return str(int(value))
    for threshold, suffix in ((1_000_000_000, "G"), (1_000_000, "M"), (1000, "k")):
        if value >= threshold:
            return f"{value / threshold:.1f}{suffix}"
    return str(int(value))


def axis_max(series: List[SeriesPoint]) -> int:
    """Largest value rounded up to the next ten, at least ten."""
    max_y = max((v for point in series for v in point.values.values()), default=0)
    # Minimum 10, so that the zeroes don't go over the title
    max_y = max(max_y, 10)
    return (max_y + 9) // 10 * 10


class ChartRenderer:
    """Draws one metric kind of a repository as an SVG chart."""

    def __init__(self, title: str, labels: Dict[int, str], days: int):
        """
        Args:
            title: Chart caption
            labels: Legend name per metric index
            days: Number of days on the x axis
        """
        self.title = title
        self.labels = labels
        self.days = days

    def _x(self, offset: int) -> float:
        plot_width = WIDTH - MARGIN_LEFT - MARGIN_RIGHT
        span = max(self.days - 1, 1)
        return MARGIN_LEFT + plot_width * offset / span

    def _y(self, value: float, max_y: int) -> float:
        plot_height = HEIGHT - MARGIN_TOP - MARGIN_BOTTOM
        return HEIGHT - MARGIN_BOTTOM - plot_height * value / max_y

    def _mesh(self, series: List[SeriesPoint], max_y: int) -> List[str]:
        parts = []
        bottom = HEIGHT - MARGIN_BOTTOM
        right = WIDTH - MARGIN_RIGHT

        for i in range(Y_LABELS + 1):
            value = max_y * i / Y_LABELS
            y = self._y(value, max_y)
            parts.append(
                f'<line x1="{MARGIN_LEFT}" y1="{y:.1f}" x2="{right}" y2="{y:.1f}" stroke="#ddd"/>'
            )
            parts.append(
                f'<text x="{MARGIN_LEFT - 6}" y="{y + 4:.1f}" text-anchor="end">{format_count(value)}</text>'
            )

        step = max(1, math.ceil(self.days / MAX_X_LABELS))
        for point in series[::step]:
            x = self._x(point.offset)
            parts.append(
                f'<line x1="{x:.1f}" y1="{MARGIN_TOP}" x2="{x:.1f}" y2="{bottom}" stroke="#eee"/>'
            )
            parts.append(
                f'<text transform="translate({x:.1f},{bottom + 12}) rotate(45)" font-size="10">'
                f'{point.date.isoformat()}</text>'
            )

        parts.append(
            f'<rect x="{MARGIN_LEFT}" y="{MARGIN_TOP}" width="{right - MARGIN_LEFT}" '
            f'height="{bottom - MARGIN_TOP}" fill="none" stroke="#000"/>'
        )
        return parts

    def render(self, series: List[SeriesPoint]) -> str:
        """Return the SVG document for ``series``."""
        max_y = axis_max(series)
        totals = series_totals(series)
        parts = self._mesh(series, max_y)

        legend_y = MARGIN_TOP + 20
        for index in sorted(self.labels):
            color = COLORS[index % len(COLORS)]
            points = [(self._x(p.offset), self._y(p.values.get(index, 0), max_y)) for p in series]
            coords = " ".join(f"{x:.1f},{y:.1f}" for x, y in points)
            parts.append(f'<polyline points="{coords}" fill="none" stroke="{color}" stroke-opacity=".5"/>')
            for (x, y), point in zip(points, series):
                parts.append(f'<circle cx="{x:.1f}" cy="{y:.1f}" r="4" fill="{color}"/>')
                parts.append(
                    f'<text x="{x - 5:.1f}" y="{y - 8:.1f}" font-size="10">{point.values.get(index, 0)}</text>'
                )

            label = escape(f"{self.labels[index]} ({totals.get(index, 0)})")
            legend_x = WIDTH - MARGIN_RIGHT - 150
            parts.append(f'<rect x="{legend_x}" y="{legend_y - 9}" width="10" height="10" fill="{color}"/>')
            parts.append(f'<text x="{legend_x + 16}" y="{legend_y}" font-size="14">{label}</text>')
            legend_y += 20

        if series:
            newest, oldest = series[0].date, subtract_days(series[0].date, self.days)
            x_desc = f"Dates {newest.isoformat()} - {oldest.isoformat()}"
        else:
            x_desc = "Dates"

        body = "\n        ".join(parts)
        svg = f'''<svg xmlns="http://www.w3.org/2000/svg" width="{WIDTH}" height="{HEIGHT}">
        <rect width="{WIDTH}" height="{HEIGHT}" fill="#fff"/>
        <g font-family="DejaVu Sans,Verdana,Geneva,sans-serif" font-size="11" fill="#000">
        <text x="{WIDTH / 2}" y="32" text-anchor="middle" font-size="22">{escape(self.title)}</text>
        {body}
        <text x="{WIDTH / 2}" y="{HEIGHT - 8}" text-anchor="middle" font-size="12">{x_desc}</text>
        <text transform="translate(16,{HEIGHT / 2}) rotate(-90)" text-anchor="middle" font-size="12">Count</text>
        </g>
        </svg>'''
        return svg


def _write_atomic(content: str, target: Path, temp_dir: Path, prefix: str) -> None:
    temp_dir.mkdir(parents=True, exist_ok=True)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=prefix, suffix=target.suffix, dir=str(temp_dir))
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_name, target)


def render_repository_charts(window: TrafficWindow, out_dir: str, temp_dir: str) -> List[Path]:
    """
    Write ``<repo>_<kind>.svg`` into ``out_dir`` for both metric kinds.

    Each chart is rendered to a temporary file in ``temp_dir`` first and
    renamed into place.
    """
    written = []
    for kind in MetricKind:
        title = f"GitHub {kind.value} for {window.repo}"
        renderer = ChartRenderer(title, LABELS, window.day_count)
        target = Path(out_dir) / f"{window.repo}_{kind.value}.svg"
        try:
            svg = renderer.render(window.series[kind])
            _write_atomic(svg, target, Path(temp_dir), f"{TEMP_PREFIX}{kind.value}_{window.repo}_")
        except OSError as e:
            raise RenderError(f"error generating {kind.value} SVG for repo {window.repo}: {e}") from e

        logger.info(f"Generated {kind.value} statistics SVG for repo {window.repo} as {target}")
        written.append(target)
    return written
