"""Chart payloads, metric cards, and table formatting for the session view."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from .constants import (
    CURSOR_LINE_COLOR,
    DRAFT_FILL_COLOR,
    DRAFT_LINE_COLOR,
    EMPTY_VALUE_TEXT,
    MS_PER_SECOND,
    PALETTE,
    PHASE_FILL_COLOR,
)
from .phases import Phase
from .series import PointSeries
from .signals import smooth, value_at


@dataclass(frozen=True)
class MetricMeta:
    """Optional display decoration for one metric."""

    metric: str
    display_name: str | None = None
    unit: str | None = None
    category: str | None = None
    color: str | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> MetricMeta:
        def _text(key: str) -> str | None:
            value = record.get(key)
            if value is None or (isinstance(value, float) and np.isnan(value)):
                return None
            cleaned = str(value).strip()
            return cleaned or None

        return cls(
            metric=str(record["metric"]),
            display_name=_text("display_name"),
            unit=_text("unit"),
            category=_text("category"),
            color=_text("color"),
        )


@dataclass(frozen=True)
class MetricCard:
    metric: str
    label: str
    color: str
    active: bool
    value: float | None


@dataclass(frozen=True)
class LineSeries:
    """One chart line: x in seconds, y raw or smoothed."""

    metric: str
    name: str
    color: str
    x: np.ndarray
    y: np.ndarray


def metadata_map(records: Iterable[Mapping[str, Any]]) -> dict[str, MetricMeta]:
    out: dict[str, MetricMeta] = {}
    for record in records:
        if record.get("metric") is None:
            continue
        meta = MetricMeta.from_record(record)
        out[meta.metric] = meta
    return out


def metric_label(metric: str, meta: MetricMeta | None = None) -> str:
    """``Display name [unit]``; falls back to the raw metric name."""
    if meta is None:
        return metric
    base = meta.display_name or metric
    return f"{base} [{meta.unit}]" if meta.unit else base


def assign_colors(metrics: Sequence[str], meta_map: Mapping[str, MetricMeta]) -> dict[str, str]:
    """Metadata colour when present, else cycle the palette by position."""
    colors: dict[str, str] = {}
    for idx, metric in enumerate(metrics):
        meta = meta_map.get(metric)
        colors[metric] = (meta.color if meta and meta.color else None) or PALETTE[idx % len(PALETTE)]
    return colors


def build_cards(
    tray: Sequence[str],
    selected: Iterable[str],
    series_map: Mapping[str, PointSeries],
    meta_map: Mapping[str, MetricMeta],
    cursor_ms: float,
) -> list[MetricCard]:
    """Cards in tray order; dimmed (unselected) cards carry no value."""
    active_set = set(selected)
    colors = assign_colors(tray, meta_map)
    cards: list[MetricCard] = []
    for metric in tray:
        active = metric in active_set
        series = series_map.get(metric)
        value = value_at(series, cursor_ms) if active and series is not None else None
        cards.append(
            MetricCard(
                metric=metric,
                label=metric_label(metric, meta_map.get(metric)),
                color=colors[metric],
                active=active,
                value=value,
            )
        )
    return cards


def build_chart_lines(
    series_map: Mapping[str, PointSeries],
    selected: Sequence[str],
    meta_map: Mapping[str, MetricMeta],
    *,
    smooth_on: bool = False,
    smoothing_radius: int = 0,
) -> list[LineSeries]:
    colors = assign_colors(selected, meta_map)
    lines: list[LineSeries] = []
    for metric in selected:
        series = series_map.get(metric)
        if series is None:
            continue
        y = smooth(series.values, smoothing_radius) if smooth_on else series.values.copy()
        lines.append(
            LineSeries(
                metric=metric,
                name=metric_label(metric, meta_map.get(metric)),
                color=colors[metric],
                x=series.seconds(),
                y=y,
            )
        )
    return lines


def overlay_shapes(
    phases: Sequence[Phase],
    cursor_ms: float,
    *,
    draft: tuple[float, float] | None = None,
    editing: bool = False,
) -> list[dict[str, Any]]:
    """Phase bands, the cursor line, and the draft band (while editing)."""
    shapes: list[dict[str, Any]] = [
        {
            "type": "rect",
            "xref": "x",
            "yref": "paper",
            "x0": phase.start_ms / MS_PER_SECOND,
            "x1": phase.end_ms / MS_PER_SECOND,
            "y0": 0,
            "y1": 1,
            "fillcolor": PHASE_FILL_COLOR,
            "line": {"width": 0},
        }
        for phase in phases
    ]

    cursor_x = cursor_ms / MS_PER_SECOND
    shapes.append(
        {
            "type": "line",
            "xref": "x",
            "yref": "paper",
            "x0": cursor_x,
            "x1": cursor_x,
            "y0": 0,
            "y1": 1,
            "line": {"color": CURSOR_LINE_COLOR, "width": 2, "dash": "dash"},
        }
    )

    if editing and draft is not None:
        x0, x1 = draft
        shapes.append(
            {
                "type": "rect",
                "xref": "x",
                "yref": "paper",
                "x0": min(x0, x1),
                "x1": max(x0, x1),
                "y0": 0,
                "y1": 1,
                "fillcolor": DRAFT_FILL_COLOR,
                "line": {"color": DRAFT_LINE_COLOR, "width": 1, "dash": "dot"},
            }
        )
    return shapes


def phase_annotations(phases: Sequence[Phase]) -> list[dict[str, Any]]:
    return [
        {
            "x": phase.midpoint_s,
            "y": 1.04,
            "xref": "x",
            "yref": "paper",
            "text": phase.name,
            "showarrow": False,
        }
        for phase in phases
    ]


def format_phase_stats_table(
    stats_table: pd.DataFrame,
    meta_map: Mapping[str, MetricMeta] | None = None,
) -> pd.DataFrame:
    """Rename, round, and dash-fill the per-phase stats table for display."""
    keep = ["Metric", "Phase", "Mean", "Peak", "TTP (ms)"]
    if stats_table.empty:
        return pd.DataFrame(columns=keep)

    labels = meta_map or {}
    table = stats_table.copy()
    table["metric"] = table["metric"].map(lambda m: metric_label(str(m), labels.get(str(m))))
    table = table.rename(
        columns={
            "metric": "Metric",
            "phase": "Phase",
            "mean": "Mean",
            "peak": "Peak",
            "time_to_peak_ms": "TTP (ms)",
        }
    )
    table["Mean"] = table["Mean"].map(lambda v: _format_number(v, 2))
    table["Peak"] = table["Peak"].map(lambda v: _format_number(v, 2))
    table["TTP (ms)"] = table["TTP (ms)"].map(lambda v: _format_number(v, 0))
    return table[keep].reset_index(drop=True)


def build_export_summary(
    session_id: str | None,
    selected: Sequence[str],
    phases: Sequence[Phase],
) -> str:
    """Describe what an export of the current view would contain."""
    metrics_text = ", ".join(selected) or EMPTY_VALUE_TEXT
    phase_text = ", ".join(phase.name for phase in phases) or EMPTY_VALUE_TEXT
    return (
        "Export preview\n"
        f"- Chart image for session {session_id or EMPTY_VALUE_TEXT}\n"
        f"- Per-phase stats (mean, peak, TTP) for metrics: {metrics_text}\n"
        f"- Phases: {phase_text}\n"
        "No files are written."
    )


def _format_number(value: Any, digits: int) -> str:
    if value is None or pd.isna(value):
        return EMPTY_VALUE_TEXT
    if digits == 0:
        return f"{int(round(float(value)))}"
    return f"{float(value):.{digits}f}"
