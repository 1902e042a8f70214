"""Session phases and per-phase aggregate statistics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from .constants import MS_PER_SECOND
from .series import PointSeries

PHASE_STATS_COLUMNS = [
    "metric",
    "phase",
    "start_ms",
    "end_ms",
    "n_samples",
    "mean",
    "peak",
    "time_to_peak_ms",
]


@dataclass(frozen=True)
class Phase:
    """Named ``[start_ms, end_ms)`` interval within a session."""

    session_id: str
    name: str
    start_ms: int
    end_ms: int

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Phase:
        return cls(
            session_id=str(record.get("session_id", "")),
            name=str(record.get("name", "")),
            start_ms=int(record["start_ms"]),
            end_ms=int(record["end_ms"]),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "name": self.name,
            "start_ms": self.start_ms,
            "end_ms": self.end_ms,
        }

    def contains(self, t_ms: float) -> bool:
        """Half-open membership used for overlay highlighting."""
        return self.start_ms <= t_ms < self.end_ms

    @property
    def midpoint_s(self) -> float:
        return (self.start_ms + self.end_ms) / (2 * MS_PER_SECOND)


@dataclass(frozen=True)
class PhaseStats:
    """Mean, peak, and time-to-peak over one phase; all None when empty."""

    mean: float | None
    peak: float | None
    time_to_peak_ms: int | None
    n_samples: int = 0


def slice_series(series: PointSeries, start_ms: float, end_ms: float) -> tuple[np.ndarray, np.ndarray]:
    """Samples with ``start_ms <= t <= end_ms`` (inclusive on both ends)."""
    mask = (series.t_ms >= start_ms) & (series.t_ms <= end_ms)
    return series.t_ms[mask], series.values[mask]


def phase_stats(series: PointSeries, phase: Phase) -> PhaseStats:
    """Aggregate one phase.

    The mean is unweighted by sample spacing, so densely sampled stretches
    dominate it when sampling is irregular.
    """
    times, values = slice_series(series, phase.start_ms, phase.end_ms)
    if values.size == 0:
        return PhaseStats(mean=None, peak=None, time_to_peak_ms=None, n_samples=0)

    # argmax returns the first occurrence, so ties resolve to the earliest sample.
    peak_idx = int(np.argmax(values))
    return PhaseStats(
        mean=float(values.mean()),
        peak=float(values[peak_idx]),
        time_to_peak_ms=int(times[peak_idx]) - int(phase.start_ms),
        n_samples=int(values.size),
    )


def phase_stats_table(
    series_map: Mapping[str, PointSeries],
    phases: Sequence[Phase],
    metrics: Iterable[str] | None = None,
) -> pd.DataFrame:
    """One row per (metric, phase) in metric-then-phase order."""
    names = list(series_map) if metrics is None else list(metrics)
    rows: list[dict[str, object]] = []
    for metric in names:
        series = series_map.get(metric) or PointSeries.empty(metric)
        for phase in phases:
            stats = phase_stats(series, phase)
            rows.append(
                {
                    "metric": metric,
                    "phase": phase.name,
                    "start_ms": phase.start_ms,
                    "end_ms": phase.end_ms,
                    "n_samples": stats.n_samples,
                    "mean": stats.mean,
                    "peak": stats.peak,
                    "time_to_peak_ms": stats.time_to_peak_ms,
                }
            )

    if not rows:
        return pd.DataFrame(columns=PHASE_STATS_COLUMNS)
    return pd.DataFrame(rows, columns=PHASE_STATS_COLUMNS)


def phase_from_draft(session_id: str, name: str, x0_s: float, x1_s: float) -> Phase:
    """Convert a drawn band (chart seconds, either order) into a phase."""
    cleaned = name.strip()
    if not cleaned:
        raise ValueError("phase name must not be empty")
    if not (np.isfinite(x0_s) and np.isfinite(x1_s)):
        raise ValueError("draft bounds must be finite")

    start_ms = int(round(min(x0_s, x1_s) * MS_PER_SECOND))
    end_ms = int(round(max(x0_s, x1_s) * MS_PER_SECOND))
    return Phase(session_id=session_id, name=cleaned, start_ms=start_ms, end_ms=end_ms)


def phases_from_records(records: Iterable[Mapping[str, Any]]) -> list[Phase]:
    """Build phases sorted by start time, skipping rows without bounds."""
    phases = [
        Phase.from_record(record)
        for record in records
        if record.get("start_ms") is not None and record.get("end_ms") is not None
    ]
    return sorted(phases, key=lambda p: (p.start_ms, p.end_ms, p.name))
