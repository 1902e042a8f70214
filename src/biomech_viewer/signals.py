"""Cursor-time interpolation and display smoothing."""

from __future__ import annotations

from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from .series import PointSeries


def value_at(series: PointSeries, t_ms: float) -> float | None:
    """Value of ``series`` at ``t_ms``: clamped at the ends, linear in between.

    Returns None for an empty series or a non-finite query time.
    """
    if series.is_empty or not np.isfinite(t_ms):
        return None

    times = series.t_ms
    values = series.values
    if t_ms <= times[0]:
        return float(values[0])
    if t_ms >= times[-1]:
        return float(values[-1])

    # First index with time > t_ms; the sample before it brackets from the left.
    hi = int(np.searchsorted(times, t_ms, side="right"))
    lo = hi - 1
    t_a = float(times[lo])
    t_b = float(times[hi])
    v_a = float(values[lo])
    if t_b == t_a:
        return v_a
    ratio = (float(t_ms) - t_a) / (t_b - t_a)
    return v_a + ratio * (float(values[hi]) - v_a)


def values_at(
    series_map: Mapping[str, PointSeries],
    t_ms: float,
    metrics: Sequence[str] | None = None,
) -> dict[str, float | None]:
    """Sample every requested metric at one cursor time."""
    names = list(series_map) if metrics is None else list(metrics)
    out: dict[str, float | None] = {}
    for name in names:
        series = series_map.get(name)
        out[name] = None if series is None else value_at(series, t_ms)
    return out


def smooth(values: Sequence[float] | np.ndarray, window_radius: int) -> np.ndarray:
    """Moving average over ``[i - r, i + r]`` clipped to the array bounds.

    Edge windows are narrower, so their divisor shrinks instead of padding.
    The input is never modified.
    """
    if window_radius < 0:
        raise ValueError("window_radius must be >= 0")

    arr = np.asarray(values, dtype=float)
    if window_radius == 0 or arr.size == 0:
        return arr.copy()

    window = 2 * int(window_radius) + 1
    rolling = pd.Series(arr).rolling(window, center=True, min_periods=1).mean()
    return rolling.to_numpy(dtype=float)
