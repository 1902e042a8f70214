"""Point-series value type shared by the resolver, signals, and phase stats."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from .constants import MS_PER_SECOND


@dataclass(frozen=True, eq=False)
class PointSeries:
    """Ordered (time_ms, value) samples for one metric at one level.

    Arrays are read-only; a new series replaces an old one wholesale.
    """

    metric: str
    level: int
    t_ms: np.ndarray
    values: np.ndarray

    @classmethod
    def from_arrays(
        cls,
        metric: str,
        level: int,
        t_ms: Sequence[float] | np.ndarray | None,
        values: Sequence[float] | np.ndarray | None,
    ) -> PointSeries:
        """Zip parallel arrays, truncating to the shorter one.

        Samples with a non-finite time or value are dropped.
        """
        times = np.asarray([] if t_ms is None else t_ms, dtype=float)
        vals = np.asarray([] if values is None else values, dtype=float)
        n = min(len(times), len(vals))
        times = times[:n]
        vals = vals[:n]
        finite = np.isfinite(times) & np.isfinite(vals)
        times = np.rint(times[finite]).astype(np.int64)
        vals = vals[finite]
        n = len(times)

        if n > 1 and np.any(np.diff(times) < 0):
            order = np.argsort(times, kind="stable")
            times = times[order]
            vals = vals[order]

        times = times.copy()
        vals = vals.copy()
        times.flags.writeable = False
        vals.flags.writeable = False
        return cls(metric=str(metric), level=int(level), t_ms=times, values=vals)

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        *,
        metric: str,
        level: int,
        time_col: str = "t_ms",
        value_col: str = "value",
    ) -> PointSeries:
        return cls.from_arrays(
            metric,
            level,
            df[time_col].to_numpy(dtype=float),
            df[value_col].to_numpy(dtype=float),
        )

    @classmethod
    def empty(cls, metric: str, level: int = 0) -> PointSeries:
        return cls.from_arrays(metric, level, [], [])

    def __len__(self) -> int:
        return int(self.t_ms.shape[0])

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    @property
    def first_ms(self) -> int | None:
        return None if self.is_empty else int(self.t_ms[0])

    @property
    def last_ms(self) -> int | None:
        return None if self.is_empty else int(self.t_ms[-1])

    def seconds(self) -> np.ndarray:
        """Sample times in seconds, the chart's x axis."""
        return self.t_ms / MS_PER_SECOND

    def samples(self) -> list[tuple[int, float]]:
        return [(int(t), float(v)) for t, v in zip(self.t_ms, self.values)]

    def same_samples(self, other: PointSeries) -> bool:
        """True when both series carry identical times and values."""
        return bool(
            np.array_equal(self.t_ms, other.t_ms) and np.array_equal(self.values, other.values)
        )


def max_observed_ms(series: Mapping[str, PointSeries] | Iterable[PointSeries]) -> int:
    """Largest last-sample time across series; 0 when nothing is loaded."""
    items = series.values() if isinstance(series, Mapping) else series
    last_times = [s.last_ms for s in items if not s.is_empty]
    return max((int(t) for t in last_times if t is not None), default=0)
