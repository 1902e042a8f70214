"""Level-of-detail resolution across the three series storage layouts.

Layouts are tried in priority order and the first one that yields rows wins:

1. ``series_lod``: one row per (metric, level) with top-level ``t_ms`` and
   ``values`` arrays. One global level (the session maximum) is used.
2. ``series_lod_json``: same, with the arrays nested under ``data``.
3. ``timeseries_lod``: one row per sample; the maximum level is chosen per
   metric.

Every layout is normalized into :class:`PointSeries`.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

from .series import PointSeries
from .store import SeriesStore, StoreError, StoreQuery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelCatalog:
    """Metrics and levels a session exposes in its first populated layout."""

    layout: str | None
    metrics: tuple[str, ...] = ()
    levels: tuple[int, ...] = ()

    @property
    def auto_level(self) -> int | None:
        return max(self.levels) if self.levels else None

    @property
    def is_empty(self) -> bool:
        return not self.metrics


class LayoutAdapter:
    """One storage layout: how to list its levels and load its series."""

    name = "layout"

    def table(self, store: SeriesStore) -> str:
        raise NotImplementedError

    def catalog_rows(self, store: SeriesStore, session_id: str) -> list[dict[str, Any]]:
        query = StoreQuery(
            table=self.table(store),
            session_id=session_id,
            columns=("metric", "level"),
        )
        return [row for row in store.select(query) if _has_level(row)]

    def fetch(
        self,
        store: SeriesStore,
        session_id: str,
        metrics: Sequence[str],
    ) -> dict[str, PointSeries]:
        raise NotImplementedError


class ColumnarLevelAdapter(LayoutAdapter):
    """Parallel ``t_ms``/``values`` arrays as top-level row fields."""

    name = "columnar"
    columns: tuple[str, ...] = ("metric", "level", "t_ms", "values")

    def table(self, store: SeriesStore) -> str:
        return store.tables.series_lod

    def arrays(self, row: Mapping[str, Any]) -> tuple[Any, Any]:
        return row.get("t_ms"), row.get("values")

    def fetch(
        self,
        store: SeriesStore,
        session_id: str,
        metrics: Sequence[str],
    ) -> dict[str, PointSeries]:
        levels = [int(row["level"]) for row in self.catalog_rows(store, session_id)]
        if not levels:
            return {}
        auto_level = max(levels)

        query = StoreQuery(
            table=self.table(store),
            session_id=session_id,
            columns=self.columns,
            metrics=tuple(metrics),
            level=auto_level,
        )
        out: dict[str, PointSeries] = {}
        for row in store.select(query):
            metric = row.get("metric")
            if metric is None:
                continue
            t_ms, values = self.arrays(row)
            out[str(metric)] = PointSeries.from_arrays(str(metric), auto_level, t_ms, values)
        return out


class NestedColumnarAdapter(ColumnarLevelAdapter):
    """Parallel arrays nested in a ``data`` sub-object."""

    name = "nested_columnar"
    columns = ("metric", "level", "data")

    def table(self, store: SeriesStore) -> str:
        return store.tables.series_lod_json

    def arrays(self, row: Mapping[str, Any]) -> tuple[Any, Any]:
        data = row.get("data")
        if not isinstance(data, Mapping):
            return None, None
        return data.get("t_ms"), data.get("values")


class RowSampleAdapter(LayoutAdapter):
    """One row per sample; each metric keeps only its own maximum level."""

    name = "row_sample"
    columns = ("metric", "t_ms", "value", "level")

    def table(self, store: SeriesStore) -> str:
        return store.tables.timeseries_lod

    def fetch(
        self,
        store: SeriesStore,
        session_id: str,
        metrics: Sequence[str],
    ) -> dict[str, PointSeries]:
        query = StoreQuery(
            table=self.table(store),
            session_id=session_id,
            columns=self.columns,
            metrics=tuple(metrics),
            order_by="t_ms",
        )
        rows = store.select(query)
        if not rows:
            return {}

        df = pd.DataFrame.from_records(rows, columns=list(self.columns))
        df = df.dropna(subset=["metric", "level", "t_ms"])
        if df.empty:
            return {}
        df["level"] = df["level"].astype(int)

        top_level = df.groupby("metric")["level"].transform("max")
        kept = df.loc[df["level"] == top_level].sort_values("t_ms", kind="stable")

        out: dict[str, PointSeries] = {}
        for metric, group in kept.groupby("metric", sort=False):
            out[str(metric)] = PointSeries.from_frame(
                group,
                metric=str(metric),
                level=int(group["level"].iloc[0]),
            )
        return out


def default_adapters() -> tuple[LayoutAdapter, ...]:
    return (ColumnarLevelAdapter(), NestedColumnarAdapter(), RowSampleAdapter())


class LodResolver:
    """Resolve requested metrics of a session into point series."""

    def __init__(
        self,
        store: SeriesStore,
        adapters: Iterable[LayoutAdapter] | None = None,
    ) -> None:
        self.store = store
        self.adapters = tuple(adapters) if adapters is not None else default_adapters()

    def resolve(self, session_id: str, metric_names: Sequence[str]) -> dict[str, PointSeries]:
        """Map of metric name to series; absent metrics are omitted."""
        requested = list(dict.fromkeys(metric_names))
        if not requested or not session_id:
            return {}

        for adapter in self.adapters:
            try:
                found = adapter.fetch(self.store, session_id, requested)
            except StoreError as exc:
                logger.warning(
                    "Store query for %s layout failed (session=%s): %s",
                    adapter.name,
                    session_id,
                    exc,
                )
                continue
            if found:
                logger.debug(
                    "Resolved %d/%d metrics from %s layout (session=%s)",
                    len(found),
                    len(requested),
                    adapter.name,
                    session_id,
                )
                return {name: found[name] for name in requested if name in found}

        logger.info("No series rows for session=%s metrics=%s", session_id, requested)
        return {}

    def catalog(self, session_id: str) -> LevelCatalog:
        """Metric names and levels from the first layout with rows."""
        if not session_id:
            return LevelCatalog(layout=None)

        for adapter in self.adapters:
            try:
                rows = adapter.catalog_rows(self.store, session_id)
            except StoreError as exc:
                logger.warning(
                    "Catalog query for %s layout failed (session=%s): %s",
                    adapter.name,
                    session_id,
                    exc,
                )
                continue
            if rows:
                metrics = sorted({str(row["metric"]) for row in rows if row.get("metric") is not None})
                levels = sorted({int(row["level"]) for row in rows})
                return LevelCatalog(layout=adapter.name, metrics=tuple(metrics), levels=tuple(levels))

        return LevelCatalog(layout=None)


def _has_level(row: Mapping[str, Any]) -> bool:
    level = row.get("level")
    return level is not None and not pd.isna(level)
