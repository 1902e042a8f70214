"""Data-store collaborator contract and a pandas-backed implementation."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

import pandas as pd

from .constants import (
    METRICS_META_TABLE,
    PHASES_TABLE,
    SERIES_LOD_JSON_TABLE,
    SERIES_LOD_TABLE,
    TIMESERIES_LOD_TABLE,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A store query failed (network, missing table, malformed response)."""


@dataclass(frozen=True)
class TableNames:
    """Collaborator table names for the three series layouts plus phases/metadata."""

    series_lod: str = SERIES_LOD_TABLE
    series_lod_json: str = SERIES_LOD_JSON_TABLE
    timeseries_lod: str = TIMESERIES_LOD_TABLE
    phases: str = PHASES_TABLE
    metrics_meta: str = METRICS_META_TABLE

    def all(self) -> tuple[str, ...]:
        return (
            self.series_lod,
            self.series_lod_json,
            self.timeseries_lod,
            self.phases,
            self.metrics_meta,
        )


@dataclass(frozen=True)
class StoreQuery:
    """Rows of ``table`` for one session, optionally filtered by metric and level."""

    table: str
    session_id: str
    columns: tuple[str, ...]
    metrics: tuple[str, ...] | None = None
    level: int | None = None
    order_by: str | None = None


class SeriesStore(Protocol):
    """Everything the viewer reads from or writes to durable storage."""

    tables: TableNames

    def select(self, query: StoreQuery) -> list[dict[str, Any]]: ...

    def fetch_phases(self, session_id: str) -> list[dict[str, Any]]: ...

    def insert_phase(self, record: Mapping[str, Any]) -> None: ...

    def fetch_metric_meta(self, metrics: Sequence[str]) -> list[dict[str, Any]]: ...


class FrameStore:
    """In-process store holding one DataFrame per collaborator table."""

    def __init__(
        self,
        frames: Mapping[str, pd.DataFrame] | None = None,
        *,
        tables: TableNames | None = None,
    ) -> None:
        self.tables = tables or TableNames()
        self._frames: dict[str, pd.DataFrame] = {
            name: frame.reset_index(drop=True).copy() for name, frame in (frames or {}).items()
        }

    def frame(self, table: str) -> pd.DataFrame:
        return self._frames.get(table, pd.DataFrame())

    def select(self, query: StoreQuery) -> list[dict[str, Any]]:
        df = self.frame(query.table)
        if df.empty:
            return []
        if "session_id" not in df.columns:
            raise StoreError(f"table {query.table!r} has no session_id column")

        mask = df["session_id"].astype(str) == str(query.session_id)
        if query.metrics is not None:
            if "metric" not in df.columns:
                raise StoreError(f"table {query.table!r} has no metric column")
            mask &= df["metric"].isin(list(query.metrics))
        if query.level is not None:
            if "level" not in df.columns:
                raise StoreError(f"table {query.table!r} has no level column")
            mask &= df["level"] == query.level

        out = df.loc[mask]
        if query.order_by is not None and query.order_by in out.columns:
            out = out.sort_values(query.order_by, kind="stable")

        columns = [col for col in query.columns if col in out.columns]
        return _records(out[columns])

    def fetch_phases(self, session_id: str) -> list[dict[str, Any]]:
        df = self.frame(self.tables.phases)
        if df.empty:
            return []
        _require_columns(df, self.tables.phases, "session_id")
        return _records(df[df["session_id"].astype(str) == str(session_id)])

    def insert_phase(self, record: Mapping[str, Any]) -> None:
        missing = {"session_id", "name", "start_ms", "end_ms"} - set(record)
        if missing:
            raise StoreError(f"phase record missing fields: {sorted(missing)}")
        current = self.frame(self.tables.phases)
        row = pd.DataFrame([dict(record)])
        self._frames[self.tables.phases] = (
            row if current.empty else pd.concat([current, row], ignore_index=True)
        )

    def fetch_metric_meta(self, metrics: Sequence[str]) -> list[dict[str, Any]]:
        df = self.frame(self.tables.metrics_meta)
        if df.empty or not metrics:
            return []
        _require_columns(df, self.tables.metrics_meta, "metric")
        return _records(df[df["metric"].isin(list(metrics))])


def load_frame_store(data_dir: str | Path, *, tables: TableNames | None = None) -> FrameStore:
    """Load ``<table>.json`` record files from a directory into a FrameStore."""
    names = tables or TableNames()
    root = Path(data_dir)
    if not root.is_dir():
        raise FileNotFoundError(f"data directory not found: {root}")

    frames: dict[str, pd.DataFrame] = {}
    for table in names.all():
        path = root / f"{table}.json"
        if not path.exists():
            continue
        try:
            frames[table] = pd.read_json(path, orient="records", convert_dates=False, dtype=False)
        except ValueError as exc:
            raise StoreError(f"could not parse {path}: {exc}") from exc
        logger.debug("Loaded %d rows from %s", len(frames[table]), path)
    return FrameStore(frames, tables=names)


def _require_columns(df: pd.DataFrame, table: str, *columns: str) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise StoreError(f"table {table!r} has no {', '.join(missing)} column")


def _records(df: pd.DataFrame) -> list[dict[str, Any]]:
    return [
        {key: (None if _is_missing(value) else value) for key, value in row.items()}
        for row in df.to_dict(orient="records")
    ]


def _is_missing(value: Any) -> bool:
    return pd.api.types.is_scalar(value) and bool(pd.isna(value))
