from __future__ import annotations

import logging
from typing import Any

import pandas as pd

from biomech_viewer.lod import (
    ColumnarLevelAdapter,
    LodResolver,
    NestedColumnarAdapter,
    RowSampleAdapter,
)
from biomech_viewer.store import FrameStore, StoreError, StoreQuery

SAMPLES = {
    "hip_rotation": ([0, 100, 200], [0.0, 10.0, 0.0]),
    "trunk_tilt": ([0, 50, 100, 150], [5.0, 6.0, 7.0, 6.5]),
}


def _columnar_frame(session_id: str = "s1") -> pd.DataFrame:
    rows = []
    for metric, (t_ms, values) in SAMPLES.items():
        rows.append({"session_id": session_id, "metric": metric, "level": 2, "t_ms": t_ms, "values": values})
        rows.append(
            {"session_id": session_id, "metric": metric, "level": 0, "t_ms": t_ms[::2], "values": values[::2]}
        )
    return pd.DataFrame(rows)


def _nested_frame(session_id: str = "s1") -> pd.DataFrame:
    rows = []
    for metric, (t_ms, values) in SAMPLES.items():
        rows.append(
            {"session_id": session_id, "metric": metric, "level": 2, "data": {"t_ms": t_ms, "values": values}}
        )
        rows.append(
            {
                "session_id": session_id,
                "metric": metric,
                "level": 1,
                "data": {"t_ms": t_ms[::2], "values": values[::2]},
            }
        )
    return pd.DataFrame(rows)


def _sample_frame(session_id: str = "s1") -> pd.DataFrame:
    rows = []
    for metric, (t_ms, values) in SAMPLES.items():
        # Stored newest-first to prove the resolver orders by time itself.
        for t, v in reversed(list(zip(t_ms, values))):
            rows.append({"session_id": session_id, "metric": metric, "level": 2, "t_ms": t, "value": v})
        rows.append({"session_id": session_id, "metric": metric, "level": 0, "t_ms": 0, "value": -1.0})
    return pd.DataFrame(rows)


def test_resolve_empty_metric_list_returns_empty_map() -> None:
    store = FrameStore({"series_lod": _columnar_frame()})

    assert LodResolver(store).resolve("s1", []) == {}


def test_resolve_columnar_picks_max_level_and_filters_metrics() -> None:
    store = FrameStore({"series_lod": _columnar_frame()})

    out = LodResolver(store).resolve("s1", ["hip_rotation", "not_recorded"])

    assert list(out) == ["hip_rotation"]
    assert out["hip_rotation"].level == 2
    assert out["hip_rotation"].samples() == [(0, 0.0), (100, 10.0), (200, 0.0)]


def test_resolve_columnar_truncates_mismatched_arrays() -> None:
    frame = pd.DataFrame(
        [{"session_id": "s1", "metric": "m", "level": 0, "t_ms": [0, 10, 20], "values": [1.0, 2.0]}]
    )
    store = FrameStore({"series_lod": frame})

    out = LodResolver(store).resolve("s1", ["m"])

    assert out["m"].samples() == [(0, 1.0), (10, 2.0)]


def test_resolve_falls_back_to_nested_layout() -> None:
    store = FrameStore({"series_lod": _columnar_frame("other"), "series_lod_json": _nested_frame()})

    out = LodResolver(store).resolve("s1", ["trunk_tilt"])

    assert out["trunk_tilt"].level == 2
    assert out["trunk_tilt"].samples() == list(zip(*SAMPLES["trunk_tilt"]))


def test_row_sample_layout_matches_columnar_output() -> None:
    metrics = ["hip_rotation", "trunk_tilt"]
    columnar = LodResolver(FrameStore({"series_lod": _columnar_frame()})).resolve("s1", metrics)
    nested = LodResolver(FrameStore({"series_lod_json": _nested_frame()})).resolve("s1", metrics)
    rows = LodResolver(FrameStore({"timeseries_lod": _sample_frame()})).resolve("s1", metrics)

    assert list(rows) == metrics
    for metric in metrics:
        assert rows[metric].same_samples(columnar[metric])
        assert nested[metric].same_samples(columnar[metric])


def test_row_sample_layout_selects_max_level_per_metric() -> None:
    rows = []
    for level in (0, 1, 2):
        for t in (0, 100):
            rows.append({"session_id": "s1", "metric": "A", "level": level, "t_ms": t, "value": float(level)})
    for level in (0, 1):
        for t in (0, 100):
            rows.append({"session_id": "s1", "metric": "B", "level": level, "t_ms": t, "value": float(level)})
    store = FrameStore({"timeseries_lod": pd.DataFrame(rows)})

    out = LodResolver(store).resolve("s1", ["A", "B"])

    assert out["A"].level == 2
    assert out["A"].values.tolist() == [2.0, 2.0]
    assert out["B"].level == 1
    assert out["B"].values.tolist() == [1.0, 1.0]


def test_layout_with_rows_for_other_metrics_falls_through() -> None:
    columnar = _columnar_frame()
    columnar = columnar[columnar["metric"] == "trunk_tilt"]
    store = FrameStore({"series_lod": columnar, "timeseries_lod": _sample_frame()})

    out = LodResolver(store).resolve("s1", ["hip_rotation"])

    assert out["hip_rotation"].samples() == list(zip(*SAMPLES["hip_rotation"]))


def test_resolve_with_no_layouts_returns_empty_map() -> None:
    store = FrameStore({})

    assert LodResolver(store).resolve("s1", ["hip_rotation"]) == {}


class _FailingStore(FrameStore):
    def __init__(self, failing_table: str, frames: dict[str, pd.DataFrame]) -> None:
        super().__init__(frames)
        self.failing_table = failing_table

    def select(self, query: StoreQuery) -> list[dict[str, Any]]:
        if query.table == self.failing_table:
            raise StoreError("connection reset")
        return super().select(query)


def test_store_failure_is_logged_and_treated_as_layout_miss(caplog) -> None:
    store = _FailingStore("series_lod", {"series_lod_json": _nested_frame()})

    with caplog.at_level(logging.WARNING, logger="biomech_viewer.lod"):
        out = LodResolver(store).resolve("s1", ["hip_rotation"])

    assert "hip_rotation" in out
    assert any("columnar layout failed" in record.getMessage() for record in caplog.records)


def test_catalog_reports_sorted_metrics_and_auto_level() -> None:
    store = FrameStore({"series_lod_json": _nested_frame()})

    catalog = LodResolver(store).catalog("s1")

    assert catalog.layout == NestedColumnarAdapter.name
    assert catalog.metrics == ("hip_rotation", "trunk_tilt")
    assert catalog.levels == (1, 2)
    assert catalog.auto_level == 2


def test_catalog_for_unknown_session_is_empty() -> None:
    store = FrameStore({"series_lod": _columnar_frame()})

    catalog = LodResolver(store).catalog("missing")

    assert catalog.is_empty
    assert catalog.auto_level is None


def test_custom_adapter_order() -> None:
    store = FrameStore({"series_lod": _columnar_frame(), "timeseries_lod": _sample_frame()})
    resolver = LodResolver(store, adapters=[RowSampleAdapter(), ColumnarLevelAdapter()])

    out = resolver.resolve("s1", ["hip_rotation"])

    assert out["hip_rotation"].samples() == list(zip(*SAMPLES["hip_rotation"]))
    assert resolver.catalog("s1").layout == RowSampleAdapter.name
