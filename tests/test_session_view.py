from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Mapping, Sequence

import pandas as pd
import pytest

from biomech_viewer.config import DisplaySettings
from biomech_viewer.constants import PALETTE
from biomech_viewer.cursor import ManualFrameScheduler
from biomech_viewer.lod import LodResolver
from biomech_viewer.series import PointSeries
from biomech_viewer.session_view import SessionView
from biomech_viewer.store import FrameStore, StoreError


def _frames() -> dict[str, pd.DataFrame]:
    series = pd.DataFrame(
        [
            {"session_id": "s1", "metric": "hip_rotation", "level": 1, "t_ms": [0, 100, 200], "values": [0.0, 10.0, 0.0]},
            {"session_id": "s1", "metric": "trunk_tilt", "level": 1, "t_ms": [0, 200, 400], "values": [4.0, 4.0, 4.0]},
            {"session_id": "s1", "metric": "hip_rotation", "level": 0, "t_ms": [0, 200], "values": [0.0, 0.0]},
            {"session_id": "s2", "metric": "elbow_flexion", "level": 0, "t_ms": [0, 50], "values": [1.0, 2.0]},
        ]
    )
    phases = pd.DataFrame([{"session_id": "s1", "name": "Stride", "start_ms": 0, "end_ms": 200}])
    meta = pd.DataFrame(
        [{"metric": "hip_rotation", "display_name": "Hip rotation", "unit": "deg", "category": "pelvis", "color": None}]
    )
    return {"series_lod": series, "phases": phases, "metrics_meta": meta}


def _store() -> FrameStore:
    return FrameStore(_frames())


def _view(store: FrameStore | None = None, **kwargs: Any) -> SessionView:
    return SessionView(store or _store(), scheduler=ManualFrameScheduler(), **kwargs)


def test_open_session_loads_catalog_selection_phases_and_series() -> None:
    view = _view()

    applied = asyncio.run(view.open_session("s1", ["trunk_tilt", "hip_rotation"]))

    assert applied
    assert view.catalog.metrics == ("hip_rotation", "trunk_tilt")
    assert view.catalog.auto_level == 1
    assert view.selection.selected == ("trunk_tilt", "hip_rotation")
    assert view.selection.tray == ("trunk_tilt", "hip_rotation")
    assert [p.name for p in view.phases] == ["Stride"]
    assert set(view.series) == {"trunk_tilt", "hip_rotation"}
    assert view.max_ms == 400
    assert view.cursor.max_ms == 400


def test_open_session_defaults_to_first_metric() -> None:
    view = _view()

    asyncio.run(view.open_session("s1"))

    assert view.selection.selected == ("hip_rotation",)


def test_cards_show_values_for_active_metrics_only() -> None:
    view = _view()

    async def scenario() -> None:
        await view.open_session("s1", ["hip_rotation", "trunk_tilt"])
        await view.toggle_metric("trunk_tilt")

    asyncio.run(scenario())
    view.scrub(150)
    cards = {card.metric: card for card in view.cards()}

    assert cards["hip_rotation"].label == "Hip rotation [deg]"
    assert cards["hip_rotation"].value == pytest.approx(5.0)
    assert cards["hip_rotation"].color == PALETTE[0]
    assert cards["trunk_tilt"].active is False
    assert cards["trunk_tilt"].value is None
    assert cards["trunk_tilt"].label == "trunk_tilt"


def test_session_change_resets_cursor() -> None:
    view = _view()

    async def scenario() -> None:
        await view.open_session("s1", ["hip_rotation"])
        view.scrub(120)
        view.hover(0.15)
        await view.open_session("s2")

    asyncio.run(scenario())

    assert view.cursor.time_ms == 0
    assert not view.cursor.has_pending_update
    assert view.selection.selected == ("elbow_flexion",)
    assert view.phases == []


def test_chart_lines_smooth_display_values_only() -> None:
    view = _view(display=DisplaySettings(smoothing_radius=1))
    asyncio.run(view.open_session("s1", ["hip_rotation"]))

    raw = view.chart_lines()
    view.smooth_on = True
    smoothed = view.chart_lines()

    assert raw[0].x.tolist() == [0.0, 0.1, 0.2]
    assert raw[0].y.tolist() == [0.0, 10.0, 0.0]
    assert smoothed[0].y.tolist() == pytest.approx([5.0, 10.0 / 3.0, 5.0])
    assert view.series["hip_rotation"].values.tolist() == [0.0, 10.0, 0.0]


def test_shapes_include_phase_band_cursor_and_draft() -> None:
    view = _view()
    asyncio.run(view.open_session("s1", ["hip_rotation"]))
    view.scrub(100)
    view.set_editing(True)
    view.set_draft(0.3, 0.25)

    shapes = view.shapes()

    assert [s["type"] for s in shapes] == ["rect", "line", "rect"]
    assert (shapes[0]["x0"], shapes[0]["x1"]) == (0.0, 0.2)
    assert shapes[1]["x0"] == pytest.approx(0.1)
    assert (shapes[2]["x0"], shapes[2]["x1"]) == (0.25, 0.3)
    assert view.annotations()[0]["text"] == "Stride"

    view.set_editing(False)
    assert [s["type"] for s in view.shapes()] == ["rect", "line"]


def test_phase_stats_for_selected_metrics() -> None:
    view = _view()
    asyncio.run(view.open_session("s1", ["hip_rotation"]))

    stats = view.phase_stats()

    row = stats.iloc[0]
    assert row["metric"] == "hip_rotation"
    assert row["mean"] == pytest.approx(10.0 / 3.0)
    assert row["peak"] == 10.0
    assert row["time_to_peak_ms"] == 100
    assert view.formatted_phase_stats()["Metric"].iloc[0] == "Hip rotation [deg]"


def test_save_phase_inserts_and_reloads() -> None:
    store = _store()
    view = _view(store)

    async def scenario() -> Any:
        await view.open_session("s1", ["hip_rotation"])
        view.set_editing(True)
        view.set_draft(0.35, 0.2)
        return await view.save_phase("Release")

    phase = asyncio.run(scenario())

    assert phase is not None
    assert (phase.start_ms, phase.end_ms) == (200, 350)
    assert [p.name for p in view.phases] == ["Stride", "Release"]
    assert view.draft is None
    assert len(store.fetch_phases("s1")) == 2


def test_save_phase_without_draft_is_noop() -> None:
    view = _view()
    asyncio.run(view.open_session("s1"))

    assert asyncio.run(view.save_phase("Release")) is None


class _ReadOnlyStore(FrameStore):
    def insert_phase(self, record: Mapping[str, Any]) -> None:
        raise StoreError("permission denied")


def test_save_phase_failure_keeps_draft() -> None:
    view = _view(_ReadOnlyStore(_frames()))

    async def scenario() -> Any:
        await view.open_session("s1")
        view.set_draft(0.1, 0.2)
        return await view.save_phase("Drive")

    assert asyncio.run(scenario()) is None
    assert view.draft == (0.1, 0.2)
    assert [p.name for p in view.phases] == ["Stride"]


class _GatedResolver(LodResolver):
    """Blocks resolves that include ``gated_metric`` until released."""

    def __init__(self, store: FrameStore, gated_metric: str) -> None:
        super().__init__(store)
        self.gated_metric = gated_metric
        self.release = threading.Event()

    def resolve(self, session_id: str, metric_names: Sequence[str]) -> dict[str, PointSeries]:
        if self.gated_metric in metric_names:
            self.release.wait(timeout=5.0)
        return super().resolve(session_id, metric_names)


def test_stale_resolve_result_is_discarded() -> None:
    store = _store()
    resolver = _GatedResolver(store, gated_metric="trunk_tilt")
    view = SessionView(store, scheduler=ManualFrameScheduler(), resolver=resolver)

    async def scenario() -> tuple[bool, bool]:
        await view.open_session("s1", ["hip_rotation"])
        slow = asyncio.create_task(view.toggle_metric("trunk_tilt"))
        await asyncio.sleep(0.01)
        fast = await view.remove_metric("trunk_tilt")
        resolver.release.set()
        return await slow, fast

    slow_applied, fast_applied = asyncio.run(scenario())

    assert fast_applied is True
    assert slow_applied is False
    assert set(view.series) == {"hip_rotation"}


def test_resolve_for_previous_session_is_discarded() -> None:
    store = _store()
    resolver = _GatedResolver(store, gated_metric="trunk_tilt")
    view = SessionView(store, scheduler=ManualFrameScheduler(), resolver=resolver)

    async def scenario() -> bool:
        await view.open_session("s1", ["hip_rotation"])
        slow = asyncio.create_task(view.toggle_metric("trunk_tilt"))
        await asyncio.sleep(0.01)
        await view.open_session("s2")
        resolver.release.set()
        return await slow

    assert asyncio.run(scenario()) is False
    assert set(view.series) == {"elbow_flexion"}
    assert view.session_id == "s2"


def test_search_and_export_summary() -> None:
    view = _view()
    asyncio.run(view.open_session("s1", ["hip_rotation"]))

    assert view.search("TILT") == ["trunk_tilt"]
    summary = view.export_summary()
    assert "session s1" in summary
    assert "hip_rotation" in summary
    assert "Stride" in summary


def test_empty_session_renders_no_data() -> None:
    view = _view()
    asyncio.run(view.open_session("unknown"))

    assert view.series == {}
    assert view.cards() == []
    assert view.chart_lines() == []
    assert view.phase_stats().empty
    assert view.max_ms == 0


def test_malformed_metadata_and_phase_tables_degrade_to_empty(caplog) -> None:
    frames = _frames()
    frames["metrics_meta"] = pd.DataFrame([{"name": "hip_rotation", "unit": "deg"}])
    frames["phases"] = pd.DataFrame([{"name": "Stride", "start_ms": 0, "end_ms": 200}])
    view = _view(FrameStore(frames))

    with caplog.at_level(logging.WARNING, logger="biomech_viewer.session_view"):
        applied = asyncio.run(view.open_session("s1", ["hip_rotation"]))

    assert applied
    assert view.meta == {}
    assert view.phases == []
    assert set(view.series) == {"hip_rotation"}
    messages = [record.getMessage() for record in caplog.records]
    assert any("Could not load phases for session=s1" in m for m in messages)
    assert any("Could not load metric metadata" in m for m in messages)


def test_scrub_snaps_to_slider_step() -> None:
    view = _view(display=DisplaySettings(slider_step_ms=50))
    asyncio.run(view.open_session("s1", ["hip_rotation", "trunk_tilt"]))

    view.scrub(173)
    assert view.cursor.time_ms == 150

    view.scrub(990)
    assert view.cursor.time_ms == 400
