"""Controlling view for one athlete session: state, async loads, and payloads."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

import pandas as pd

from .config import DisplaySettings
from .cursor import AsyncioFrameScheduler, CursorController, FrameScheduler
from .lod import LevelCatalog, LodResolver
from .phases import Phase, phase_from_draft, phase_stats_table, phases_from_records
from .presentation import (
    LineSeries,
    MetricCard,
    MetricMeta,
    build_cards,
    build_chart_lines,
    build_export_summary,
    format_phase_stats_table,
    metadata_map,
    overlay_shapes,
    phase_annotations,
)
from .selection import SelectionState, filter_metrics, initial_selection
from .series import PointSeries, max_observed_ms
from .store import SeriesStore, StoreError

logger = logging.getLogger(__name__)


class SessionView:
    """State owner for the session screen.

    Store reads run off the event loop. Every async load captures a
    generation number first and applies its result only if that number is
    still current when the read completes, so late results for an old
    session or an old metric set are dropped.
    """

    def __init__(
        self,
        store: SeriesStore,
        *,
        display: DisplaySettings | None = None,
        scheduler: FrameScheduler | None = None,
        resolver: LodResolver | None = None,
    ) -> None:
        self.store = store
        self.display = display or DisplaySettings()
        self.resolver = resolver or LodResolver(store)
        self.cursor = CursorController(
            scheduler or AsyncioFrameScheduler(frame_interval_s=self.display.frame_interval_s)
        )
        self.selection = SelectionState()

        self.session_id: str | None = None
        self.catalog = LevelCatalog(layout=None)
        self.series: dict[str, PointSeries] = {}
        self.phases: list[Phase] = []
        self.meta: dict[str, MetricMeta] = {}

        self.smooth_on = self.display.smooth_by_default
        self.editing_phases = False
        self.draft: tuple[float, float] | None = None

        self._session_generation = 0
        self._series_generation = 0

    # ---- session lifecycle ----

    async def open_session(self, session_id: str, requested_metrics: Iterable[str] = ()) -> bool:
        """Switch to ``session_id``; returns False if superseded mid-load."""
        self._session_generation += 1
        self._series_generation += 1
        generation = self._session_generation

        self.session_id = session_id
        self.catalog = LevelCatalog(layout=None)
        self.series = {}
        self.phases = []
        self.meta = {}
        self.selection.reset()
        self.cursor.reset()
        self.editing_phases = False
        self.draft = None

        catalog = await asyncio.to_thread(self.resolver.catalog, session_id)
        if generation != self._session_generation:
            logger.debug("Discarding stale catalog for session=%s", session_id)
            return False
        self.catalog = catalog
        self.selection.reset(initial_selection(catalog.metrics, requested_metrics))

        phases = await self._read_phases(session_id)
        if generation != self._session_generation:
            return False
        self.phases = phases

        meta = await self._read_meta(catalog.metrics)
        if generation != self._session_generation:
            return False
        self.meta = meta

        return await self.refresh_series()

    async def refresh_series(self) -> bool:
        """Re-resolve the selected metrics; returns False if the result went stale."""
        self._series_generation += 1
        generation = self._series_generation
        session_id = self.session_id
        metrics = list(self.selection.selected)

        if not session_id or not metrics:
            self._apply_series({})
            return True

        resolved = await asyncio.to_thread(self.resolver.resolve, session_id, metrics)
        if generation != self._series_generation or session_id != self.session_id:
            logger.debug(
                "Discarding stale resolve for session=%s metrics=%s",
                session_id,
                metrics,
            )
            return False
        self._apply_series(resolved)
        return True

    def close(self) -> None:
        self._session_generation += 1
        self._series_generation += 1
        self.cursor.close()

    # ---- selection and tray ----

    async def toggle_metric(self, metric: str) -> bool:
        self.selection.toggle(metric)
        return await self.refresh_series()

    async def set_selected(self, metrics: Sequence[str]) -> bool:
        self.selection.set_selected(m for m in metrics if m in self.catalog.metrics)
        return await self.refresh_series()

    async def remove_metric(self, metric: str) -> bool:
        self.selection.remove(metric)
        return await self.refresh_series()

    def move_card(self, from_index: int, to_index: int) -> None:
        self.selection.move(from_index, to_index)

    def search(self, query: str) -> list[str]:
        return filter_metrics(self.catalog.metrics, query)

    # ---- cursor ----

    @property
    def max_ms(self) -> int:
        return max_observed_ms(self.series)

    def hover(self, x_seconds: float | None) -> bool:
        return self.cursor.hover(x_seconds)

    def scrub(self, time_ms: float) -> None:
        """Slider assignment, snapped to the slider step."""
        step = self.display.slider_step_ms
        self.cursor.scrub(round(float(time_ms) / step) * step)

    # ---- phases ----

    def set_draft(self, x0_s: float, x1_s: float) -> None:
        """Record the band drawn on the chart (seconds)."""
        self.draft = (float(x0_s), float(x1_s))

    def set_editing(self, editing: bool) -> None:
        self.editing_phases = editing
        if not editing:
            self.draft = None

    async def save_phase(self, name: str) -> Phase | None:
        """Persist the current draft as a phase; None when nothing was saved."""
        if self.draft is None or not self.session_id:
            return None
        session_id = self.session_id
        phase = phase_from_draft(session_id, name, *self.draft)
        try:
            await asyncio.to_thread(self.store.insert_phase, phase.to_record())
        except StoreError as exc:
            logger.error("Could not save phase %r for session=%s: %s", phase.name, session_id, exc)
            return None

        phases = await self._read_phases(session_id)
        if session_id == self.session_id:
            self.phases = phases
            self.draft = None
        return phase

    # ---- payloads ----

    def cards(self) -> list[MetricCard]:
        return build_cards(
            self.selection.tray,
            self.selection.selected,
            self.series,
            self.meta,
            self.cursor.time_ms,
        )

    def chart_lines(self) -> list[LineSeries]:
        return build_chart_lines(
            self.series,
            self.selection.selected,
            self.meta,
            smooth_on=self.smooth_on,
            smoothing_radius=self.display.smoothing_radius,
        )

    def shapes(self) -> list[dict[str, object]]:
        return overlay_shapes(
            self.phases,
            self.cursor.time_ms,
            draft=self.draft,
            editing=self.editing_phases,
        )

    def annotations(self) -> list[dict[str, object]]:
        return phase_annotations(self.phases)

    def phase_stats(self) -> pd.DataFrame:
        return phase_stats_table(self.series, self.phases, self.selection.selected)

    def formatted_phase_stats(self) -> pd.DataFrame:
        return format_phase_stats_table(self.phase_stats(), self.meta)

    def export_summary(self) -> str:
        return build_export_summary(self.session_id, self.selection.selected, self.phases)

    # ---- internals ----

    def _apply_series(self, resolved: dict[str, PointSeries]) -> None:
        self.series = resolved
        self.cursor.set_max(max_observed_ms(resolved))

    async def _read_phases(self, session_id: str) -> list[Phase]:
        try:
            records = await asyncio.to_thread(self.store.fetch_phases, session_id)
        except StoreError as exc:
            logger.warning("Could not load phases for session=%s: %s", session_id, exc)
            return []
        return phases_from_records(records)

    async def _read_meta(self, metrics: Sequence[str]) -> dict[str, MetricMeta]:
        if not metrics:
            return {}
        try:
            records = await asyncio.to_thread(self.store.fetch_metric_meta, list(metrics))
        except StoreError as exc:
            logger.warning("Could not load metric metadata: %s", exc)
            return {}
        return metadata_map(records)
