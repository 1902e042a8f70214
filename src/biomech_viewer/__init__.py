"""Biomechanics session viewer engine."""

from .config import (
    DisplaySettings,
    StoreSettings,
    ViewerConfig,
    clear_config_cache,
    default_viewer_config,
    find_project_root,
    resolve_data_dir,
)
from .cursor import (
    AsyncioFrameScheduler,
    CursorController,
    CursorMode,
    FrameScheduler,
    ManualFrameScheduler,
)
from .lod import (
    ColumnarLevelAdapter,
    LayoutAdapter,
    LevelCatalog,
    LodResolver,
    NestedColumnarAdapter,
    RowSampleAdapter,
)
from .phases import Phase, PhaseStats, phase_from_draft, phase_stats, phase_stats_table, slice_series
from .presentation import MetricCard, MetricMeta, LineSeries, metric_label
from .selection import SelectionState, filter_metrics, initial_selection
from .series import PointSeries, max_observed_ms
from .session_view import SessionView
from .signals import smooth, value_at, values_at
from .store import FrameStore, SeriesStore, StoreError, StoreQuery, TableNames, load_frame_store

__all__ = [
    "AsyncioFrameScheduler",
    "ColumnarLevelAdapter",
    "CursorController",
    "CursorMode",
    "DisplaySettings",
    "FrameScheduler",
    "FrameStore",
    "LayoutAdapter",
    "LevelCatalog",
    "LineSeries",
    "LodResolver",
    "ManualFrameScheduler",
    "MetricCard",
    "MetricMeta",
    "NestedColumnarAdapter",
    "Phase",
    "PhaseStats",
    "PointSeries",
    "RowSampleAdapter",
    "SelectionState",
    "SeriesStore",
    "SessionView",
    "StoreError",
    "StoreQuery",
    "StoreSettings",
    "TableNames",
    "ViewerConfig",
    "clear_config_cache",
    "default_viewer_config",
    "filter_metrics",
    "find_project_root",
    "initial_selection",
    "load_frame_store",
    "max_observed_ms",
    "metric_label",
    "phase_from_draft",
    "phase_stats",
    "phase_stats_table",
    "resolve_data_dir",
    "slice_series",
    "smooth",
    "value_at",
    "values_at",
]
