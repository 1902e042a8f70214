"""Shared constants for the session viewer."""

DEFAULT_SMOOTHING_RADIUS = 5
DEFAULT_SLIDER_STEP_MS = 10
DEFAULT_FRAME_INTERVAL_S = 1.0 / 60.0
MS_PER_SECOND = 1000.0

SERIES_LOD_TABLE = "series_lod"
SERIES_LOD_JSON_TABLE = "series_lod_json"
TIMESERIES_LOD_TABLE = "timeseries_lod"
PHASES_TABLE = "phases"
METRICS_META_TABLE = "metrics_meta"

PALETTE = (
    "#60a5fa",
    "#22d3ee",
    "#34d399",
    "#f59e0b",
    "#f472b6",
    "#a78bfa",
    "#fb7185",
    "#f97316",
    "#84cc16",
    "#06b6d4",
)

PHASE_FILL_COLOR = "rgba(59,130,246,0.18)"
CURSOR_LINE_COLOR = "#e5e7eb"
DRAFT_FILL_COLOR = "rgba(244,114,182,0.15)"
DRAFT_LINE_COLOR = "#f472b6"
EMPTY_VALUE_TEXT = "-"
