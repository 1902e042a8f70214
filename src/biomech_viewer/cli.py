"""CLI entrypoint: open one session and print a JSON summary."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Sequence

from .config import ViewerConfig, default_viewer_config, resolve_data_dir
from .cursor import ManualFrameScheduler
from .session_view import SessionView
from .store import SeriesStore, load_frame_store

logger = logging.getLogger("biomech_viewer")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "WARNING") -> None:
    """Attach a single stream handler to the package logger."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    stream = logging.StreamHandler()
    stream.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(stream)
    logger.setLevel(level.upper())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Summarize one recorded biomechanics session.")
    parser.add_argument("--session", required=True, help="Session identifier.")
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory of <table>.json record files (default: auto-resolve from project config).",
    )
    parser.add_argument(
        "--metrics",
        default="",
        help="Comma-separated metrics to select (default: first metric in the session).",
    )
    parser.add_argument("--at-ms", type=float, default=0.0, help="Cursor time for card values.")
    parser.add_argument("--smooth", action="store_true", help="Report smoothed chart values.")
    parser.add_argument("--log-level", default=None, help="Override the configured log level.")
    return parser


def build_store(config: ViewerConfig, data_dir: str | None = None) -> SeriesStore:
    tables = config.tables.to_table_names()
    if config.store.backend == "supabase" and data_dir is None:
        from .supabase_store import SupabaseStore

        return SupabaseStore.connect(
            config.store.supabase_url or "",
            config.store.supabase_key or "",
            tables=tables,
        )
    return load_frame_store(resolve_data_dir(data_dir), tables=tables)


async def summarize(
    view: SessionView, session_id: str, metrics: Sequence[str], at_ms: float
) -> dict[str, Any]:
    await view.open_session(session_id, metrics)
    view.scrub(at_ms)

    lines = view.chart_lines()
    stats = view.phase_stats()
    return {
        "session_id": session_id,
        "layout": view.catalog.layout,
        "auto_level": view.catalog.auto_level,
        "metrics": list(view.catalog.metrics),
        "selected": list(view.selection.selected),
        "max_ms": view.max_ms,
        "cursor_ms": view.cursor.time_ms,
        "cards": [
            {"metric": card.metric, "label": card.label, "value": card.value}
            for card in view.cards()
        ],
        "chart": [
            {"metric": line.metric, "points": int(len(line.x)), "smoothed": view.smooth_on}
            for line in lines
        ],
        "phase_stats": json.loads(stats.to_json(orient="records")),
    }


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = default_viewer_config()
    configure_logging(args.log_level or config.runtime.log_level)

    store = build_store(config, args.data_dir)
    view = SessionView(store, display=config.display, scheduler=ManualFrameScheduler())
    view.smooth_on = args.smooth or config.display.smooth_by_default
    metrics = [m.strip() for m in args.metrics.split(",") if m.strip()]

    summary = asyncio.run(summarize(view, args.session, metrics, args.at_ms))
    view.close()
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
