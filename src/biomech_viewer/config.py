"""Centralized viewer configuration and project root resolution."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
import tomllib
from typing import Any, Literal

from omegaconf import OmegaConf
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (
    DEFAULT_FRAME_INTERVAL_S,
    DEFAULT_SLIDER_STEP_MS,
    DEFAULT_SMOOTHING_RADIUS,
    METRICS_META_TABLE,
    PHASES_TABLE,
    SERIES_LOD_JSON_TABLE,
    SERIES_LOD_TABLE,
    TIMESERIES_LOD_TABLE,
)
from .store import TableNames

DEFAULT_DATA_DIR = "data"
DEFAULT_CONFIG_FILE = "config/biomech_viewer.yaml"
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class StoreSettings(BaseModel):
    """Which data-store collaborator to talk to and where it lives."""

    backend: Literal["frames", "supabase"] = "frames"
    data_dir: str = DEFAULT_DATA_DIR
    supabase_url: str | None = None
    supabase_key: str | None = None

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("data_dir")
    @classmethod
    def _non_empty_path(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("data_dir must not be empty")
        return cleaned


class TableSettings(BaseModel):
    """Collaborator table names."""

    series_lod: str = SERIES_LOD_TABLE
    series_lod_json: str = SERIES_LOD_JSON_TABLE
    timeseries_lod: str = TIMESERIES_LOD_TABLE
    phases: str = PHASES_TABLE
    metrics_meta: str = METRICS_META_TABLE

    def to_table_names(self) -> TableNames:
        return TableNames(**self.model_dump())


class DisplaySettings(BaseModel):
    """Chart and cursor behavior."""

    smoothing_radius: int = Field(default=DEFAULT_SMOOTHING_RADIUS, ge=0)
    smooth_by_default: bool = False
    slider_step_ms: int = Field(default=DEFAULT_SLIDER_STEP_MS, gt=0)
    frame_interval_s: float = Field(default=DEFAULT_FRAME_INTERVAL_S, gt=0)


class RuntimeSettings(BaseModel):
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        upper = value.strip().upper()
        if upper not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVELS)}")
        return upper


class ViewerConfig(BaseModel):
    """Typed configuration model for the session viewer."""

    model_config = ConfigDict(extra="ignore")
    store: StoreSettings = Field(default_factory=StoreSettings)
    tables: TableSettings = Field(default_factory=TableSettings)
    display: DisplaySettings = Field(default_factory=DisplaySettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)


def find_project_root(start: Path | None = None) -> Path:
    """Find the project root by locating `pyproject.toml`."""
    env_root = os.getenv("BIOMECH_VIEWER_PROJECT_ROOT")
    if env_root:
        return _resolve_path(Path(env_root), Path.cwd())

    cursor = (start or Path.cwd()).resolve()
    for candidate in (cursor, *cursor.parents):
        if (candidate / "pyproject.toml").exists():
            return candidate

    module_cursor = Path(__file__).resolve()
    for candidate in (module_cursor, *module_cursor.parents):
        if (candidate / "pyproject.toml").exists():
            return candidate

    raise FileNotFoundError("Could not find project root containing pyproject.toml")


@lru_cache(maxsize=1)
def default_viewer_config() -> ViewerConfig:
    """Load config with OmegaConf merge + Pydantic validation."""
    project_root = find_project_root()
    merged = _load_merged_config(project_root)
    try:
        return ViewerConfig.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid biomech_viewer config: {exc}") from exc


def resolve_data_dir(data_dir: str | Path | None = None) -> Path:
    """Resolve an explicit or configured data directory for the frames store."""
    project_root = find_project_root()
    if data_dir is None:
        data_dir = default_viewer_config().store.data_dir
    return _resolve_path(Path(data_dir), project_root)


def clear_config_cache() -> None:
    """Clear cached config; useful for tests or env-var changes."""
    default_viewer_config.cache_clear()


def _load_merged_config(project_root: Path) -> dict[str, Any]:
    base_cfg = ViewerConfig().model_dump()
    pyproject_cfg = _load_pyproject_config(project_root)

    merged = OmegaConf.merge(
        base_cfg,
        pyproject_cfg,
        _load_file_config(project_root),
        _load_env_overrides(),
    )
    raw = OmegaConf.to_container(merged, resolve=True)
    return raw if isinstance(raw, dict) else {}


def _load_file_config(project_root: Path) -> dict[str, Any]:
    env_path = os.getenv("BIOMECH_VIEWER_CONFIG_FILE")
    if env_path:
        cfg_path = _resolve_path(Path(env_path), project_root)
        if not cfg_path.exists():
            raise FileNotFoundError(
                f"BIOMECH_VIEWER_CONFIG_FILE points to missing file: {cfg_path}"
            )
    else:
        cfg_path = project_root / DEFAULT_CONFIG_FILE
        if not cfg_path.exists():
            return {}

    loaded = OmegaConf.load(cfg_path)
    raw = OmegaConf.to_container(loaded, resolve=True)
    return raw if isinstance(raw, dict) else {}


def _load_env_overrides() -> dict[str, Any]:
    store: dict[str, Any] = {}
    if env_backend := os.getenv("BIOMECH_VIEWER_STORE_BACKEND"):
        store["backend"] = env_backend
    if env_data := os.getenv("BIOMECH_VIEWER_DATA_DIR"):
        store["data_dir"] = env_data
    if env_url := os.getenv("SUPABASE_URL"):
        store["supabase_url"] = env_url
    if env_key := os.getenv("SUPABASE_KEY"):
        store["supabase_key"] = env_key

    display: dict[str, Any] = {}
    if env_radius := os.getenv("BIOMECH_VIEWER_SMOOTHING_RADIUS"):
        display["smoothing_radius"] = _parse_env_int("BIOMECH_VIEWER_SMOOTHING_RADIUS", env_radius)

    runtime: dict[str, Any] = {}
    if env_level := os.getenv("BIOMECH_VIEWER_LOG_LEVEL"):
        runtime["log_level"] = env_level

    overrides: dict[str, Any] = {}
    if store:
        overrides["store"] = store
    if display:
        overrides["display"] = display
    if runtime:
        overrides["runtime"] = runtime
    return overrides


def _resolve_path(path: Path, project_root: Path) -> Path:
    if path.is_absolute():
        return path.expanduser().resolve()
    return (project_root / path).resolve()


def _parse_env_int(name: str, value: str) -> int:
    try:
        return int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _load_pyproject_config(project_root: Path) -> dict[str, Any]:
    pyproject_path = project_root / "pyproject.toml"
    if not pyproject_path.exists():
        return {}

    with pyproject_path.open("rb") as handle:
        pyproject = tomllib.load(handle)

    tool_cfg = pyproject.get("tool", {})
    viewer_cfg = tool_cfg.get("biomech_viewer", {})
    return viewer_cfg if isinstance(viewer_cfg, dict) else {}
