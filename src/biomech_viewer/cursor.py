"""Cursor state and frame-coalesced hover tracking."""

from __future__ import annotations

import asyncio
from enum import Enum
import logging
import math
from typing import Any, Callable, Mapping, Protocol, Sequence

from .constants import DEFAULT_FRAME_INTERVAL_S, MS_PER_SECOND
from .series import PointSeries
from .signals import values_at

logger = logging.getLogger(__name__)

FrameCallback = Callable[[], None]


class FrameScheduler(Protocol):
    """Runs a callback on the next frame; handles can be cancelled."""

    def request(self, callback: FrameCallback) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class ManualFrameScheduler:
    """Frame scheduler driven by explicit ``tick()`` calls."""

    def __init__(self) -> None:
        self._next_handle = 0
        self._pending: dict[int, FrameCallback] = {}

    def request(self, callback: FrameCallback) -> int:
        self._next_handle += 1
        self._pending[self._next_handle] = callback
        return self._next_handle

    def cancel(self, handle: Any) -> None:
        self._pending.pop(handle, None)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def tick(self) -> int:
        """Run every callback queued before this tick; returns how many ran."""
        due = list(self._pending.items())
        self._pending.clear()
        for _, callback in due:
            callback()
        return len(due)


class AsyncioFrameScheduler:
    """Frame scheduler on an asyncio loop at a fixed frame interval."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        *,
        frame_interval_s: float = DEFAULT_FRAME_INTERVAL_S,
    ) -> None:
        if frame_interval_s <= 0:
            raise ValueError("frame_interval_s must be > 0")
        self._loop = loop
        self.frame_interval_s = frame_interval_s

    def request(self, callback: FrameCallback) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(self.frame_interval_s, callback)

    def cancel(self, handle: Any) -> None:
        if handle is not None:
            handle.cancel()


class CursorMode(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"


class CursorController:
    """Owns the cursor time for one session view.

    Hover events are coalesced: at most one update lands per frame and only
    the most recent hover of a burst is applied. Slider assignments and
    resets apply immediately and cancel any pending hover update.
    """

    def __init__(self, scheduler: FrameScheduler, *, max_ms: int = 0) -> None:
        self.scheduler = scheduler
        self.mode = CursorMode.IDLE
        self._max_ms = max(0, int(max_ms))
        self._time_ms = 0
        self._pending_handle: Any = None
        self._pending_ms: int | None = None
        self._listeners: list[Callable[[int], None]] = []

    @property
    def time_ms(self) -> int:
        return self._time_ms

    @property
    def max_ms(self) -> int:
        return self._max_ms

    @property
    def has_pending_update(self) -> bool:
        return self._pending_handle is not None

    def subscribe(self, listener: Callable[[int], None]) -> Callable[[], None]:
        """Call ``listener(time_ms)`` after every applied change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_max(self, max_ms: int) -> None:
        """Update the upper bound and re-clamp the current time."""
        self._max_ms = max(0, int(max_ms))
        clamped = self.clamp(self._time_ms)
        if clamped != self._time_ms:
            self._apply(clamped)

    def clamp(self, time_ms: float) -> int:
        return int(min(max(0, time_ms), self._max_ms))

    def hover(self, x_seconds: float | None) -> bool:
        """Queue a hover update from chart x (seconds). Returns False if rejected."""
        if x_seconds is None:
            return False
        try:
            x = float(x_seconds)
        except (TypeError, ValueError):
            return False
        if not math.isfinite(x):
            return False

        self.mode = CursorMode.TRACKING
        self._pending_ms = self.clamp(round(x * MS_PER_SECOND))
        if self._pending_handle is None:
            try:
                self._pending_handle = self.scheduler.request(self._flush)
            except RuntimeError as exc:
                # No running event loop to schedule on.
                logger.info("Frame scheduling unavailable (%s); applying hover immediately", exc)
                self._flush()
        return True

    def scrub(self, time_ms: float) -> None:
        """Direct assignment from the slider; overrides any pending hover."""
        self._cancel_pending()
        self.mode = CursorMode.IDLE
        self._apply(self.clamp(time_ms))

    def reset(self, max_ms: int = 0) -> None:
        """Session change: cancel pending work, move to 0, and rebound."""
        self._cancel_pending()
        self.mode = CursorMode.IDLE
        self._max_ms = max(0, int(max_ms))
        self._apply(0)

    def close(self) -> None:
        self._cancel_pending()
        self._listeners.clear()

    def sample(
        self,
        series_map: Mapping[str, PointSeries],
        metrics: Sequence[str] | None = None,
    ) -> dict[str, float | None]:
        """Interpolated values of the given metrics at the current cursor."""
        return values_at(series_map, self._time_ms, metrics)

    def _flush(self) -> None:
        pending = self._pending_ms
        self._pending_handle = None
        self._pending_ms = None
        if pending is None:
            return
        self._apply(self.clamp(pending))

    def _cancel_pending(self) -> None:
        if self._pending_handle is not None:
            self.scheduler.cancel(self._pending_handle)
        self._pending_handle = None
        self._pending_ms = None

    def _apply(self, time_ms: int) -> None:
        changed = time_ms != self._time_ms
        self._time_ms = time_ms
        if not changed:
            return
        logger.debug("Cursor moved to %d ms (%s)", time_ms, self.mode.value)
        for listener in list(self._listeners):
            listener(time_ms)
