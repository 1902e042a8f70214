"""Metric selection (chart overlay) and tray (pinned cards) state."""

from __future__ import annotations

from typing import Iterable, Sequence


class SelectionState:
    """Selected metrics plus the tray of pinned cards.

    Selecting a metric pins it to the tray; deselecting only dims its card.
    ``remove`` drops a metric from both. Tray order is user-controlled.
    """

    def __init__(self, initial: Iterable[str] = ()) -> None:
        self._selected: list[str] = []
        self._tray: list[str] = []
        self.reset(initial)

    @property
    def selected(self) -> tuple[str, ...]:
        return tuple(self._selected)

    @property
    def tray(self) -> tuple[str, ...]:
        return tuple(self._tray)

    def reset(self, initial: Iterable[str] = ()) -> None:
        metrics = list(dict.fromkeys(initial))
        self._selected = metrics
        self._tray = list(metrics)

    def is_selected(self, metric: str) -> bool:
        return metric in self._selected

    def is_dimmed(self, metric: str) -> bool:
        return metric in self._tray and metric not in self._selected

    def select(self, metric: str) -> None:
        if metric not in self._selected:
            self._selected.append(metric)
        self._pin(metric)

    def deselect(self, metric: str) -> None:
        if metric in self._selected:
            self._selected.remove(metric)

    def toggle(self, metric: str) -> bool:
        """Flip selection; returns the new selected flag."""
        if metric in self._selected:
            self.deselect(metric)
            return False
        self.select(metric)
        return True

    def set_selected(self, metrics: Iterable[str]) -> None:
        """Replace the selection (e.g. from a multi-select list)."""
        self._selected = list(dict.fromkeys(metrics))
        for metric in self._selected:
            self._pin(metric)

    def remove(self, metric: str) -> None:
        if metric in self._selected:
            self._selected.remove(metric)
        if metric in self._tray:
            self._tray.remove(metric)

    def move(self, from_index: int, to_index: int) -> None:
        """Array-move a tray item; items in between shift by one."""
        if not (0 <= from_index < len(self._tray)):
            raise IndexError(f"tray index out of range: {from_index}")
        if not (0 <= to_index < len(self._tray)):
            raise IndexError(f"tray index out of range: {to_index}")
        if from_index == to_index:
            return
        metric = self._tray.pop(from_index)
        self._tray.insert(to_index, metric)

    def _pin(self, metric: str) -> None:
        if metric not in self._tray:
            self._tray.append(metric)


def initial_selection(available: Sequence[str], requested: Iterable[str] = ()) -> list[str]:
    """Requested metrics that exist, otherwise the first available metric."""
    known = set(available)
    chosen = [metric for metric in dict.fromkeys(requested) if metric in known]
    if chosen:
        return chosen
    return list(available[:1])


def filter_metrics(metrics: Iterable[str], query: str) -> list[str]:
    """Case-insensitive substring search over metric names."""
    needle = query.strip().lower()
    if not needle:
        return list(metrics)
    return [metric for metric in metrics if needle in metric.lower()]
