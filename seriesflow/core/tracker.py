# seriesflow/core/tracker.py
"""
Tracker controller: the shared time cursor.

Every tracker move recomputes what depends on tracker time (reactive
transforms and the static transforms fed by them, windowed XY curves,
transformed curves carrying a time window),
notifies redraw listeners, publishes the new time and restarts a short settle
timer. Settle listeners hear about a burst of moves once, after it ends.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Iterable

from .curves import Curve, curve_name, refresh_reactive, refresh_static, source_names
from .graph import TransformFailure, TransformGraph
from .store import SeriesStore
from .timers import DelayedCallback

logger = logging.getLogger(__name__)

_DEFAULT_RANGE = (0.0, 1.0)


@dataclass(frozen=True, slots=True)
class UpdateReport:
    tracker_time: float
    updated: tuple[str, ...] = ()
    failures: tuple[TransformFailure, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failures


class TrackerController:
    def __init__(
        self,
        store: SeriesStore,
        graph: TransformGraph,
        *,
        settle_delay: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._graph = graph
        self._curves: dict[str, Curve] = {}
        self._time = 0.0
        self._range = _DEFAULT_RANGE
        self._publishers: list = []
        self._redraw_listeners: list[Callable[[UpdateReport], None]] = []
        self._settle_listeners: list[Callable[[float], None]] = []
        self._settle = DelayedCallback(settle_delay, self._on_settled, clock=clock)

    # ---- plotted curves ----
    def add_curve(self, curve: Curve) -> None:
        self._curves[curve_name(curve)] = curve

    def remove_curve(self, name: str) -> bool:
        return self._curves.pop(name, None) is not None

    def get_curve(self, name: str) -> Curve:
        return self._curves[name]

    def curves(self) -> list[Curve]:
        return list(self._curves.values())

    def clear_curves(self) -> None:
        self._curves.clear()

    def remove_curves_reading(self, names: Iterable[str]) -> list[str]:
        """Drop every curve reading from one of `names`; returns the dropped curve names."""
        names = set(names)
        dropped = [
            name
            for name, curve in self._curves.items()
            if name in names or names.intersection(source_names(curve))
        ]
        for name in dropped:
            del self._curves[name]
        return dropped

    # ---- range ----
    def visible_range(self) -> tuple[float, float]:
        """
        Time span of the plotted curves' sources.

        Falls back to every numeric series when nothing plotted has data,
        then to [0, 1].
        """
        plotted = {name for curve in self._curves.values() for name in source_names(curve)}
        bounds = self._store.time_bounds(plotted) if plotted else None
        if bounds is None:
            bounds = self._store.time_bounds()
        if bounds is None:
            return _DEFAULT_RANGE
        return bounds[0], bounds[1]

    def update_range(self) -> tuple[float, float]:
        self._range = self.visible_range()
        self._time = self.clamp(self._time)
        return self._range

    @property
    def range(self) -> tuple[float, float]:
        return self._range

    def clamp(self, t: float) -> float:
        low, high = self._range
        return min(max(t, low), high)

    # ---- tracker ----
    @property
    def tracker_time(self) -> float:
        return self._time

    def set_tracker_time(self, t: float, *, publish: bool = True) -> UpdateReport:
        t = float(t)
        if math.isnan(t):
            raise ValueError("tracker time can't be NaN")
        self._time = self.clamp(t)
        report = self.update_reactive()
        for listener in list(self._redraw_listeners):
            listener(report)
        if publish:
            self._publish("update_state", self._time)
        self._settle.trigger(restart=True)
        return report

    def update_reactive(self) -> UpdateReport:
        """Recompute everything that depends on the current tracker time."""
        t = self._time
        evaluation = self._graph.evaluate_reactive(self._store, t)
        updated = list(evaluation.updated)
        failures = list(evaluation.failures)
        rebuilt = set(evaluation.evaluated)

        for curve in list(self._curves.values()):
            try:
                if refresh_reactive(curve, t):
                    updated.append(curve_name(curve))
                elif rebuilt.intersection(source_names(curve)) and refresh_static(curve):
                    updated.append(curve_name(curve))
            except Exception as e:
                logger.warning("curve '%s' could not follow the tracker: %s", curve_name(curve), e)
                failures.append(TransformFailure(curve_name(curve), e))

        return UpdateReport(tracker_time=t, updated=tuple(updated), failures=tuple(failures))

    # ---- listeners / publishers ----
    def add_redraw_listener(self, callback: Callable[[UpdateReport], None]) -> None:
        self._redraw_listeners.append(callback)

    def add_settle_listener(self, callback: Callable[[float], None]) -> None:
        self._settle_listeners.append(callback)

    def add_publisher(self, publisher) -> None:
        self._publishers.append(publisher)

    def remove_publisher(self, publisher) -> None:
        self._publishers.remove(publisher)

    def publishers(self) -> list:
        return list(self._publishers)

    def play(self, t: float) -> None:
        self._publish("play", t)

    def _publish(self, method: str, t: float) -> None:
        for publisher in list(self._publishers):
            if not getattr(publisher, "enabled", True):
                continue
            try:
                getattr(publisher, method)(t)
            except Exception:
                logger.exception("state publisher %r failed in %s()", publisher, method)

    # ---- settle ----
    @property
    def settle_pending(self) -> bool:
        return self._settle.pending

    def poll(self) -> bool:
        return self._settle.poll()

    def _on_settled(self) -> None:
        for listener in list(self._settle_listeners):
            listener(self._time)
