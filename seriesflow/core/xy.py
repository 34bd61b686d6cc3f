# seriesflow/core/xy.py
from __future__ import annotations

import math

import numpy as np

from .exceptions import AxisMisalignment
from .store import SeriesStore
from .windowing import Window, center_time, seek_start

_EPS = np.finfo(np.float64).eps


class XYSeries:
    """
    Scatter curve pairing the values of an X series with those of a Y series.

    Both series must share the same time axis: the point at index i of X and
    the point at index i of Y are paired only if their times match within
    machine epsilon. The pairing is cached and rebuilt by `update_cache()`.

    When a time window is set, only the points inside
    [reference - prev_seconds, reference + next_seconds] are cached, where the
    reference is the tracker time, or (before any tracker time is known) the
    midpoint of the Y series' time span.
    """

    def __init__(
        self,
        x_name: str,
        y_name: str,
        store: SeriesStore,
        *,
        name: str | None = None,
        window: Window | None = None,
    ) -> None:
        self.x_name = x_name
        self.y_name = y_name
        self.name = name or f"{x_name};{y_name}"
        self._store = store
        self._window = window
        self._tracker_time: float | None = None
        self._clear_cache()

    def __repr__(self) -> str:
        return f"XYSeries(name={self.name!r}, n={self.size}, windowed={self.is_windowed})"

    # ---- window / tracker ----
    @property
    def window(self) -> Window | None:
        return self._window

    @property
    def is_windowed(self) -> bool:
        return self._window is not None

    def set_time_window(self, window: Window) -> None:
        self._window = window

    def clear_time_window(self) -> None:
        self._window = None

    @property
    def tracker_time(self) -> float | None:
        return self._tracker_time

    def set_tracker_time(self, t: float) -> None:
        self._tracker_time = float(t)

    def reference_time(self) -> float | None:
        if self._tracker_time is not None:
            return self._tracker_time
        return center_time(self._store.numeric(self.y_name))

    # ---- cache ----
    @property
    def size(self) -> int:
        return int(self._cached_x.size)

    def __len__(self) -> int:
        return self.size

    @property
    def points(self) -> list[tuple[float, float]]:
        return list(zip(self._cached_x.tolist(), self._cached_y.tolist()))

    def to_numpy(self) -> tuple[np.ndarray, np.ndarray]:
        return self._cached_x, self._cached_y

    def _clear_cache(self) -> None:
        self._cached_t = np.empty(0, dtype=np.float64)
        self._cached_x = np.empty(0, dtype=np.float64)
        self._cached_y = np.empty(0, dtype=np.float64)

    def update_cache(self) -> bool:
        """
        Rebuild the cached (x, y) pairs. Returns True if the cache holds points.

        Raises AxisMisalignment if X and Y disagree on the time of an index that
        was inspected; the cache is left empty in that case.
        """
        self._clear_cache()

        x_series = self._store.numeric(self.x_name)
        y_series = self._store.numeric(self.y_name)
        size = min(x_series.n, y_series.n)
        if size == 0:
            return False

        t_low, t_high = -math.inf, math.inf
        start = 0
        if self._window is not None:
            reference = self.reference_time()
            if reference is None:
                return False
            t_low, t_high = self._window.bounds(reference)
            start = min(seek_start(x_series, t_low), size)

        tx = x_series.time[start:size]
        ty = y_series.time[start:size]
        stop = int(np.searchsorted(tx, t_high, side="right"))

        # the point that ends the scan is inspected too
        checked = min(stop + 1, tx.size)
        if np.any(np.abs(tx[:checked] - ty[:checked]) > _EPS):
            raise AxisMisalignment(
                f"X '{self.x_name}' and Y '{self.y_name}' don't share the same time axis"
            )

        keep = tx[:stop] >= t_low
        self._cached_t = tx[:stop][keep].copy()
        self._cached_x = x_series.values[start:start + stop][keep].copy()
        self._cached_y = y_series.values[start:start + stop][keep].copy()
        return self.size > 0

    # ---- queries ----
    def sample_from_time(self, t: float) -> tuple[float, float] | None:
        """Cached (x, y) pair whose time is nearest to `t`."""
        if self.size == 0:
            return None
        times = self._cached_t
        index = int(np.searchsorted(times, t, side="left"))
        if index >= times.size:
            index = times.size - 1
        elif index > 0 and abs(t - times[index - 1]) < abs(t - times[index]):
            index -= 1
        return float(self._cached_x[index]), float(self._cached_y[index])

    def range_x(self) -> tuple[float, float] | None:
        if self.size == 0:
            return None
        return float(np.nanmin(self._cached_x)), float(np.nanmax(self._cached_x))

    def range_y(self) -> tuple[float, float] | None:
        if self.size == 0:
            return None
        return float(np.nanmin(self._cached_y)), float(np.nanmax(self._cached_y))

    def source_names(self) -> tuple[str, str]:
        return self.x_name, self.y_name
