# seriesflow/core/windowing.py
"""
Time windowing over monotonic series.

A window is a pair (prev_seconds, next_seconds) applied around a reference
time t: the interval [t - prev_seconds, t + next_seconds]. Lookups seek the
lower bound with a binary search and only then walk forward, so the cost does
not depend on how many points lie before the window.
"""
from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .exceptions import InvalidWindow
from .series import Series


@dataclass(frozen=True, slots=True)
class Window:
    prev_seconds: float = 5.0
    next_seconds: float = 5.0

    def __post_init__(self) -> None:
        for label, value in (("prev_seconds", self.prev_seconds), ("next_seconds", self.next_seconds)):
            if not isinstance(value, (int, float)) or math.isnan(value) or value < 0:
                raise InvalidWindow(f"Window.{label} must be a non-negative number, got {value!r}")
        object.__setattr__(self, "prev_seconds", float(self.prev_seconds))
        object.__setattr__(self, "next_seconds", float(self.next_seconds))

    def bounds(self, t: float) -> tuple[float, float]:
        return t - self.prev_seconds, t + self.next_seconds

    def to_dict(self) -> dict[str, float]:
        return {"prev_seconds": self.prev_seconds, "next_seconds": self.next_seconds}

    @classmethod
    def from_dict(cls, data: dict) -> "Window":
        return cls(
            prev_seconds=float(data.get("prev_seconds", 5.0)),
            next_seconds=float(data.get("next_seconds", 5.0)),
        )


def seek_start(series: Series, t_low: float) -> int:
    """
    Index from which a forward scan for points >= t_low may begin.

    `index_from_x` returns the nearest point, which can lie after the first
    in-window point; stepping back one index guarantees none is missed.
    """
    hint = series.index_from_x(t_low)
    return hint - 1 if hint > 1 else 0


def index_range(series: Series, t_low: float, t_high: float) -> tuple[int, int]:
    """
    Half-open index range [start, end) of the points with t_low <= time <= t_high.

    An empty series, an inverted interval or a window outside the series
    bounds all give an empty range (start == end).
    """
    n = series.n
    if n == 0 or t_low > t_high:
        return 0, 0

    times = series.time
    start = seek_start(series, t_low)
    while start < n and times[start] < t_low:
        start += 1
    if start >= n or times[start] > t_high:
        return start, start

    # times are non-decreasing: the forward scan stops at the first point past t_high
    end = start + int(np.searchsorted(times[start:], t_high, side="right"))
    return start, end


def window_range(series: Series, window: Window, t: float) -> tuple[int, int]:
    t_low, t_high = window.bounds(t)
    return index_range(series, t_low, t_high)


def center_time(series: Series) -> float | None:
    """Midpoint of the series' own time span (used as preview reference time)."""
    bounds = series.range_x()
    if bounds is None:
        return None
    return (bounds[0] + bounds[1]) * 0.5
