# seriesflow/core/series.py
from __future__ import annotations

import enum
import math
from typing import Any, Iterable, Iterator

import numpy as np

from .exceptions import InvalidSeries, SeriesKindMismatch
from .metadata import SeriesMeta


class SeriesKind(enum.Enum):
    """Value kind held by a series. Each kind lives in its own store mapping."""

    NUMERIC = "numeric"
    STRING = "string"
    USER_DEFINED = "user_defined"

    @property
    def dtype(self) -> type:
        return np.float64 if self is SeriesKind.NUMERIC else object


_MIN_CAPACITY = 16


class Series:
    """
    Mutable, named time series: non-decreasing time vector + values vector.

    Points live in a pair of numpy buffers; the valid region is
    ``[_start, _stop)`` so that trimming the front (retention eviction) is O(1).
    ``time`` and ``values`` return views into that region: don't keep them
    across mutations.

    Every mutation bumps ``version``, which derived computations use to tell
    whether their inputs changed since they last ran.
    ``clear()`` also bumps ``generation``: incremental consumers compare it to
    tell a rebuilt series from one that only grew.
    """

    __slots__ = (
        "_name",
        "_kind",
        "meta",
        "_time",
        "_values",
        "_start",
        "_stop",
        "_max_range_x",
        "_version",
        "_generation",
    )

    def __init__(
        self,
        name: str,
        kind: SeriesKind = SeriesKind.NUMERIC,
        meta: SeriesMeta | None = None,
    ) -> None:
        if not isinstance(name, str) or not name.strip():
            raise InvalidSeries("Series.name must be a non-empty string.")
        if not isinstance(kind, SeriesKind):
            raise InvalidSeries("Series.kind must be a SeriesKind.")
        if meta is None:
            meta = SeriesMeta()
        elif not isinstance(meta, SeriesMeta):
            raise InvalidSeries("Series.meta must be a SeriesMeta instance.")

        self._name = name
        self._kind = kind
        self.meta = meta
        self._time = np.empty(_MIN_CAPACITY, dtype=np.float64)
        self._values = np.empty(_MIN_CAPACITY, dtype=kind.dtype)
        self._start = 0
        self._stop = 0
        self._max_range_x = math.inf
        self._version = 0
        self._generation = 0

    def __repr__(self) -> str:
        return f"Series(name={self._name!r}, kind={self._kind.value}, n={self.n})"

    # ---- identity / metadata ----
    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> SeriesKind:
        return self._kind

    @property
    def group(self) -> str | None:
        return self.meta.group

    @property
    def version(self) -> int:
        return self._version

    @property
    def generation(self) -> int:
        """Number of times the series was cleared; appended points never change it."""
        return self._generation

    # ---- data access ----
    @property
    def time(self) -> np.ndarray:
        return self._time[self._start:self._stop]

    @property
    def values(self) -> np.ndarray:
        return self._values[self._start:self._stop]

    @property
    def n(self) -> int:
        return self._stop - self._start

    def __len__(self) -> int:
        return self.n

    def __iter__(self) -> Iterator[tuple[float, Any]]:
        for i in range(self._start, self._stop):
            yield float(self._time[i]), self._values[i]

    @property
    def t_start(self) -> float | None:
        return None if self.n == 0 else float(self._time[self._start])

    @property
    def t_end(self) -> float | None:
        return None if self.n == 0 else float(self._time[self._stop - 1])

    def at(self, index: int) -> tuple[float, Any]:
        if index < 0:
            index += self.n
        if not 0 <= index < self.n:
            raise IndexError(f"index {index} out of range for series '{self._name}' of size {self.n}")
        i = self._start + index
        value = self._values[i]
        if self._kind is SeriesKind.NUMERIC:
            value = float(value)
        return float(self._time[i]), value

    def front(self) -> tuple[float, Any]:
        return self.at(0)

    def back(self) -> tuple[float, Any]:
        return self.at(-1)

    def index_from_x(self, x: float) -> int:
        """
        Index of the point nearest to time `x`, or -1 if the series is empty.

        Exact matches resolve to the first point with that time; otherwise the
        earlier neighbour wins only when it is strictly closer.
        """
        n = self.n
        if n == 0:
            return -1
        times = self.time
        index = int(np.searchsorted(times, x, side="left"))
        if index >= n:
            return n - 1
        if index > 0 and abs(x - times[index - 1]) < abs(x - times[index]):
            index -= 1
        return index

    def range_x(self) -> tuple[float, float] | None:
        if self.n == 0:
            return None
        return float(self._time[self._start]), float(self._time[self._stop - 1])

    def range_y(self) -> tuple[float, float] | None:
        if self._kind is not SeriesKind.NUMERIC:
            raise SeriesKindMismatch(f"Series '{self._name}' is not numeric; it has no Y range.")
        if self.n == 0:
            return None
        v = self.values
        if np.isnan(v).all():
            return None
        return float(np.nanmin(v)), float(np.nanmax(v))

    def to_numpy(self, *, copy: bool = False) -> tuple[np.ndarray, np.ndarray]:
        if copy:
            return self.time.copy(), self.values.copy()
        return self.time, self.values

    # ---- retention ----
    @property
    def max_range_x(self) -> float:
        return self._max_range_x

    def set_maximum_range_x(self, max_range: float) -> None:
        """Set the retention horizon; ``math.inf`` disables eviction."""
        max_range = float(max_range)
        if math.isnan(max_range) or max_range < 0:
            raise InvalidSeries(f"maximum range must be a non-negative number, got {max_range}")
        self._max_range_x = max_range
        if self._evict():
            self._version += 1

    def _evict(self) -> bool:
        if math.isinf(self._max_range_x) or self.n == 0:
            return False
        cutoff = self._time[self._stop - 1] - self._max_range_x
        first = int(np.searchsorted(self.time, cutoff, side="left"))
        if first == 0:
            return False
        self._drop_front(first)
        return True

    # ---- mutation ----
    def push_back(self, t: float, value: Any) -> None:
        """Append one point. A point older than the last one is inserted at its sorted position."""
        t = float(t)
        if not math.isfinite(t):
            raise InvalidSeries(f"time must be finite, got {t}")
        value = self._coerce(value)

        if self.n == 0 or t >= self._time[self._stop - 1]:
            self._reserve(1)
            self._time[self._stop] = t
            self._values[self._stop] = value
        else:
            offset = int(np.searchsorted(self.time, t, side="right"))
            self._reserve(1)
            pos = self._start + offset
            self._time[pos + 1:self._stop + 1] = self._time[pos:self._stop]
            self._values[pos + 1:self._stop + 1] = self._values[pos:self._stop]
            self._time[pos] = t
            self._values[pos] = value
        self._stop += 1
        self._version += 1
        self._evict()

    def extend(self, times: Iterable[float], values: Iterable[Any]) -> int:
        """Append many points at once; returns the number of points added."""
        t = np.asarray(times, dtype=np.float64)
        if t.ndim != 1:
            raise InvalidSeries(f"`times` must be 1D, got shape {t.shape}")
        v = self._coerce_many(values, t.size)

        if t.size == 0:
            return 0
        if not np.isfinite(t).all():
            raise InvalidSeries("`times` contains non-finite values (NaN/Inf).")

        in_order = bool(np.all(np.diff(t) >= 0)) and (
            self.n == 0 or t[0] >= self._time[self._stop - 1]
        )
        if in_order:
            self._reserve(t.size)
            self._time[self._stop:self._stop + t.size] = t
            self._values[self._stop:self._stop + t.size] = v
            self._stop += t.size
        else:
            all_t = np.concatenate([self.time, t])
            all_v = np.concatenate([self.values, v])
            order = np.argsort(all_t, kind="stable")
            self._reset_buffers(all_t[order], all_v[order])

        self._version += 1
        self._evict()
        return int(t.size)

    def clear(self) -> None:
        self._time = np.empty(_MIN_CAPACITY, dtype=np.float64)
        self._values = np.empty(_MIN_CAPACITY, dtype=self._kind.dtype)
        self._start = 0
        self._stop = 0
        self._version += 1
        self._generation += 1

    # ---- internals ----
    def _coerce(self, value: Any) -> Any:
        if self._kind is SeriesKind.NUMERIC:
            try:
                return float(value)
            except (TypeError, ValueError) as e:
                raise SeriesKindMismatch(
                    f"Series '{self._name}' is numeric; got non-numeric value {value!r}"
                ) from e
        if self._kind is SeriesKind.STRING:
            if isinstance(value, bytes):
                return value.decode("utf-8", errors="replace")
            return str(value)
        return value

    def _coerce_many(self, values: Iterable[Any], expected: int) -> np.ndarray:
        if self._kind is SeriesKind.NUMERIC:
            try:
                v = np.asarray(values, dtype=np.float64)
            except (TypeError, ValueError) as e:
                raise SeriesKindMismatch(
                    f"Series '{self._name}' is numeric; got non-numeric values"
                ) from e
            if v.ndim != 1:
                raise InvalidSeries(f"`values` must be 1D, got shape {v.shape}")
        else:
            items = list(values)
            v = np.empty(len(items), dtype=object)
            for i, item in enumerate(items):
                v[i] = self._coerce(item)
        if v.size != expected:
            raise InvalidSeries(
                f"`times` and `values` must have same length, got {expected} vs {v.size}"
            )
        return v

    def _reserve(self, extra: int) -> None:
        capacity = self._time.size
        if self._stop + extra <= capacity:
            return
        required = self.n + extra
        new_capacity = max(_MIN_CAPACITY, capacity)
        while new_capacity < 2 * required:
            new_capacity *= 2
        self._reset_buffers(self.time, self.values, capacity=new_capacity)

    def _reset_buffers(self, t: np.ndarray, v: np.ndarray, *, capacity: int | None = None) -> None:
        size = t.size
        if capacity is None:
            capacity = max(_MIN_CAPACITY, 2 * size)
        new_time = np.empty(capacity, dtype=np.float64)
        new_values = np.empty(capacity, dtype=self._kind.dtype)
        new_time[:size] = t
        new_values[:size] = v
        self._time = new_time
        self._values = new_values
        self._start = 0
        self._stop = size

    def _drop_front(self, count: int) -> None:
        count = min(count, self.n)
        if self._kind is not SeriesKind.NUMERIC:
            # release references held by the evicted slots
            self._values[self._start:self._start + count] = None
        self._start += count
