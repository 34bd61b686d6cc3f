# seriesflow/core/transforms.py
"""
Transforms: named functions producing one destination series from sources.

- SisoTransform: single input, single output, computed incrementally from
  the first source point not yet processed. Built-ins are registered in a
  small factory (`registered_transforms()`, `create_transform()`).
- TimeWindowTransform: reactive SISO transform keeping only the points
  around the tracker time; rebuilt from scratch on each call.
- CustomFunction: user snippet called per point of a linked source, with
  additional sources sampled at the nearest time.
- ReactiveFunction: user snippet called with the tracker time; rebuilds its
  destination on every tracker move.

Every transform computes into local buffers and commits to its destination
at the end, so a failure leaves the previous output untouched.
"""
from __future__ import annotations

import itertools
import logging
import math
import textwrap
from typing import Any, Callable, ClassVar, Iterable, Mapping

import numpy as np

from .exceptions import InvalidTransform, SeriesNotFound
from .series import Series
from .store import SeriesStore
from .windowing import Window, window_range

logger = logging.getLogger(__name__)

_order_counter = itertools.count()
_REGISTRY: dict[str, type["Transform"]] = {}


def register_transform(cls: type["Transform"]) -> type["Transform"]:
    _REGISTRY[cls.type_name] = cls
    return cls


class Transform:
    """
    Base class of all transforms. Identity is the destination name.

    `order` only breaks ties between transforms that don't depend on each
    other; when omitted it follows creation order.
    """

    type_name: ClassVar[str] = "transform"
    reactive: ClassVar[bool] = False

    def __init__(
        self,
        destination: str,
        sources: Iterable[str] = (),
        *,
        order: int | None = None,
        parameters: Mapping[str, Any] | None = None,
    ) -> None:
        if not isinstance(destination, str) or not destination.strip():
            raise InvalidTransform("Transform.destination must be a non-empty string.")
        sources = tuple(sources)
        for source in sources:
            if not isinstance(source, str) or not source.strip():
                raise InvalidTransform(f"Transform '{destination}' has an invalid source name {source!r}.")

        self.destination = destination
        self.sources = sources
        self.order = next(_order_counter) if order is None else int(order)
        self.parameters: dict[str, Any] = dict(parameters or {})
        self._seen_versions: dict[str, int] | None = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(destination={self.destination!r}, sources={self.sources!r})"

    @property
    def name(self) -> str:
        return self.destination

    def dependencies(self) -> tuple[str, ...]:
        return tuple(s for s in self.sources if s != self.destination)

    # ---- change tracking ----
    def _source_versions(self, store: SeriesStore) -> dict[str, int]:
        return {
            name: (store.get(name).version if name in store else -1)
            for name in self.dependencies()
        }

    def needs_update(self, store: SeriesStore) -> bool:
        if self._seen_versions is None:
            return True
        return self._source_versions(store) != self._seen_versions

    def mark_evaluated(self, store: SeriesStore) -> None:
        self._seen_versions = self._source_versions(store)

    def reset(self) -> None:
        """Forget any incremental state; the next calculation starts from scratch."""
        self._seen_versions = None

    # ---- computation ----
    def calculate(self, store: SeriesStore) -> bool:
        """Update the destination series in `store`. Returns True if points were produced."""
        raise NotImplementedError

    # ---- persistence ----
    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type_name,
            "destination": self.destination,
            "sources": list(self.sources),
            "order": self.order,
            "parameters": dict(self.parameters),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Transform":
        return cls(
            data["destination"],
            data.get("sources", ()),
            order=data.get("order"),
            parameters=data.get("parameters"),
        )


# ---------------------------------------------------------------------------
# Single input / single output
# ---------------------------------------------------------------------------
def _resume_time(
    last: float | None, generation: int | None, src: Series, dst: Series
) -> float | None:
    """
    Source time after which an incremental computation picks up, or None when
    the output must be rebuilt: the destination is empty, or the source was
    cleared or went back in time since the last run.
    """
    if last is None or dst.n == 0 or generation != src.generation:
        return None
    if src.t_end is None or src.t_end < last:
        return None
    return last


class SisoTransform(Transform):
    """Single input, single output transform, computed incrementally."""

    defaults: ClassVar[dict[str, float]] = {}

    def __init__(
        self,
        destination: str,
        source: str,
        *,
        order: int | None = None,
        parameters: Mapping[str, Any] | None = None,
    ) -> None:
        merged = dict(self.defaults)
        for key, value in (parameters or {}).items():
            if key not in self.defaults:
                raise InvalidTransform(f"{type(self).__name__} has no parameter '{key}'.")
            try:
                merged[key] = float(value)
            except (TypeError, ValueError) as e:
                raise InvalidTransform(f"parameter '{key}' must be numeric, got {value!r}") from e
        super().__init__(destination, (source,), order=order, parameters=merged)
        self._last_source_time: float | None = None
        self._source_generation: int | None = None

    @property
    def source(self) -> str:
        return self.sources[0]

    def reset(self) -> None:
        super().reset()
        self._last_source_time = None
        self._source_generation = None

    def calculate(self, store: SeriesStore) -> bool:
        src = store.numeric(self.source)
        dst = store.add_numeric(self.destination)
        return self.apply(src, dst)

    def apply(self, src: Series, dst: Series) -> bool:
        dst.set_maximum_range_x(src.max_range_x)
        if src.n == 0:
            if dst.n > 0:
                dst.clear()
            self._last_source_time = None
            return False

        last = _resume_time(self._last_source_time, self._source_generation, src, dst)
        times, values = src.to_numpy()
        start = 0 if last is None else int(np.searchsorted(times, last, side="right"))
        out_t, out_v = self.compute(times, values, start)

        if last is None and dst.n > 0:
            dst.clear()
        self._last_source_time = float(times[-1])
        self._source_generation = src.generation
        if len(out_t) == 0:
            return False
        dst.extend(out_t, out_v)
        return True

    def compute(self, times: np.ndarray, values: np.ndarray, start: int) -> tuple[np.ndarray, np.ndarray]:
        """Output points for source indices >= start. Default: one call per point."""
        out_t: list[float] = []
        out_v: list[float] = []
        for index in range(start, times.size):
            point = self.calculate_next_point(times, values, index)
            if point is not None:
                out_t.append(point[0])
                out_v.append(point[1])
        return np.asarray(out_t, dtype=np.float64), np.asarray(out_v, dtype=np.float64)

    def calculate_next_point(
        self, times: np.ndarray, values: np.ndarray, index: int
    ) -> tuple[float, float] | None:
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["source"] = self.source
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SisoTransform":
        source = data.get("source") or (data.get("sources") or [None])[0]
        if source is None:
            raise InvalidTransform(f"transform '{data.get('destination')}' has no source")
        return cls(
            data["destination"],
            source,
            order=data.get("order"),
            parameters=data.get("parameters"),
        )


@register_transform
class Derivative(SisoTransform):
    """First derivative, (v[i] - v[i-1]) / (t[i] - t[i-1]) stamped at t[i]."""

    type_name = "derivative"

    def compute(self, times, values, start):
        idx = np.arange(max(start, 1), times.size)
        dt = times[idx] - times[idx - 1]
        ok = dt > 0
        dv = values[idx] - values[idx - 1]
        return times[idx][ok], dv[ok] / dt[ok]


@register_transform
class Scale(SisoTransform):
    type_name = "scale"
    defaults = {"value_scale": 1.0, "value_offset": 0.0, "time_offset": 0.0}

    def compute(self, times, values, start):
        p = self.parameters
        return (
            times[start:] + p["time_offset"],
            values[start:] * p["value_scale"] + p["value_offset"],
        )


@register_transform
class Absolute(SisoTransform):
    type_name = "absolute"

    def compute(self, times, values, start):
        return times[start:], np.abs(values[start:])


@register_transform
class MovingAverage(SisoTransform):
    """Mean of the last `samples` source values (fewer at the beginning)."""

    type_name = "moving_average"
    defaults = {"samples": 10.0}

    def __init__(self, destination, source, *, order=None, parameters=None):
        super().__init__(destination, source, order=order, parameters=parameters)
        if self.parameters["samples"] < 1:
            raise InvalidTransform("moving_average needs at least 1 sample.")

    def compute(self, times, values, start):
        width = int(self.parameters["samples"])
        csum = np.concatenate(([0.0], np.cumsum(values)))
        idx = np.arange(start, times.size)
        low = np.maximum(0, idx - width + 1)
        return times[start:], (csum[idx + 1] - csum[low]) / (idx + 1 - low)


@register_transform
class TimeWindowTransform(SisoTransform):
    """
    Keeps only the source points within [tracker - prev_seconds, tracker + next_seconds].

    Recomputed on every tracker move; the destination is cleared and rebuilt
    each time because either bound may move in both directions.
    """

    type_name = "time_window"
    reactive = True
    defaults = {"prev_seconds": 5.0, "next_seconds": 5.0}

    def __init__(self, destination, source, *, order=None, parameters=None):
        super().__init__(destination, source, order=order, parameters=parameters)
        self.set_values(self.parameters["prev_seconds"], self.parameters["next_seconds"])
        self._tracker_time = 0.0

    @property
    def window(self) -> Window:
        return Window(self.parameters["prev_seconds"], self.parameters["next_seconds"])

    def set_values(self, prev_seconds: float, next_seconds: float) -> None:
        window = Window(prev_seconds, next_seconds)
        self.parameters["prev_seconds"] = window.prev_seconds
        self.parameters["next_seconds"] = window.next_seconds

    @property
    def tracker_time(self) -> float:
        return self._tracker_time

    def set_time_tracker(self, t: float) -> None:
        self._tracker_time = float(t)

    def apply(self, src: Series, dst: Series) -> bool:
        start, end = window_range(src, self.window, self._tracker_time)
        times = src.time[start:end].copy()
        values = src.values[start:end].copy()
        dst.clear()
        dst.set_maximum_range_x(src.max_range_x)
        dst.extend(times, values)
        return end > start


# ---------------------------------------------------------------------------
# User snippets
# ---------------------------------------------------------------------------
def compile_snippet(
    function_code: str,
    arg_names: Iterable[str],
    *,
    global_vars: str = "",
    parameters: Mapping[str, Any] | None = None,
    label: str = "snippet",
) -> Callable[..., Any]:
    """
    Compile a function body into a callable taking `arg_names`.

    `global_vars` runs once, before the body is defined, in the namespace the
    function sees; `math`, `np` and the numeric `parameters` are available.
    """
    if not isinstance(function_code, str) or not function_code.strip():
        raise InvalidTransform(f"{label}: the function body is empty.")

    namespace: dict[str, Any] = {"math": math, "np": np}
    namespace.update(parameters or {})
    header = f"def _snippet({', '.join(arg_names)}):\n"
    body = textwrap.indent(textwrap.dedent(function_code).strip("\n"), "    ")
    try:
        if global_vars and global_vars.strip():
            exec(compile(textwrap.dedent(global_vars), f"<{label}:globals>", "exec"), namespace)
        exec(compile(header + body + "\n", f"<{label}>", "exec"), namespace)
    except Exception as e:
        # syntax errors, or a failing `global_vars` block
        raise InvalidTransform(f"{label}: {e}") from e
    return namespace["_snippet"]


def _points_from_result(result: Any, t: float) -> list[tuple[float, float]]:
    if result is None:
        return []
    if isinstance(result, (int, float, np.number)):
        return [(t, float(result))]
    if isinstance(result, tuple) and len(result) == 2 and not isinstance(result[0], (tuple, list)):
        return [(float(result[0]), float(result[1]))]
    try:
        return [(float(x), float(y)) for x, y in result]
    except (TypeError, ValueError) as e:
        raise InvalidTransform(f"unexpected snippet result {result!r}") from e


class _SnippetTransform(Transform):
    """Shared handling of snippet code vs. plain Python callables."""

    arg_names: ClassVar[tuple[str, ...]] = ()

    def __init__(self, destination, sources, *, function, global_vars="", order=None, parameters=None):
        super().__init__(destination, sources, order=order, parameters=parameters)
        self.global_vars = global_vars or ""
        if isinstance(function, str):
            self.function_code: str | None = function
            self._callable = compile_snippet(
                function,
                self._signature(),
                global_vars=self.global_vars,
                parameters=self.parameters,
                label=destination,
            )
        elif callable(function):
            self.function_code = None
            self._callable = function
        else:
            raise InvalidTransform(f"transform '{destination}' needs a function body or a callable.")

    def _signature(self) -> tuple[str, ...]:
        return self.arg_names

    def to_dict(self) -> dict[str, Any]:
        if self.function_code is None:
            raise InvalidTransform(
                f"transform '{self.destination}' wraps a Python callable and can't be serialized."
            )
        data = super().to_dict()
        data["function"] = self.function_code
        data["global_vars"] = self.global_vars
        return data


@register_transform
class CustomFunction(_SnippetTransform):
    """
    User equation evaluated once per point of `linked_source`.

    The function receives (time, value, v1, ..., vN) where vK is the value of
    the K-th additional source at the point nearest to `time`. It returns a
    number (stamped at `time`), a (time, value) pair, a list of pairs, or None
    to skip the point.
    """

    type_name = "custom_function"

    def __init__(
        self,
        destination: str,
        linked_source: str,
        additional_sources: Iterable[str] = (),
        *,
        function: str | Callable[..., Any],
        global_vars: str = "",
        order: int | None = None,
        parameters: Mapping[str, Any] | None = None,
    ) -> None:
        self.linked_source = linked_source
        self.additional_sources = tuple(additional_sources)
        super().__init__(
            destination,
            (linked_source, *self.additional_sources),
            function=function,
            global_vars=global_vars,
            order=order,
            parameters=parameters,
        )
        self._last_source_time: float | None = None
        self._source_generation: int | None = None

    def _signature(self) -> tuple[str, ...]:
        extra = tuple(f"v{i + 1}" for i in range(len(self.additional_sources)))
        return ("time", "value", *extra)

    def reset(self) -> None:
        super().reset()
        self._last_source_time = None
        self._source_generation = None

    def calculate(self, store: SeriesStore) -> bool:
        src = store.numeric(self.linked_source)
        extras = [store.numeric(name) for name in self.additional_sources]
        dst = store.add_numeric(self.destination)
        dst.set_maximum_range_x(src.max_range_x)
        if src.n == 0:
            if dst.n > 0:
                dst.clear()
            self._last_source_time = None
            return False

        last = _resume_time(self._last_source_time, self._source_generation, src, dst)
        times, values = src.to_numpy()
        start = 0 if last is None else int(np.searchsorted(times, last, side="right"))

        out: list[tuple[float, float]] = []
        for index in range(start, times.size):
            t = float(times[index])
            args = [t, float(values[index])]
            for extra in extras:
                if extra.n == 0:
                    break
                args.append(float(extra.values[extra.index_from_x(t)]))
            else:
                out.extend(_points_from_result(self._callable(*args), t))

        if last is None and dst.n > 0:
            dst.clear()
        self._last_source_time = float(times[-1])
        self._source_generation = src.generation
        if not out:
            return False
        out_t, out_v = zip(*out)
        dst.extend(out_t, out_v)
        return True

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["linked_source"] = self.linked_source
        data["additional_sources"] = list(self.additional_sources)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomFunction":
        if "function" not in data or "linked_source" not in data:
            raise InvalidTransform(f"custom function '{data.get('destination')}' is incomplete")
        return cls(
            data["destination"],
            data["linked_source"],
            data.get("additional_sources", ()),
            function=data["function"],
            global_vars=data.get("global_vars", ""),
            order=data.get("order"),
            parameters=data.get("parameters"),
        )


@register_transform
class ReactiveFunction(_SnippetTransform):
    """
    User function of the tracker time, recomputed on every tracker move.

    The function receives (tracker_time, series), where `series` maps each
    declared source name to its Series, and returns an iterable of (x, y)
    points that fully replace the destination.
    """

    type_name = "reactive_function"
    reactive = True
    arg_names = ("tracker_time", "series")

    def __init__(
        self,
        destination: str,
        sources: Iterable[str] = (),
        *,
        function: str | Callable[..., Any],
        global_vars: str = "",
        order: int | None = None,
        parameters: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(
            destination,
            sources,
            function=function,
            global_vars=global_vars,
            order=order,
            parameters=parameters,
        )
        self._tracker_time = 0.0

    @property
    def tracker_time(self) -> float:
        return self._tracker_time

    def set_time_tracker(self, t: float) -> None:
        self._tracker_time = float(t)

    def calculate(self, store: SeriesStore) -> bool:
        inputs = {}
        for name in self.dependencies():
            if name not in store:
                raise SeriesNotFound(name)
            inputs[name] = store.get(name)

        points = _points_from_result(self._callable(self._tracker_time, inputs), self._tracker_time)
        dst = store.add_numeric(self.destination)
        dst.clear()
        if not points:
            return False
        xs, ys = zip(*points)
        dst.extend(xs, ys)
        return True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReactiveFunction":
        if "function" not in data:
            raise InvalidTransform(f"reactive function '{data.get('destination')}' is incomplete")
        return cls(
            data["destination"],
            data.get("sources", ()),
            function=data["function"],
            global_vars=data.get("global_vars", ""),
            order=data.get("order"),
            parameters=data.get("parameters"),
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------
def registered_transforms() -> list[str]:
    """Names of the single-input transforms that can be applied to a series."""
    return sorted(name for name, cls in _REGISTRY.items() if issubclass(cls, SisoTransform))


def create_transform(
    type_name: str,
    destination: str,
    source: str,
    *,
    order: int | None = None,
    **parameters: float,
) -> SisoTransform:
    cls = _REGISTRY.get(type_name)
    if cls is None or not issubclass(cls, SisoTransform):
        raise InvalidTransform(f"unknown transform '{type_name}'")
    return cls(destination, source, order=order, parameters=parameters)


def transform_from_dict(data: Mapping[str, Any]) -> Transform:
    cls = _REGISTRY.get(data.get("type", ""))
    if cls is None:
        raise InvalidTransform(f"unknown transform type {data.get('type')!r}")
    if "destination" not in data:
        raise InvalidTransform("transform definition has no destination")
    return cls.from_dict(data)
