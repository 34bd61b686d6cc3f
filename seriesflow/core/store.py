# seriesflow/core/store.py
from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Iterable, Iterator

from .exceptions import InvalidSeries, SeriesKindMismatch, SeriesNotFound
from .metadata import SeriesMeta
from .series import Series, SeriesKind

logger = logging.getLogger(__name__)


class MergePolicy(enum.Enum):
    """How incoming series are integrated into existing ones with the same name."""

    APPEND = "append"    # live streaming increments
    REPLACE = "replace"  # file reloads: existing contents are cleared first


@dataclass(frozen=True, slots=True)
class MergeResult:
    added: tuple[str, ...]
    curves_updated: bool
    data_pushed: bool


class SeriesStore:
    """
    Owning collection of all series, partitioned by value kind.

    Design goals:
    - dict-like access: store["eng_spd"], "eng_spd" in store
    - a name lives in at most one of the three mappings at a time
    - one retention horizon shared by every series
    """

    def __init__(self, max_range_x: float = math.inf) -> None:
        self._numeric: dict[str, Series] = {}
        self._strings: dict[str, Series] = {}
        self._user_defined: dict[str, Series] = {}
        self._max_range_x = math.inf
        self.set_maximum_range_x(max_range_x)

    def _mapping(self, kind: SeriesKind) -> dict[str, Series]:
        if kind is SeriesKind.NUMERIC:
            return self._numeric
        if kind is SeriesKind.STRING:
            return self._strings
        return self._user_defined

    def _mappings(self) -> tuple[dict[str, Series], ...]:
        return (self._numeric, self._strings, self._user_defined)

    # ---- dict-like API ----
    def __len__(self) -> int:
        return sum(len(m) for m in self._mappings())

    def __iter__(self) -> Iterator[str]:
        for mapping in self._mappings():
            yield from mapping

    def __contains__(self, name: object) -> bool:
        return any(name in m for m in self._mappings())

    def __getitem__(self, name: str) -> Series:
        return self.get(name)

    def names(self) -> list[str]:
        return list(self)

    def series(self) -> Iterator[Series]:
        for mapping in self._mappings():
            yield from mapping.values()

    def kind_of(self, name: str) -> SeriesKind | None:
        for kind in SeriesKind:
            if name in self._mapping(kind):
                return kind
        return None

    # ---- creation ----
    def add(
        self,
        name: str,
        kind: SeriesKind = SeriesKind.NUMERIC,
        *,
        group: str | None = None,
        meta: SeriesMeta | None = None,
    ) -> Series:
        """Return the series called `name`, creating an empty one if absent (idempotent)."""
        existing = self.kind_of(name)
        if existing is not None and existing is not kind:
            raise SeriesKindMismatch(
                f"Series '{name}' already exists as {existing.value}, not {kind.value}."
            )
        mapping = self._mapping(kind)
        series = mapping.get(name)
        if series is None:
            if meta is None:
                meta = SeriesMeta(group=group)
            elif group is not None:
                meta = meta.with_group(group)
            series = Series(name, kind, meta)
            series.set_maximum_range_x(self._max_range_x)
            mapping[name] = series
        return series

    def add_numeric(self, name: str, *, group: str | None = None) -> Series:
        return self.add(name, SeriesKind.NUMERIC, group=group)

    def add_string(self, name: str, *, group: str | None = None) -> Series:
        return self.add(name, SeriesKind.STRING, group=group)

    def add_user_defined(self, name: str, *, group: str | None = None) -> Series:
        return self.add(name, SeriesKind.USER_DEFINED, group=group)

    # ---- lookup ----
    def get(self, name: str) -> Series:
        for mapping in self._mappings():
            series = mapping.get(name)
            if series is not None:
                return series
        raise SeriesNotFound(name)

    def _lookup(self, name: str, kind: SeriesKind) -> Series:
        series = self._mapping(kind).get(name)
        if series is not None:
            return series
        actual = self.kind_of(name)
        if actual is not None:
            raise SeriesKindMismatch(f"Series '{name}' is {actual.value}, not {kind.value}.")
        raise SeriesNotFound(name)

    def numeric(self, name: str) -> Series:
        return self._lookup(name, SeriesKind.NUMERIC)

    def strings(self, name: str) -> Series:
        return self._lookup(name, SeriesKind.STRING)

    def user_defined(self, name: str) -> Series:
        return self._lookup(name, SeriesKind.USER_DEFINED)

    def numeric_names(self) -> list[str]:
        return list(self._numeric)

    # ---- removal ----
    def erase(self, name: str) -> bool:
        """Remove `name` from whichever mapping holds it. No-op if absent."""
        for mapping in self._mappings():
            if mapping.pop(name, None) is not None:
                return True
        return False

    def clear(self) -> None:
        for mapping in self._mappings():
            mapping.clear()

    def clear_buffers(self) -> None:
        """Empty every series but keep the names."""
        for series in self.series():
            series.clear()

    # ---- groups ----
    def names_in_group(self, group: str) -> list[str]:
        return [s.name for s in self.series() if s.group == group]

    def groups(self) -> set[str]:
        return {s.group for s in self.series() if s.group is not None}

    # ---- retention ----
    @property
    def max_range_x(self) -> float:
        return self._max_range_x

    def set_maximum_range_x(self, max_range: float) -> None:
        max_range = float(max_range)
        if math.isnan(max_range) or max_range < 0:
            raise InvalidSeries(f"maximum range must be a non-negative number, got {max_range}")
        self._max_range_x = max_range
        for series in self.series():
            series.set_maximum_range_x(max_range)

    # ---- bounds ----
    def time_bounds(self, names: Iterable[str] | None = None) -> tuple[float, float, int] | None:
        """
        (min start time, max end time, max number of steps) over numeric series.

        Only `names` are considered when given (unknown or non-numeric names are
        skipped). Returns None when no considered series has data.
        """
        if names is None:
            candidates: Iterable[Series] = self._numeric.values()
        else:
            candidates = (self._numeric[n] for n in names if n in self._numeric)

        min_time = math.inf
        max_time = -math.inf
        max_steps = 0
        for series in candidates:
            bounds = series.range_x()
            if bounds is None:
                continue
            min_time = min(min_time, bounds[0])
            max_time = max(max_time, bounds[1])
            max_steps = max(max_steps, series.n - 1)

        if max_steps == 0 or max_time < min_time:
            return None
        return min_time, max_time, max_steps

    # ---- merging ----
    def merge(self, incoming: "SeriesStore", policy: MergePolicy = MergePolicy.APPEND) -> MergeResult:
        """
        Move every point of `incoming` into this store.

        `incoming` is left with empty series afterwards, so the same buffer can be
        merged again later with only the newly arrived points.
        """
        if not isinstance(incoming, SeriesStore):
            raise TypeError("merge() expects a SeriesStore instance.")

        added: list[str] = []
        curves_updated = False
        data_pushed = False

        for src in list(incoming.series()):
            name = src.name
            current = self.kind_of(name)
            if current is not None and current is not src.kind:
                logger.debug("series '%s' changed kind %s -> %s", name, current.value, src.kind.value)
                self.erase(name)
                current = None
                curves_updated = True

            if current is None:
                dst = self.add(name, src.kind, meta=src.meta)
                added.append(name)
            else:
                dst = self._mapping(current)[name]
                if policy is MergePolicy.REPLACE:
                    dst.clear()
                if src.meta.unit is not None and src.meta.unit != dst.meta.unit:
                    dst.meta = dst.meta.with_unit(src.meta.unit)
                    curves_updated = True
                if src.group is not None and src.group != dst.group:
                    dst.meta = dst.meta.with_group(src.group)
                    curves_updated = True

            if src.n > 0:
                dst.extend(src.time, src.values)
                data_pushed = True
                src.clear()

        if added or data_pushed:
            logger.debug(
                "merged %d series (%d new, policy=%s)", len(incoming), len(added), policy.value
            )
        return MergeResult(added=tuple(added), curves_updated=curves_updated, data_pushed=data_pushed)
