# seriesflow/core/curves.py
"""
Plottable curve variants.

A curve is one of:
- NumericCurve / StringCurve / UserDefinedCurve: a plain store series, by name
- XYSeries: the values of one series against another (optionally windowed)
- TransformedSeries: a numeric series passed through an optional SISO transform

Consumers dispatch on the variant with `match`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .exceptions import SeriesNotFound
from .series import Series, SeriesKind
from .store import SeriesStore
from .transforms import SisoTransform
from .xy import XYSeries


@dataclass(frozen=True, slots=True)
class NumericCurve:
    name: str


@dataclass(frozen=True, slots=True)
class StringCurve:
    name: str


@dataclass(frozen=True, slots=True)
class UserDefinedCurve:
    name: str


class TransformedSeries:
    """
    Numeric source series seen through an optional SISO transform.

    The result lives in a private cache series, not in the store, so several
    curves can show the same source with different transforms.
    """

    def __init__(
        self,
        source_name: str,
        store: SeriesStore,
        transform: SisoTransform | None = None,
        *,
        alias: str | None = None,
    ) -> None:
        self.source_name = source_name
        self._store = store
        self._transform = transform
        self.alias = alias or self._default_alias()
        self._cache = Series(self.alias, SeriesKind.NUMERIC)

    def __repr__(self) -> str:
        return f"TransformedSeries(source={self.source_name!r}, transform={self.transform_name!r})"

    def _default_alias(self) -> str:
        if self._transform is None:
            return self.source_name
        return f"{self.source_name}[{self._transform.type_name}]"

    @property
    def name(self) -> str:
        return self.alias

    @property
    def series(self) -> Series:
        return self._cache

    @property
    def transform(self) -> SisoTransform | None:
        return self._transform

    @property
    def transform_name(self) -> str | None:
        return None if self._transform is None else self._transform.type_name

    @property
    def is_reactive(self) -> bool:
        return self._transform is not None and self._transform.reactive

    def set_transform(self, transform: SisoTransform | None) -> bool:
        self._transform = transform
        return self.update_cache(reset=True)

    def set_tracker_time(self, t: float) -> None:
        if self._transform is not None and hasattr(self._transform, "set_time_tracker"):
            self._transform.set_time_tracker(t)

    def update_cache(self, *, reset: bool = False) -> bool:
        """Bring the cache up to date with the source. Returns True if new points were produced."""
        src = self._store.numeric(self.source_name)
        if self._transform is None:
            self._cache.clear()
            self._cache.set_maximum_range_x(src.max_range_x)
            return self._cache.extend(*src.to_numpy()) > 0
        if reset:
            self._transform.reset()
            self._cache.clear()
        return self._transform.apply(src, self._cache)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source_name,
            "alias": self.alias,
            "transform": None if self._transform is None else self._transform.to_dict(),
        }


Curve = NumericCurve | StringCurve | UserDefinedCurve | XYSeries | TransformedSeries


def curve_for(store: SeriesStore, name: str) -> Curve:
    """Plain curve variant for the store series called `name`."""
    match store.kind_of(name):
        case SeriesKind.NUMERIC:
            return NumericCurve(name)
        case SeriesKind.STRING:
            return StringCurve(name)
        case SeriesKind.USER_DEFINED:
            return UserDefinedCurve(name)
        case _:
            raise SeriesNotFound(name)


def curve_name(curve: Curve) -> str:
    return curve.name


def source_names(curve: Curve) -> tuple[str, ...]:
    """Store series a curve reads from."""
    match curve:
        case NumericCurve(name=name) | StringCurve(name=name) | UserDefinedCurve(name=name):
            return (name,)
        case XYSeries():
            return curve.source_names()
        case TransformedSeries():
            return (curve.source_name,)
    raise TypeError(f"not a curve: {curve!r}")


def refresh_reactive(curve: Curve, tracker_time: float) -> bool:
    """
    Move a tracker-dependent curve to `tracker_time` and rebuild it.

    Returns True if the curve depends on the tracker (and was rebuilt), False
    for curves the tracker doesn't affect.
    """
    match curve:
        case XYSeries() if curve.is_windowed:
            curve.set_tracker_time(tracker_time)
            curve.update_cache()
            return True
        case TransformedSeries() if curve.is_reactive:
            curve.set_tracker_time(tracker_time)
            curve.update_cache()
            return True
        case _:
            return False


def refresh_static(curve: Curve) -> bool:
    """Bring a curve the tracker doesn't drive up to date with its sources."""
    match curve:
        case XYSeries() if not curve.is_windowed:
            curve.update_cache()
            return True
        case TransformedSeries() if not curve.is_reactive:
            curve.update_cache()
            return True
        case _:
            return False
