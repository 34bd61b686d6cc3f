# seriesflow/core/metadata.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from .exceptions import InvalidSeries


@dataclass(frozen=True, slots=True)
class SeriesMeta:
    """
    Descriptive data carried by a Series; never consulted by the dataflow.

    - unit: physical unit shown next to values (rpm, Nm, degC)
    - description: free text
    - source: where the points came from ("MDF:run_01.mf4", a streamer name)
    - group: name of the file or connection that produced the series, used
      to delete a whole group at once. Only the name is stored.
    - attrs: anything else a loader wants to keep
    """
    unit: str | None = None
    description: str | None = None
    source: str | None = None
    group: str | None = None
    attrs: dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if self.attrs is None:
            object.__setattr__(self, "attrs", {})
        elif not isinstance(self.attrs, dict):
            raise InvalidSeries("SeriesMeta.attrs must be a dict.")
        if self.group is not None and not isinstance(self.group, str):
            raise InvalidSeries("SeriesMeta.group must be a string or None.")

    def with_group(self, group: str | None) -> "SeriesMeta":
        return replace(self, group=group, attrs=self.attrs.copy())

    def with_unit(self, unit: str | None) -> "SeriesMeta":
        return replace(self, unit=unit, attrs=self.attrs.copy())
