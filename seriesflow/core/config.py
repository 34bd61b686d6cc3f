# seriesflow/core/config.py
from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any, Mapping

from .exceptions import InvalidConfig


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """
    Tunables of a DataflowEngine. All durations are in seconds.

    - max_range_x: retention horizon while streaming (inf disables eviction)
    - replot_interval: coalescing period of replots after streamed data
    - settle_delay: quiet time before the tracker "settled" notification
    - playback_period / playback_rate / playback_loop: playback tick
    - undo_capacity / undo_coalesce_window: undo history bounds
    - remove_time_offset: show times relative to the first sample
    """
    max_range_x: float = math.inf
    replot_interval: float = 0.04
    settle_delay: float = 0.1
    playback_period: float = 0.02
    playback_rate: float = 1.0
    playback_loop: bool = True
    undo_capacity: int = 100
    undo_coalesce_window: float = 0.1
    remove_time_offset: bool = False

    def __post_init__(self) -> None:
        if math.isnan(self.max_range_x) or self.max_range_x < 0:
            raise InvalidConfig("EngineConfig.max_range_x must be >= 0 (inf disables eviction).")
        for name in ("replot_interval", "settle_delay", "undo_coalesce_window"):
            if getattr(self, name) < 0:
                raise InvalidConfig(f"EngineConfig.{name} must be >= 0.")
        if self.playback_period <= 0:
            raise InvalidConfig("EngineConfig.playback_period must be > 0.")
        if self.playback_rate <= 0:
            raise InvalidConfig("EngineConfig.playback_rate must be > 0.")
        if not isinstance(self.undo_capacity, int) or self.undo_capacity < 2:
            raise InvalidConfig("EngineConfig.undo_capacity must be an int >= 2.")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidConfig(f"unknown EngineConfig keys: {sorted(unknown)}")
        return cls(**dict(data))
