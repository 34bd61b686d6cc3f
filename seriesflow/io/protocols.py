# seriesflow/io/protocols.py
"""
Contracts of the collaborators the engine talks to.

- Loader: reads a file into a fresh SeriesStore
- Streamer: fills a lock-guarded SeriesStore from its own thread
- StatePublisher: receives tracker time updates
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Protocol, runtime_checkable

from seriesflow.core.store import SeriesStore


@runtime_checkable
class Loader(Protocol):
    def load(self, path: str | Path, prefix: str | None = None) -> SeriesStore:
        """Read `path`; raise LoadError if it can't be read."""
        ...


@runtime_checkable
class Streamer(Protocol):
    mutex: threading.Lock
    data_map: SeriesStore

    @property
    def is_running(self) -> bool:
        ...

    def start(self) -> None:
        ...

    def shutdown(self) -> None:
        ...

    def set_maximum_range_x(self, max_range: float) -> None:
        ...

    def add_data_listener(self, callback: Callable[[], None]) -> None:
        ...


@runtime_checkable
class StatePublisher(Protocol):
    enabled: bool

    def update_state(self, tracker_time: float) -> None:
        ...

    def play(self, tracker_time: float) -> None:
        ...
