# seriesflow/io/streamer.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable

import numpy as np

from seriesflow.core.exceptions import StreamerError
from seriesflow.core.series import SeriesKind
from seriesflow.core.store import SeriesStore

logger = logging.getLogger(__name__)

Sample = tuple[str, float, Any]


def sample_kind(value: Any) -> SeriesKind:
    """Series kind for one streamed value: numbers are numeric, text is a string."""
    if isinstance(value, (str, bytes)):
        return SeriesKind.STRING
    if isinstance(value, (int, float, np.number, np.bool_)):
        return SeriesKind.NUMERIC
    return SeriesKind.USER_DEFINED



class BufferedStreamer:
    """
    Base streamer: samples pushed from any thread land in `data_map`.

    `data_map` is only touched under `mutex`. The engine drains it (under the
    same lock) by merging it into its own store, which leaves it empty.
    Listeners are called after each push, from the pushing thread.
    """

    def __init__(self, name: str = "streamer") -> None:
        self.name = name
        self.mutex = threading.Lock()
        self.data_map = SeriesStore()
        self._listeners: list[Callable[[], None]] = []
        self._running = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, running={self._running})"

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        self._running = True
        logger.info("streamer '%s' started", self.name)

    def shutdown(self) -> None:
        self._running = False
        logger.info("streamer '%s' stopped", self.name)

    def set_maximum_range_x(self, max_range: float) -> None:
        with self.mutex:
            self.data_map.set_maximum_range_x(max_range)

    def add_data_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    # ---- producer side ----
    def push(self, name: str, t: float, value: Any, kind: SeriesKind | None = None) -> None:
        if kind is None:
            kind = sample_kind(value)
        with self.mutex:
            self.data_map.add(name, kind, group=self.name).push_back(t, value)
        self._notify()

    def push_many(self, samples: Iterable[Sample], kind: SeriesKind | None = None) -> int:
        """Push (name, time, value) samples; without `kind`, each value picks its own."""
        count = 0
        with self.mutex:
            for name, t, value in samples:
                series_kind = sample_kind(value) if kind is None else kind
                self.data_map.add(name, series_kind, group=self.name).push_back(t, value)
                count += 1
        if count:
            self._notify()
        return count

    def _notify(self) -> None:
        for callback in list(self._listeners):
            callback()


class ThreadedStreamer(BufferedStreamer):
    """
    Streamer draining an iterable of (name, time, value) samples on a
    background thread.

    The iterable may block between samples (e.g. reading a socket); the thread
    checks the running flag between samples and exits when it is cleared or
    the iterable is exhausted.
    `kind` forces every sample into one series kind; by default each value
    picks its own (see `sample_kind`).
    """

    def __init__(
        self,
        source: Iterable[Sample] | Callable[[], Iterable[Sample]],
        *,
        name: str = "streamer",
        batch_size: int = 1,
        kind: SeriesKind | None = None,
    ) -> None:
        super().__init__(name)
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._source = source
        self.batch_size = batch_size
        self.kind = kind
        self._thread: threading.Thread | None = None
        self.error: Exception | None = None

    def start(self) -> None:
        if self._running:
            raise StreamerError(f"streamer '{self.name}' is already running")
        try:
            samples = self._source() if callable(self._source) else self._source
            iterator = iter(samples)
        except Exception as e:
            raise StreamerError(f"streamer '{self.name}' could not open its source: {e}") from e

        self.error = None
        self._running = True
        self._thread = threading.Thread(
            target=self._run, args=(iterator,), name=f"streamer-{self.name}", daemon=True
        )
        self._thread.start()
        logger.info("streamer '%s' started", self.name)

    def _run(self, iterator) -> None:
        batch: list[Sample] = []
        try:
            for sample in iterator:
                if not self._running:
                    break
                batch.append(sample)
                if len(batch) >= self.batch_size:
                    self.push_many(batch, self.kind)
                    batch = []
            if batch:
                self.push_many(batch, self.kind)
        except Exception as e:
            self.error = e
            logger.exception("streamer '%s' failed", self.name)
        finally:
            self._running = False

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def shutdown(self, timeout: float = 1.0) -> None:
        self._running = False
        self.join(timeout)
        logger.info("streamer '%s' stopped", self.name)
