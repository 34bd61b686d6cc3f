# seriesflow/core/timers.py
from __future__ import annotations

import time
from typing import Callable


class DelayedCallback:
    """
    Run `callback` once, `delay` seconds after the last (or first) trigger.

    - trigger(restart=True) debounces: every trigger pushes the deadline back
    - trigger(restart=False) coalesces: triggers while pending are absorbed

    Nothing fires on its own; the owner thread calls `poll()` regularly.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], object],
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self.delay = float(delay)
        self._callback = callback
        self._clock = clock
        self._deadline: float | None = None

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def trigger(self, *, restart: bool = True) -> None:
        if restart or self._deadline is None:
            self._deadline = self._clock() + self.delay

    def cancel(self) -> None:
        self._deadline = None

    def poll(self) -> bool:
        """Fire the callback if the deadline passed. Returns True if it fired."""
        if self._deadline is None or self._clock() < self._deadline:
            return False
        self._deadline = None
        self._callback()
        return True
