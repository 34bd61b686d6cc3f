# seriesflow/core/playback.py
from __future__ import annotations

import logging
import time
from typing import Callable

from .tracker import TrackerController

logger = logging.getLogger(__name__)


class Playback:
    """
    Periodic advance of the tracker time.

    Each tick moves the tracker by max(period, elapsed) * rate seconds. On
    reaching the end of the visible range the tracker returns to its start;
    playback then continues if `loop` is set and stops otherwise.
    """

    def __init__(
        self,
        tracker: TrackerController,
        *,
        period: float = 0.02,
        rate: float = 1.0,
        loop: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if period <= 0:
            raise ValueError(f"period must be > 0, got {period}")
        self._tracker = tracker
        self.period = float(period)
        self.rate = rate
        self.loop = loop
        self._clock = clock
        self._playing = False
        self._last_tick = 0.0
        self._next_tick = 0.0

    @property
    def rate(self) -> float:
        return self._rate

    @rate.setter
    def rate(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"playback rate must be > 0, got {value}")
        self._rate = float(value)

    @property
    def is_playing(self) -> bool:
        return self._playing

    def start(self) -> None:
        if self._playing:
            return
        self._tracker.update_range()
        now = self._clock()
        self._last_tick = now
        self._next_tick = now + self.period
        self._playing = True
        logger.debug("playback started at t=%.3f", self._tracker.tracker_time)

    def stop(self) -> None:
        if self._playing:
            logger.debug("playback stopped at t=%.3f", self._tracker.tracker_time)
        self._playing = False

    def toggle(self) -> bool:
        if self._playing:
            self.stop()
        else:
            self.start()
        return self._playing

    def tick(self) -> float:
        """Advance the tracker once; returns the new tracker time."""
        now = self._clock()
        delta = max(self.period, now - self._last_tick)
        self._last_tick = now

        low, high = self._tracker.update_range()
        t = self._tracker.tracker_time + delta * self._rate
        if t >= high:
            if not self.loop:
                self.stop()
            t = low
        self._tracker.set_tracker_time(t, publish=False)
        self._tracker.play(self._tracker.tracker_time)
        return self._tracker.tracker_time

    def poll(self) -> bool:
        """Tick if playing and the period elapsed. Returns True if it ticked."""
        if not self._playing:
            return False
        now = self._clock()
        if now < self._next_tick:
            return False
        self._next_tick = now + self.period
        self.tick()
        return True
