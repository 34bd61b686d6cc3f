# seriesflow/core/undo.py
from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Serialized engine state (layout text, never bulk data)."""
    state: str
    relative_time: bool = False
    captured_at: float = 0.0


class SnapshotManager:
    """
    Bounded undo/redo history with time-based coalescing.

    Design goals:
    - the top of the undo stack is always the current state
    - edits closer than `coalesce_window` seconds replace each other
    - nothing is recorded while a snapshot is being applied
    - undo/redo do nothing while `is_blocked()` reports a modal surface
    """

    def __init__(
        self,
        *,
        capacity: int = 100,
        coalesce_window: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        is_blocked: Callable[[], bool] | None = None,
    ) -> None:
        if capacity < 2:
            raise ValueError("capacity must be >= 2")
        self.capacity = capacity
        self.coalesce_window = float(coalesce_window)
        self._clock = clock
        self.is_blocked: Callable[[], bool] = is_blocked or (lambda: False)
        self._undo: deque[Snapshot] = deque(maxlen=capacity)
        self._redo: deque[Snapshot] = deque(maxlen=capacity)
        self._last_record: float | None = None
        self._applying = False

    # ---- state ----
    @property
    def applying(self) -> bool:
        return self._applying

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    @property
    def current(self) -> Snapshot | None:
        return self._undo[-1] if self._undo else None

    def can_undo(self) -> bool:
        return len(self._undo) > 1 and not self._applying and not self.is_blocked()

    def can_redo(self) -> bool:
        return bool(self._redo) and not self._applying and not self.is_blocked()

    # ---- recording ----
    def record(self, state: str, *, relative_time: bool = False) -> bool:
        """Push a new snapshot; returns False if ignored (a snapshot is being applied)."""
        if self._applying:
            return False
        now = self._clock()
        if self._undo and self._last_record is not None and now - self._last_record < self.coalesce_window:
            self._undo.pop()
        self._undo.append(Snapshot(state, relative_time, now))
        self._redo.clear()
        self._last_record = now
        return True

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
        self._last_record = None

    def reset(self, state: str, *, relative_time: bool = False) -> None:
        """Drop the history and start over from `state` (e.g. after loading a layout)."""
        self.clear()
        self.record(state, relative_time=relative_time)

    # ---- navigation ----
    def undo(self, apply: Callable[[Snapshot], None]) -> Snapshot | None:
        if not self.can_undo():
            return None
        self._redo.append(self._undo.pop())
        snapshot = self._undo[-1]
        self._apply(apply, snapshot)
        return snapshot

    def redo(self, apply: Callable[[Snapshot], None]) -> Snapshot | None:
        if not self.can_redo():
            return None
        snapshot = self._redo.pop()
        self._undo.append(snapshot)
        self._apply(apply, snapshot)
        return snapshot

    def _apply(self, apply: Callable[[Snapshot], None], snapshot: Snapshot) -> None:
        self._applying = True
        try:
            apply(snapshot)
        finally:
            self._applying = False
        logger.debug("applied snapshot captured at %.3f", snapshot.captured_at)
