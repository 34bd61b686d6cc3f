# seriesflow/engine.py
"""
DataflowEngine: owner-thread facade of the whole dataflow.

The engine owns the series store, the transform graph, the tracker, playback
and the undo history. Everything runs on the thread that calls the engine,
which must call `poll()` regularly (a GUI timer, an event loop tick...):
`poll()` drains streamed data at most every `replot_interval`, advances
playback and fires the tracker settle notification.

Streamers only touch their own lock-guarded buffer; the engine holds that lock
just long enough to merge the buffer into its store.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterable

from seriesflow.core.config import EngineConfig
from seriesflow.core.curves import Curve, refresh_static
from seriesflow.core.exceptions import StreamerError
from seriesflow.core.graph import EvaluationReport, TransformFailure, TransformGraph
from seriesflow.core.playback import Playback
from seriesflow.core.store import MergePolicy, MergeResult, SeriesStore
from seriesflow.core.timers import DelayedCallback
from seriesflow.core.tracker import TrackerController, UpdateReport
from seriesflow.core.transforms import Transform
from seriesflow.core.undo import Snapshot, SnapshotManager
from seriesflow.io import layout
from seriesflow.io.mdf_loader import MdfLoader
from seriesflow.io.protocols import Loader, Streamer

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LoadFailure:
    path: str
    error: Exception


@dataclass(frozen=True, slots=True)
class LoadReport:
    loaded: tuple[str, ...] = ()
    added: tuple[str, ...] = ()
    failures: tuple[LoadFailure, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failures


class DataflowEngine:
    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        is_blocked: Callable[[], bool] | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        cfg = self.config

        self.store = SeriesStore()
        self.graph = TransformGraph()
        self.tracker = TrackerController(self.store, self.graph, settle_delay=cfg.settle_delay, clock=clock)
        self.playback = Playback(
            self.tracker,
            period=cfg.playback_period,
            rate=cfg.playback_rate,
            loop=cfg.playback_loop,
            clock=clock,
        )
        self.history = SnapshotManager(
            capacity=cfg.undo_capacity,
            coalesce_window=cfg.undo_coalesce_window,
            clock=clock,
            is_blocked=is_blocked,
        )

        self._max_range_x = cfg.max_range_x
        self._remove_time_offset = cfg.remove_time_offset
        self._time_offset = 0.0
        self._streamer: Streamer | None = None
        self._data_arrived = threading.Event()
        self._replot = DelayedCallback(cfg.replot_interval, self.update_data, clock=clock)

    # ------------------------------------------------------------------
    # Owner-thread loop
    # ------------------------------------------------------------------
    def poll(self) -> bool:
        """Run whatever timers are due. Returns True if anything ran."""
        if self._data_arrived.is_set():
            self._data_arrived.clear()
            self.schedule_replot()
        ran = self._replot.poll()
        ran = self.playback.poll() or ran
        ran = self.tracker.poll() or ran
        return ran

    def schedule_replot(self) -> None:
        """Request an update; requests arriving before it runs are merged into one."""
        self._replot.trigger(restart=False)

    def _on_data_arrived(self) -> None:
        # called from the streamer thread
        self._data_arrived.set()

    # ------------------------------------------------------------------
    # Data in
    # ------------------------------------------------------------------
    def import_data(self, incoming: SeriesStore, *, remove_old: bool = True) -> MergeResult:
        """
        Merge a batch of series (e.g. a loaded file) into the store and recompute.

        With `remove_old`, series already present are replaced; transforms
        reading from them start over.
        """
        replaced = [name for name in incoming if name in self.store]
        policy = MergePolicy.REPLACE if remove_old else MergePolicy.APPEND
        result = self.store.merge(incoming, policy)
        if remove_old and replaced:
            self._restart_transforms(replaced)
        if result.added or result.data_pushed or result.curves_updated:
            self.update_data()
        return result

    def load_files(
        self,
        paths: Iterable[str | Path],
        *,
        loader: Loader | None = None,
        prefix: str | None = None,
        remove_old: bool = True,
    ) -> LoadReport:
        loader = loader or MdfLoader()
        loaded: list[str] = []
        added: list[str] = []
        failures: list[LoadFailure] = []
        for path in paths:
            try:
                data = loader.load(path, prefix)
            except Exception as e:
                logger.warning("could not load '%s': %s", path, e)
                failures.append(LoadFailure(str(path), e))
                continue
            result = self.import_data(data, remove_old=remove_old)
            loaded.append(str(path))
            added.extend(result.added)
        return LoadReport(loaded=tuple(loaded), added=tuple(added), failures=tuple(failures))

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------
    @property
    def streamer(self) -> Streamer | None:
        return self._streamer

    @property
    def is_streaming(self) -> bool:
        return self._streamer is not None

    def start_streaming(self, streamer: Streamer) -> None:
        if self._streamer is not None:
            self.stop_streaming()
        streamer.add_data_listener(self._on_data_arrived)
        streamer.set_maximum_range_x(self._max_range_x)
        try:
            streamer.start()
        except StreamerError:
            raise
        except Exception as e:
            raise StreamerError(f"streamer failed to start: {e}") from e
        self.store.set_maximum_range_x(self._max_range_x)
        self._streamer = streamer
        logger.info("streaming started (horizon %.3g s)", self._max_range_x)

    def stop_streaming(self) -> None:
        streamer = self._streamer
        if streamer is None:
            return
        streamer.shutdown()
        self.update_data()
        self._streamer = None
        self.store.set_maximum_range_x(math.inf)
        self.tracker.update_range()
        logger.info("streaming stopped")

    @property
    def max_range_x(self) -> float:
        return self._max_range_x

    def set_retention(self, max_range_x: float) -> None:
        """Retention horizon applied while streaming (inf keeps everything)."""
        max_range_x = float(max_range_x)
        if math.isnan(max_range_x) or max_range_x < 0:
            raise ValueError(f"retention must be a non-negative number, got {max_range_x}")
        self._max_range_x = max_range_x
        if self._streamer is not None:
            self._streamer.set_maximum_range_x(max_range_x)
            self.store.set_maximum_range_x(max_range_x)

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------
    def update_data(self) -> EvaluationReport:
        """
        Drain the streamer, recompute static transforms and curves, then move
        the tracker: to the newest sample while streaming, else just clamped
        to the new range.
        """
        streamer = self._streamer
        if streamer is not None:
            with streamer.mutex:
                self.store.merge(streamer.data_map, MergePolicy.APPEND)

        report = self.graph.evaluate_all(self.store)
        failures = list(report.failures)
        for curve in self.tracker.curves():
            try:
                refresh_static(curve)
            except Exception as e:
                logger.warning("curve '%s' could not be updated: %s", curve.name, e)
                failures.append(TransformFailure(curve.name, e))

        self._update_time_offset()
        low, high = self.tracker.update_range()
        if streamer is not None:
            tracker_report = self.tracker.set_tracker_time(high)
        else:
            tracker_report = self.tracker.update_reactive()
        failures.extend(tracker_report.failures)
        return replace(report, failures=tuple(failures))

    def _restart_transforms(self, names: Iterable[str]) -> None:
        """Reset every transform downstream of `names` and clear its output."""
        for name in self.graph.dependents_closure(names):
            if name not in self.graph:
                continue
            self.graph.get(name).reset()
            if name in self.store:
                self.store.get(name).clear()

    def clear_buffers(self) -> EvaluationReport:
        """Empty every series but keep names, transforms and curves."""
        self.store.clear_buffers()
        self.graph.reset_all()
        return self.update_data()

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------
    def add_transforms(self, transforms: Iterable[Transform], *, record: bool = True) -> EvaluationReport:
        """Register (or replace) transforms and compute them."""
        added = []
        for transform in transforms:
            transform.reset()
            self.graph.add(transform)
            added.append(transform.destination)
        self._restart_transforms(added)

        report = self.graph.evaluate_all(self.store)
        reactive = self.tracker.update_reactive()
        report = replace(report, failures=report.failures + reactive.failures)
        self.tracker.update_range()
        if record:
            self.on_undoable_change()
        return report

    def add_transform(self, transform: Transform, *, record: bool = True) -> EvaluationReport:
        return self.add_transforms([transform], record=record)

    def refresh_transform(self, name: str) -> EvaluationReport:
        """Recompute `name` and everything downstream of it from scratch."""
        self.graph.get(name)
        self._restart_transforms([name])
        report = self.graph.evaluate_all(self.store)
        reactive = self.tracker.update_reactive()
        return replace(report, failures=report.failures + reactive.failures)

    def remove_transform(self, name: str, *, record: bool = True) -> set[str]:
        self.graph.get(name)
        return self.delete_series([name], record=record)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------
    def delete_series(self, names: Iterable[str], *, record: bool = True) -> set[str]:
        """
        Delete series and, transitively, every transform reading from them.

        Returns the names of the series and transforms actually removed.
        """
        closure = self.graph.dependents_closure(names)
        removed: set[str] = set()
        for name in closure:
            if self.graph.remove(name) is not None:
                removed.add(name)
            if self.store.erase(name):
                removed.add(name)
        self.tracker.remove_curves_reading(closure)
        self.tracker.update_range()
        logger.debug("deleted %d series/transforms", len(removed))
        if record and removed:
            self.on_undoable_change()
        return removed

    def delete_group(self, group: str, *, record: bool = True) -> set[str]:
        return self.delete_series(self.store.names_in_group(group), record=record)

    def delete_all_data(self) -> None:
        """Forget everything: series, transforms, curves and history. Publishers are disabled."""
        self.playback.stop()
        self.stop_streaming()
        self.tracker.clear_curves()
        self.graph.clear()
        self.store.clear()
        self.history.clear()
        self.tracker.update_range()

        stopped = False
        for publisher in self.tracker.publishers():
            if getattr(publisher, "enabled", False):
                publisher.enabled = False
                stopped = True
        if stopped:
            logger.warning("state publishers were disabled because their data was deleted")

    # ------------------------------------------------------------------
    # Curves / tracker
    # ------------------------------------------------------------------
    def add_curve(self, curve: Curve, *, record: bool = True) -> None:
        """Plot `curve`. A curve whose sources are missing stays plotted but empty."""
        self.tracker.add_curve(curve)
        try:
            refresh_static(curve)
        except Exception as e:
            logger.warning("curve '%s' is empty: %s", curve.name, e)
        self.tracker.update_range()
        self.tracker.update_reactive()
        if record:
            self.on_undoable_change()

    def remove_curve(self, name: str, *, record: bool = True) -> bool:
        removed = self.tracker.remove_curve(name)
        if removed:
            self.tracker.update_range()
            if record:
                self.on_undoable_change()
        return removed

    def set_tracker_time(self, t: float) -> UpdateReport:
        return self.tracker.set_tracker_time(t)

    # ------------------------------------------------------------------
    # Relative time
    # ------------------------------------------------------------------
    @property
    def remove_time_offset(self) -> bool:
        return self._remove_time_offset

    @property
    def time_offset(self) -> float:
        """Subtracted from times for display when the time offset is removed."""
        return self._time_offset

    def set_remove_time_offset(self, enabled: bool, *, record: bool = True) -> None:
        self._remove_time_offset = bool(enabled)
        self._update_time_offset()
        if record:
            self.on_undoable_change()

    def _update_time_offset(self) -> None:
        bounds = self.store.time_bounds()
        if self._remove_time_offset and bounds is not None:
            self._time_offset = bounds[0]
        else:
            self._time_offset = 0.0

    # ------------------------------------------------------------------
    # State / undo
    # ------------------------------------------------------------------
    def save_state(self) -> str:
        return layout.dumps(layout.save_layout(self))

    def restore_state(self, state: str) -> layout.LayoutReport:
        """Apply a saved layout and make it the only undo entry."""
        report = layout.load_layout(self, layout.loads(state))
        self.history.reset(self.save_state(), relative_time=self._remove_time_offset)
        return report

    def on_undoable_change(self) -> bool:
        return self.history.record(self.save_state(), relative_time=self._remove_time_offset)

    def undo(self) -> bool:
        return self.history.undo(self._apply_snapshot) is not None

    def redo(self) -> bool:
        return self.history.redo(self._apply_snapshot) is not None

    def _apply_snapshot(self, snapshot: Snapshot) -> None:
        layout.load_layout(self, layout.loads(snapshot.state))
        self.set_remove_time_offset(snapshot.relative_time, record=False)
