# test/test_tracker.py
import numpy as np
import pytest

from seriesflow.core import (
    NumericCurve,
    Scale,
    SeriesStore,
    TimeWindowTransform,
    TrackerController,
    TransformGraph,
    TransformedSeries,
    Window,
    XYSeries,
)


class _Clock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class _Publisher:
    def __init__(self, enabled=True):
        self.enabled = enabled
        self.states = []
        self.played = []

    def update_state(self, t):
        self.states.append(t)

    def play(self, t):
        self.played.append(t)


class _BrokenPublisher(_Publisher):
    def update_state(self, t):
        raise RuntimeError("socket closed")


def _setup(clock=None):
    store = SeriesStore()
    t = np.arange(0.0, 11.0)
    store.add_numeric("a").extend(t, t)
    store.add_numeric("late").extend(t + 100.0, t)
    graph = TransformGraph()
    tracker = TrackerController(store, graph, clock=clock or _Clock())
    return store, graph, tracker


def test_visible_range_defaults_to_unit_interval():
    tracker = TrackerController(SeriesStore(), TransformGraph())
    assert tracker.visible_range() == (0.0, 1.0)


def test_visible_range_falls_back_to_all_numeric_series():
    _, _, tracker = _setup()
    assert tracker.visible_range() == (0.0, 110.0)


def test_visible_range_uses_plotted_curves():
    _, _, tracker = _setup()
    tracker.add_curve(NumericCurve("a"))
    assert tracker.visible_range() == (0.0, 10.0)


def test_tracker_time_is_clamped():
    _, _, tracker = _setup()
    tracker.add_curve(NumericCurve("a"))
    tracker.update_range()

    assert tracker.set_tracker_time(50.0).tracker_time == 10.0
    assert tracker.set_tracker_time(-5.0).tracker_time == 0.0


def test_nan_tracker_time_rejected():
    _, _, tracker = _setup()
    with pytest.raises(ValueError):
        tracker.set_tracker_time(float("nan"))


def test_set_tracker_time_recomputes_reactive_transforms_only():
    store, graph, tracker = _setup()
    graph.add(TimeWindowTransform("w", "a", parameters={"prev_seconds": 1, "next_seconds": 1}))
    static = Scale("s", "a")
    graph.add(static)
    tracker.update_range()

    report = tracker.set_tracker_time(5.0)

    assert report.updated == ("w",)
    assert np.allclose(store.numeric("w").time, [4.0, 5.0, 6.0])
    assert "s" not in store


def test_static_consumers_of_reactive_output_follow_tracker():
    store, graph, tracker = _setup()
    graph.add(TimeWindowTransform("w", "a", parameters={"prev_seconds": 1, "next_seconds": 1}))
    graph.add(Scale("s", "w", parameters={"value_scale": 10}))
    curve = TransformedSeries("w", store, Scale("w10", "w", parameters={"value_scale": 10}), alias="w x10")
    tracker.add_curve(NumericCurve("a"))
    tracker.add_curve(curve)
    tracker.update_range()

    tracker.set_tracker_time(2.0)
    report = tracker.set_tracker_time(7.0)

    assert {"w", "s", "w x10"} <= set(report.updated)
    assert np.allclose(store.numeric("s").time, [6.0, 7.0, 8.0])
    assert np.allclose(store.numeric("s").values, [60.0, 70.0, 80.0])
    assert np.allclose(curve.series.values, [60.0, 70.0, 80.0])


def test_set_tracker_time_refreshes_windowed_xy():
    store, _, tracker = _setup()
    xy = XYSeries("a", "a", store, name="a vs a", window=Window(0.0, 1.0))
    tracker.add_curve(xy)
    tracker.update_range()

    report = tracker.set_tracker_time(2.0)

    assert "a vs a" in report.updated
    assert xy.points == [(2.0, 2.0), (3.0, 3.0)]


def test_curve_failure_is_reported():
    store, _, tracker = _setup()
    tracker.add_curve(XYSeries("a", "ghost", store, name="broken", window=Window()))
    report = tracker.set_tracker_time(1.0)

    assert not report.ok
    assert report.failures[0].name == "broken"


def test_redraw_listener_called_on_every_move():
    _, _, tracker = _setup()
    tracker.update_range()
    seen = []
    tracker.add_redraw_listener(lambda report: seen.append(report.tracker_time))

    tracker.set_tracker_time(1.0)
    tracker.set_tracker_time(1.0)
    tracker.set_tracker_time(2.0)

    assert seen == [1.0, 1.0, 2.0]


def test_publishers_receive_state_when_enabled():
    _, _, tracker = _setup()
    tracker.update_range()
    on, off = _Publisher(), _Publisher(enabled=False)
    tracker.add_publisher(on)
    tracker.add_publisher(off)

    tracker.set_tracker_time(3.0)
    tracker.set_tracker_time(4.0, publish=False)

    assert on.states == [3.0]
    assert off.states == []


def test_broken_publisher_does_not_stop_others():
    _, _, tracker = _setup()
    tracker.update_range()
    good = _Publisher()
    tracker.add_publisher(_BrokenPublisher())
    tracker.add_publisher(good)

    tracker.set_tracker_time(3.0)
    assert good.states == [3.0]


def test_settle_notification_once_per_burst():
    clock = _Clock()
    _, _, tracker = _setup(clock)
    tracker.update_range()
    settled = []
    tracker.add_settle_listener(settled.append)

    for i in range(5):
        clock.now = i * 0.05
        tracker.set_tracker_time(float(i))
        tracker.poll()
    assert settled == []

    clock.now = 0.2 + 0.08
    assert tracker.poll() is False
    clock.now = 0.2 + 0.11
    assert tracker.poll() is True
    assert settled == [4.0]
    assert tracker.poll() is False


def test_remove_curves_reading():
    store, _, tracker = _setup()
    tracker.add_curve(NumericCurve("a"))
    tracker.add_curve(NumericCurve("late"))
    tracker.add_curve(XYSeries("late", "a", store))

    dropped = tracker.remove_curves_reading({"a"})

    assert sorted(dropped) == ["a", "late;a"]
    assert [c.name for c in tracker.curves()] == ["late"]
