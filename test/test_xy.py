# test/test_xy.py
import numpy as np
import pytest

from seriesflow.core import AxisMisalignment, SeriesStore, Window, XYSeries


def _store(x, y):
    store = SeriesStore()
    store.add_numeric("x").extend([p[0] for p in x], [p[1] for p in x])
    store.add_numeric("y").extend([p[0] for p in y], [p[1] for p in y])
    return store


def test_windowed_xy_pairs_values_inside_window():
    store = _store([(0, 1), (1, 2), (2, 3)], [(0, 10), (1, 20), (2, 30)])
    xy = XYSeries("x", "y", store, window=Window(1.0, 1.0))
    xy.set_tracker_time(1.0)

    assert xy.update_cache() is True
    assert xy.points == [(1.0, 10.0), (2.0, 20.0), (3.0, 30.0)]


def test_misaligned_axes_raise_and_leave_cache_empty():
    store = _store([(0, 1), (2, 2)], [(0, 10), (1, 20)])
    xy = XYSeries("x", "y", store)

    with pytest.raises(AxisMisalignment):
        xy.update_cache()
    assert xy.size == 0


def test_windowed_xy_restricts_points():
    t = np.arange(10.0)
    store = SeriesStore()
    store.add_numeric("x").extend(t, t)
    store.add_numeric("y").extend(t, t * 2)
    xy = XYSeries("x", "y", store, window=Window(1.0, 2.0))
    xy.set_tracker_time(5.0)
    xy.update_cache()

    assert xy.points == [(4.0, 8.0), (5.0, 10.0), (6.0, 12.0), (7.0, 14.0)]


def test_preview_uses_center_of_y_span():
    t = np.arange(11.0)
    store = SeriesStore()
    store.add_numeric("x").extend(t, t)
    store.add_numeric("y").extend(t, t)
    xy = XYSeries("x", "y", store, window=Window(0.0, 0.0))

    assert xy.reference_time() == 5.0
    xy.update_cache()
    assert xy.points == [(5.0, 5.0)]


def test_unwindowed_xy_caches_all_points():
    store = _store([(0, 1), (1, 2)], [(0, 3), (1, 4)])
    xy = XYSeries("x", "y", store)
    xy.update_cache()

    assert xy.name == "x;y"
    assert xy.points == [(1.0, 3.0), (2.0, 4.0)]
    assert xy.range_x() == (1.0, 2.0)
    assert xy.range_y() == (3.0, 4.0)


def test_mismatch_after_window_is_not_inspected():
    store = _store([(0, 1), (1, 2), (5, 3)], [(0, 10), (1, 20), (6, 30)])
    xy = XYSeries("x", "y", store, window=Window(1.0, 0.0))
    xy.set_tracker_time(0.5)

    xy.update_cache()
    assert xy.points == [(1.0, 10.0)]


def test_sample_from_time():
    store = _store([(0, 1), (1, 2), (2, 3)], [(0, 10), (1, 20), (2, 30)])
    xy = XYSeries("x", "y", store)
    xy.update_cache()

    assert xy.sample_from_time(1.2) == (2.0, 20.0)
    assert XYSeries("x", "y", store).sample_from_time(0.0) is None
