# test/test_curves.py
import numpy as np
import pytest

from seriesflow.core import (
    NumericCurve,
    Scale,
    SeriesNotFound,
    SeriesStore,
    StringCurve,
    TimeWindowTransform,
    TransformedSeries,
    UserDefinedCurve,
    Window,
    XYSeries,
    curve_for,
)
from seriesflow.core.curves import refresh_reactive, source_names


def _store():
    store = SeriesStore()
    t = np.arange(10.0)
    store.add_numeric("a").extend(t, t * 2)
    store.add_numeric("b").extend(t, t * 3)
    store.add_string("state").push_back(0.0, "IDLE")
    store.add_user_defined("frame").push_back(0.0, {"id": 1})
    return store


def test_curve_for_picks_variant_by_kind():
    store = _store()
    assert curve_for(store, "a") == NumericCurve("a")
    assert curve_for(store, "state") == StringCurve("state")
    assert curve_for(store, "frame") == UserDefinedCurve("frame")
    with pytest.raises(SeriesNotFound):
        curve_for(store, "ghost")


def test_source_names_per_variant():
    store = _store()
    assert source_names(NumericCurve("a")) == ("a",)
    assert source_names(XYSeries("a", "b", store)) == ("a", "b")
    assert source_names(TransformedSeries("a", store)) == ("a",)


def test_refresh_reactive_only_touches_tracker_dependent_curves():
    store = _store()
    plain = NumericCurve("a")
    xy = XYSeries("a", "b", store)
    windowed = XYSeries("a", "b", store, name="win", window=Window(1.0, 1.0))

    assert refresh_reactive(plain, 3.0) is False
    assert refresh_reactive(xy, 3.0) is False
    assert refresh_reactive(windowed, 3.0) is True
    assert windowed.points == [(4.0, 6.0), (6.0, 9.0), (8.0, 12.0)]


def test_transformed_series_without_transform_copies_source():
    store = _store()
    curve = TransformedSeries("a", store)
    curve.update_cache()

    assert curve.name == "a"
    assert curve.transform_name is None
    assert np.allclose(curve.series.values, store.numeric("a").values)


def test_transformed_series_with_scale_is_incremental():
    store = _store()
    curve = TransformedSeries("a", store, Scale("a_x10", "a", parameters={"value_scale": 10}))
    curve.update_cache()
    assert curve.name == "a[scale]"
    assert curve.series.n == 10

    store.numeric("a").push_back(10.0, 20.0)
    assert curve.update_cache() is True
    assert curve.series.back() == (10.0, 200.0)
    assert "a_x10" not in store


def test_transformed_series_time_window_follows_tracker():
    store = _store()
    tw = TimeWindowTransform("w", "a", parameters={"prev_seconds": 1, "next_seconds": 0})
    curve = TransformedSeries("a", store, tw, alias="recent a")
    assert curve.is_reactive

    refresh_reactive(curve, 5.0)
    assert np.allclose(curve.series.time, [4.0, 5.0])

    refresh_reactive(curve, 8.0)
    assert np.allclose(curve.series.time, [7.0, 8.0])


def test_set_transform_rebuilds_cache():
    store = _store()
    curve = TransformedSeries("a", store)
    curve.update_cache()
    curve.set_transform(Scale("s", "a", parameters={"value_offset": 1}))

    assert curve.series.n == 10
    assert curve.series.front() == (0.0, 1.0)


def test_transformed_to_dict():
    store = _store()
    curve = TransformedSeries("a", store, Scale("s", "a"), alias="A")
    data = curve.to_dict()
    assert data["source"] == "a"
    assert data["alias"] == "A"
    assert data["transform"]["type"] == "scale"
