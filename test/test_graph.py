# test/test_graph.py
import numpy as np
import pytest

from seriesflow.core import (
    CustomFunction,
    Scale,
    SeriesStore,
    Transform,
    TransformGraph,
    TransformNotFound,
    order_definitions,
)


class _Recording(Transform):
    """Transform that only counts its evaluations."""

    def __init__(self, destination, sources=(), **kw):
        super().__init__(destination, sources, **kw)
        self.calls = 0

    def calculate(self, store):
        self.calls += 1
        return False


class _Failing(Transform):
    def calculate(self, store):
        raise RuntimeError("user code exploded")


def _store(**series):
    store = SeriesStore()
    for name, (times, values) in series.items():
        store.add_numeric(name).extend(times, values)
    return store


def test_add_replaces_same_destination():
    g = TransformGraph()
    first = Scale("b", "a")
    second = Scale("b", "a", parameters={"value_scale": 2})

    assert g.add(first) is None
    assert g.add(second) is first
    assert len(g) == 1
    assert g["b"] is second


def test_get_missing_raises_keyerror():
    g = TransformGraph()
    with pytest.raises(TransformNotFound):
        g.get("nope")
    with pytest.raises(KeyError):
        g["nope"]
    assert g.remove("nope") is None


def test_producers_come_before_consumers():
    g = TransformGraph()
    g.add(Scale("c", "b"))
    g.add(Scale("b", "a"))

    order = g.evaluation_order()
    assert order.names() == ["b", "c"]
    assert order.cyclic is None


def test_independent_transforms_use_order_tiebreak():
    g = TransformGraph()
    g.add(Scale("x", "a", order=5))
    g.add(Scale("y", "a", order=1))
    g.add(Scale("z", "a", order=3))

    assert g.evaluation_order().names() == ["y", "z", "x"]


def test_order_is_stable_across_calls():
    g = TransformGraph()
    g.add(Scale("d", "c"))
    g.add(Scale("c", "a"))
    g.add(Scale("e", "a"))
    g.add(Scale("f", "d"))

    first = g.evaluation_order().names()
    for _ in range(5):
        assert g.evaluation_order().names() == first


def test_self_dependency_ignored():
    g = TransformGraph()
    g.add(_Recording("a", ["a", "raw"]))
    order = g.evaluation_order()
    assert order.names() == ["a"]
    assert order.cyclic is None


def test_evaluate_all_chain():
    store = _store(a=([0.0, 1.0], [1.0, 2.0]))
    g = TransformGraph()
    g.add(Scale("c", "b", parameters={"value_scale": 2}))
    g.add(Scale("b", "a", parameters={"value_scale": 2}))

    report = g.evaluate_all(store)

    assert report.ok
    assert report.evaluated == ("b", "c")
    assert np.allclose(store.numeric("c").values, [4.0, 8.0])


def test_evaluate_all_skips_unchanged_sources():
    store = _store(a=([0.0, 1.0], [1.0, 2.0]))
    g = TransformGraph()
    g.add(Scale("b", "a"))
    g.add(Scale("c", "b"))
    g.evaluate_all(store)

    report = g.evaluate_all(store)
    assert report.evaluated == ()
    assert set(report.skipped) == {"b", "c"}

    store.numeric("a").push_back(2.0, 3.0)
    report = g.evaluate_all(store)
    assert report.evaluated == ("b", "c")
    assert report.updated == ("b", "c")

    forced = g.evaluate_all(store, force=True)
    assert forced.evaluated == ("b", "c")


def test_cycle_terminates_and_evaluates_each_once():
    store = SeriesStore()
    g = TransformGraph()
    a = _Recording("A", ["B"])
    b = _Recording("B", ["A"])
    g.add(a)
    g.add(b)

    report = g.evaluate_all(store)

    assert report.cyclic is not None
    assert report.cyclic.names == ("A", "B")
    assert "A" in str(report.cyclic)
    assert report.evaluated == ("A", "B")
    assert (a.calls, b.calls) == (1, 1)


def test_cycle_leftovers_keep_insertion_order():
    g = TransformGraph()
    g.add(_Recording("free", ["raw"]))
    g.add(_Recording("C", ["A"]))
    g.add(_Recording("A", ["B"]))
    g.add(_Recording("B", ["A"]))

    order = g.evaluation_order()
    assert order.names() == ["free", "C", "A", "B"]
    assert order.cyclic.names == ("C", "A", "B")


def test_failure_is_isolated():
    store = _store(a=([0.0], [1.0]))
    g = TransformGraph()
    g.add(_Failing("bad", ["a"], order=0))
    g.add(Scale("good", "a", order=1))

    report = g.evaluate_all(store)

    assert not report.ok
    assert [f.name for f in report.failures] == ["bad"]
    assert "user code exploded" in report.failures[0].message
    assert report.evaluated == ("good",)
    assert "good" in store


def test_failing_transform_is_retried_next_time():
    store = _store(a=([0.0], [1.0]))
    g = TransformGraph()
    g.add(_Failing("bad", ["a"]))
    g.evaluate_all(store)

    report = g.evaluate_all(store)
    assert [f.name for f in report.failures] == ["bad"]


def test_missing_source_reported_not_raised():
    g = TransformGraph()
    g.add(Scale("b", "ghost"))
    report = g.evaluate_all(SeriesStore())
    assert [f.name for f in report.failures] == ["b"]


def test_failed_destination_keeps_last_good_value():
    store = _store(a=([0.0, 1.0], [1.0, 2.0]))

    def calc(time, value):
        if value > 2:
            raise ValueError("too big")
        return value * 10

    g = TransformGraph()
    g.add(CustomFunction("c", "a", function=calc))
    g.evaluate_all(store)
    store.numeric("a").push_back(2.0, 3.0)

    report = g.evaluate_all(store)
    assert not report.ok
    assert np.allclose(store.numeric("c").values, [10.0, 20.0])


def test_reactive_transforms_excluded_from_bulk_pass():
    from seriesflow.core import TimeWindowTransform

    store = _store(a=([0.0, 1.0], [1.0, 2.0]))
    g = TransformGraph()
    g.add(TimeWindowTransform("w", "a"))
    g.add(Scale("b", "a"))

    assert g.evaluate_all(store).evaluated == ("b",)
    assert g.evaluate_reactive(store, 0.5).evaluated == ("w",)


def test_tracker_move_updates_static_consumer_of_reactive_output():
    from seriesflow.core import TimeWindowTransform

    t = np.arange(0.0, 11.0)
    store = _store(raw=(t, t))
    g = TransformGraph()
    g.add(TimeWindowTransform("w", "raw", parameters={"prev_seconds": 1, "next_seconds": 1}))
    g.add(CustomFunction("c", "w", function="return value * 2"))
    g.add(Scale("free", "raw"))

    report = g.evaluate_reactive(store, 2.0)
    assert report.evaluated == ("w", "c")
    g.evaluate_all(store)

    g.evaluate_reactive(store, 7.0)
    c = store.numeric("c")
    assert np.allclose(c.time, [6.0, 7.0, 8.0])
    assert np.allclose(c.values, [12.0, 14.0, 16.0])

    g.evaluate_all(store)
    assert np.allclose(store.numeric("c").time, [6.0, 7.0, 8.0])


def test_dependents_closure():
    g = TransformGraph()
    g.add(Scale("b", "a"))
    g.add(Scale("c", "b"))
    g.add(Scale("e", "d"))

    assert g.dependents_closure(["a"]) == {"a", "b", "c"}
    assert g.dependents_closure(["b"]) == {"b", "c"}
    assert g.dependents_closure(["zzz"]) == {"zzz"}


def test_order_definitions_producers_first():
    defs = [
        {"type": "custom_function", "destination": "c", "linked_source": "b", "additional_sources": ["raw"]},
        {"type": "custom_function", "destination": "b", "linked_source": "a", "additional_sources": []},
        {"type": "custom_function", "destination": "a", "linked_source": "raw", "additional_sources": []},
    ]
    ordered, cyclic = order_definitions(defs)

    assert [d["destination"] for d in ordered] == ["a", "b", "c"]
    assert cyclic is None


def test_order_definitions_reports_cycle():
    defs = [
        {"destination": "x", "linked_source": "y"},
        {"destination": "y", "linked_source": "raw", "additional_sources": ["x"]},
        {"destination": "z", "linked_source": "raw"},
    ]
    ordered, cyclic = order_definitions(defs)

    assert [d["destination"] for d in ordered] == ["z", "x", "y"]
    assert cyclic.names == ("x", "y")
