# test/test_streamer.py
import threading

import numpy as np
import pytest

from seriesflow.core import SeriesKind, StreamerError
from seriesflow.io.protocols import Streamer
from seriesflow.io.streamer import BufferedStreamer, ThreadedStreamer, sample_kind


def test_buffered_streamer_satisfies_protocol():
    assert isinstance(BufferedStreamer(), Streamer)
    assert isinstance(ThreadedStreamer([]), Streamer)


def test_push_lands_in_data_map_with_group():
    streamer = BufferedStreamer("can0")
    calls = []
    streamer.add_data_listener(lambda: calls.append(1))

    streamer.push("eng_spd", 0.0, 800.0)
    streamer.push("gear", 0.0, "N", SeriesKind.STRING)

    assert streamer.data_map.numeric("eng_spd").back() == (0.0, 800.0)
    assert streamer.data_map.strings("gear").back() == (0.0, "N")
    assert streamer.data_map["eng_spd"].group == "can0"
    assert len(calls) == 2


def test_push_many_notifies_once():
    streamer = BufferedStreamer()
    calls = []
    streamer.add_data_listener(lambda: calls.append(1))

    count = streamer.push_many([("a", 0.0, 1.0), ("a", 1.0, 2.0), ("b", 0.0, 3.0)])

    assert count == 3
    assert calls == [1]
    assert streamer.push_many([]) == 0
    assert calls == [1]


def test_retention_applies_to_buffer():
    streamer = BufferedStreamer()
    streamer.set_maximum_range_x(1.0)
    for i in range(5):
        streamer.push("a", float(i), float(i))

    assert np.allclose(streamer.data_map.numeric("a").time, [3.0, 4.0])


def test_start_and_shutdown_toggle_running():
    streamer = BufferedStreamer()
    streamer.start()
    assert streamer.is_running
    streamer.shutdown()
    assert not streamer.is_running


def test_threaded_streamer_drains_source():
    samples = [("a", float(i), float(i) * 2.0) for i in range(10)]
    streamer = ThreadedStreamer(samples, name="replay", batch_size=4)

    streamer.start()
    streamer.join(timeout=5.0)

    assert not streamer.is_running
    assert streamer.error is None
    with streamer.mutex:
        series = streamer.data_map.numeric("a")
        assert series.n == 10
        assert series.back() == (9.0, 18.0)


def test_sample_kind():
    assert sample_kind(1.5) is SeriesKind.NUMERIC
    assert sample_kind(3) is SeriesKind.NUMERIC
    assert sample_kind(np.int16(3)) is SeriesKind.NUMERIC
    assert sample_kind("N") is SeriesKind.STRING
    assert sample_kind(b"N") is SeriesKind.STRING
    assert sample_kind({"id": 0x120}) is SeriesKind.USER_DEFINED


def test_threaded_streamer_keeps_text_samples():
    samples = [
        ("gear", 0.0, "N"),
        ("eng_spd", 0.0, 800.0),
        ("gear", 1.0, b"1"),
        ("eng_spd", 1.0, np.float32(900.0)),
    ]
    streamer = ThreadedStreamer(samples, name="can0", batch_size=4)

    streamer.start()
    streamer.join(timeout=5.0)

    assert streamer.error is None
    with streamer.mutex:
        assert list(streamer.data_map.strings("gear").values) == ["N", "1"]
        assert streamer.data_map.numeric("eng_spd").back() == (1.0, 900.0)


def test_threaded_streamer_forced_kind():
    streamer = ThreadedStreamer([("frame", 0.0, 7)], kind=SeriesKind.USER_DEFINED)

    streamer.start()
    streamer.join(timeout=5.0)

    assert streamer.error is None
    with streamer.mutex:
        assert streamer.data_map.user_defined("frame").back() == (0.0, 7)


def test_threaded_streamer_records_source_failure():
    def source():
        yield ("a", 0.0, 1.0)
        raise ConnectionError("peer reset")

    streamer = ThreadedStreamer(source)
    streamer.start()
    streamer.join(timeout=5.0)

    assert isinstance(streamer.error, ConnectionError)
    assert not streamer.is_running


def test_threaded_streamer_source_that_cannot_open():
    def source():
        raise OSError("no such device")

    streamer = ThreadedStreamer(source)
    with pytest.raises(StreamerError):
        streamer.start()
    assert not streamer.is_running


def test_threaded_streamer_stops_on_shutdown():
    gate = threading.Event()

    def source():
        i = 0
        while True:
            gate.wait(0.01)
            yield ("a", float(i), 0.0)
            i += 1

    streamer = ThreadedStreamer(source)
    streamer.start()
    streamer.shutdown(timeout=5.0)

    assert not streamer.is_running
