import functools
import logging

import pytest

from minibus.core import metrics as met
from minibus.core.bus import Bus
from minibus.core.contracts import NoHandlerRegistered
from minibus.core.resolve import type_key_of


class Ping:
    pass


@pytest.fixture
def clean_metrics():
    met.reset()
    yield
    met.reset()


def _hist(snap, name, **labels):
    want = {k: str(v) for k, v in labels.items()}
    for h in snap["hists"]:
        if h["name"] == name and want.items() <= h["labels"].items():
            return h
    return None


def test_dispatch_and_publish_are_counted(clean_metrics):
    bus = Bus(name="bus.metrics")
    labels = bus.metric_labels
    key = type_key_of(Ping)

    def handle(cmd: Ping):
        return "pong"

    def listen(ev: Ping):
        pass

    bus.register_handler(handle).register_listener(listen)
    bus.register_wildcard(lambda ev: None)

    bus.dispatch(Ping())
    bus.dispatch(Ping())
    bus.publish(Ping())

    assert met.counter_value("bus_dispatch_total", **labels, type=key) == 2
    assert met.counter_value("bus_publish_total", **labels, type=key) == 1
    assert met.gauge_value("bus_handlers", **labels) == 1
    assert met.gauge_value("bus_listeners", **labels, type=key) == 1
    assert met.gauge_value("bus_wildcards", **labels) == 1
    assert met.counter_value("bus_deliver_total", **labels) == 2

    h = _hist(bus.stats(), "bus_dispatch_ms", type=key)
    assert h is not None and h["count"] == 2


def test_buses_sharing_a_name_keep_separate_series(clean_metrics):
    a, b = Bus(), Bus()
    assert a.name == b.name
    assert a.bus_id != b.bus_id

    a.register_handler(lambda c: c, "one").register_handler(lambda c: c, "two")
    b.register_handler(lambda c: c, "one")
    a.dispatch(Ping(), "one")

    assert met.gauge_value("bus_handlers", **a.metric_labels) == 2
    assert met.gauge_value("bus_handlers", **b.metric_labels) == 1
    assert met.counter_value("bus_dispatch_total", **b.metric_labels) == 0
    # selecting by name alone still adds both up
    assert met.gauge_value("bus_handlers", bus=a.name) == 3
    assert all(g["labels"]["bus_id"] == str(b.bus_id) for g in b.stats()["gauges"])


class Recorder:
    def __call__(self, ev):
        pass


def _tagged(tag, ev):
    pass


def test_deliver_label_has_no_memory_address(clean_metrics):
    bus = Bus(name="bus.labels")
    bus.register_wildcard(Recorder()).register_wildcard(Recorder())
    bus.register_wildcard(functools.partial(_tagged, "x"))
    bus.publish(Ping())

    subs = {c["labels"]["sub"] for c in bus.stats()["counters"] if c["name"] == "bus_deliver_total"}
    assert subs == {"Recorder", "_tagged"}
    assert met.counter_value("bus_deliver_total", **bus.metric_labels, sub="Recorder") == 2


def test_dispatch_miss_is_counted(clean_metrics):
    bus = Bus(name="bus.miss")
    with pytest.raises(NoHandlerRegistered):
        bus.dispatch(Ping())
    assert met.counter_value("bus_dispatch_miss_total", **bus.metric_labels, type=type_key_of(Ping)) == 1


def test_metrics_can_be_disabled(clean_metrics):
    bus = Bus(name="bus.quiet", metrics=False)

    def handle(cmd: Ping):
        return 1

    bus.register_handler(handle)
    bus.dispatch(Ping())
    bus.publish(Ping())

    assert bus.stats() == {"counters": [], "gauges": [], "hists": []}


def test_timer_records_even_when_block_raises(clean_metrics):
    with pytest.raises(ZeroDivisionError):
        with met.Timer("t_ms", step="boom"):
            1 / 0
    h = _hist(met.snapshot(), "t_ms", step="boom")
    assert h is not None and h["count"] == 1


def test_histogram_summary_percentiles(clean_metrics):
    for v in range(1, 101):
        met.observe_hist("lat", float(v))
    h = _hist(met.snapshot(), "lat")
    assert h["count"] == 100
    assert h["min"] == 1.0 and h["max"] == 100.0
    assert 49.0 <= h["p50"] <= 52.0
    assert h["p99"] >= 98.0


def test_report_logs_only_this_bus(clean_metrics, caplog):
    mine = Bus(name="bus.report")
    other = Bus(name="bus.other")
    mine.register_wildcard(lambda ev: None)
    other.register_wildcard(lambda ev: None)

    logger = logging.getLogger("test.report")
    with caplog.at_level(logging.INFO, logger="test.report"):
        mine.report(logger)
    msgs = [r.getMessage() for r in caplog.records if r.name == "test.report"]
    assert any("bus_wildcards" in m for m in msgs)
    assert not any("bus.other" in m for m in msgs)
