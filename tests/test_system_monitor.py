import io
import time
from datetime import timedelta

import pytest

from detectviz.collector import MetricsCollector
from detectviz.metrics import MetricsRegistry
from detectviz.system_monitor import SystemMonitor
from detectviz.telemetry_logger import ConsoleLogger


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def monitor(stream):
    collector = MetricsCollector(MetricsRegistry(), prefix="test")
    logger = ConsoleLogger(level="debug", stream=stream)
    mon = SystemMonitor(collector, logger, 0.01)
    yield mon
    mon.stop()


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def test_name(monitor):
    assert monitor.name == "system_monitor"


@pytest.mark.parametrize("interval", [0, -1, timedelta(0)])
def test_invalid_interval(interval):
    collector = MetricsCollector(MetricsRegistry(), prefix="bad")
    with pytest.raises(ValueError):
        SystemMonitor(collector, ConsoleLogger(stream=io.StringIO()), interval)


def test_timedelta_interval():
    collector = MetricsCollector(MetricsRegistry(), prefix="td")
    mon = SystemMonitor(collector, ConsoleLogger(stream=io.StringIO()), timedelta(milliseconds=250))
    assert mon.interval == pytest.approx(0.25)


def test_collect_metrics_records_values(monitor):
    monitor.collect_metrics()
    collector = monitor.collector
    assert collector.system_memory_usage.value("rss") > 0
    assert collector.system_memory_usage.value("vms") > 0
    assert collector.system_threads.value() >= 1
    assert collector.system_memory_usage.value("num_gc") >= 0
    assert monitor.collection_count == 1


def test_get_metrics_snapshot(monitor):
    snapshot = monitor.get_metrics()
    assert {"threads", "rss", "vms", "num_gc", "gc_collected", "gc_uncollectable", "gc_counts"} <= set(snapshot)
    assert snapshot["threads"] >= 1
    assert snapshot["rss"] > 0
    assert len(snapshot["gc_counts"]) == 3


def test_start_collects_immediately_and_periodically(monitor, stream):
    monitor.start()
    assert monitor.collection_count >= 1
    assert monitor.running
    assert _wait_for(lambda: monitor.collection_count >= 3)
    monitor.stop()
    assert not monitor.running
    assert "[INFO] system monitor started" in stream.getvalue()
    assert "[INFO] system monitor stopped" in stream.getvalue()


def test_no_collection_after_stop(monitor):
    monitor.start()
    monitor.stop()
    count = monitor.collection_count
    time.sleep(0.05)
    assert monitor.collection_count == count


def test_start_twice_raises(monitor):
    monitor.start()
    with pytest.raises(RuntimeError):
        monitor.start()


def test_restart_after_stop(monitor):
    monitor.start()
    monitor.stop()
    monitor.start()
    assert monitor.running


def test_stop_without_start(monitor):
    monitor.stop()
    assert not monitor.running
    assert monitor.collection_count == 0