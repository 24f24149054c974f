"""Periodic sampling of process resource usage into a MetricsCollector."""

from __future__ import annotations

import gc
import threading
from datetime import timedelta
from typing import Any

import psutil

from detectviz.collector import MetricsCollector


class SystemMonitor:
    """Samples memory, threads, CPU, open files and GC statistics.

    ``start`` collects once immediately and then every ``interval`` seconds
    on a background thread until ``stop`` is called.
    """

    name = "system_monitor"

    def __init__(self, collector: MetricsCollector, logger: Any, interval: float | timedelta) -> None:
        seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        if seconds <= 0:
            raise ValueError("interval must be positive")
        self.collector = collector
        self.logger = logger
        self.interval = seconds
        self._process = psutil.Process()
        self._lock = threading.Lock()
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None
        self._collections = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def collection_count(self) -> int:
        """Number of completed collection rounds."""
        return self._collections

    def start(self) -> None:
        with self._lock:
            if self.running:
                raise RuntimeError("system monitor is already running")
            self.logger.info("system monitor started, interval: %ss", self.interval)
            self.collect_metrics()
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,), name="system-monitor", daemon=True
            )
            self._thread.start()

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(self.interval):
            self.collect_metrics()
        self.logger.info("system monitor stopped")

    def stop(self) -> None:
        """Stop the background collection. Safe to call when not running."""
        with self._lock:
            event, thread = self._stop_event, self._thread
            self._stop_event = None
            self._thread = None
        if event is not None:
            event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def collect_metrics(self) -> None:
        self._collect_memory()
        self._collect_threads()
        self._collect_cpu()
        self._collect_open_files()
        self._collect_gc()
        self._collections += 1

    def _collect_memory(self) -> None:
        info = self._process.memory_info()
        for field in info._fields:
            self.collector.record_system_memory(field, float(getattr(info, field)))

    def _collect_threads(self) -> None:
        self.collector.record_system_threads(float(threading.active_count()))

    def _collect_cpu(self) -> None:
        self.collector.record_system_cpu("process", self._process.cpu_percent(None))
        times = self._process.cpu_times()
        self.collector.record_system_cpu("user_seconds", times.user)
        self.collector.record_system_cpu("system_seconds", times.system)

    def _collect_open_files(self) -> None:
        try:
            count = len(self._process.open_files())
        except psutil.Error as exc:
            self.logger.warn("cannot read open files: %s", exc)
            return
        self.collector.record_system_open_files(float(count))

    def _collect_gc(self) -> None:
        stats = gc.get_stats()
        self.collector.record_system_memory("num_gc", float(sum(s["collections"] for s in stats)))
        self.collector.record_system_memory("gc_collected", float(sum(s["collected"] for s in stats)))
        self.collector.record_system_memory("gc_uncollectable", float(sum(s["uncollectable"] for s in stats)))
        for generation, count in enumerate(gc.get_count()):
            self.collector.record_system_memory(f"gc_gen{generation}_count", float(count))

    def get_metrics(self) -> dict[str, Any]:
        """Return a snapshot of the current process statistics."""
        info = self._process.memory_info()
        stats = gc.get_stats()
        return {
            "threads": threading.active_count(),
            "rss": info.rss,
            "vms": info.vms,
            "num_gc": sum(s["collections"] for s in stats),
            "gc_collected": sum(s["collected"] for s in stats),
            "gc_uncollectable": sum(s["uncollectable"] for s in stats),
            "gc_counts": gc.get_count(),
        }