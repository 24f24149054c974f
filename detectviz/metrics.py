"""In-process metrics (counters, gauges, histograms) with a text exporter."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Iterable, Mapping

DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

_log = logging.getLogger(__name__)


class DuplicateMetricError(ValueError):
    """A metric with the same name is already registered."""


def _fmt(value: float) -> str:
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return repr(float(value))


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, help: str = "", label_names: Iterable[str] = ()) -> None:
        self.name = name
        self.help = help or f"{self.kind} metric for {name}"
        self.label_names = tuple(label_names)
        self._lock = threading.Lock()
        self._children: dict[tuple[str, ...], object] = {}

    def _key(self, args: tuple, kwargs: dict) -> tuple[str, ...]:
        if args and kwargs:
            raise ValueError("pass label values positionally or by name, not both")
        if kwargs:
            if set(kwargs) != set(self.label_names):
                raise ValueError(f"{self.name}: expected labels {self.label_names}, got {tuple(kwargs)}")
            return tuple(str(kwargs[n]) for n in self.label_names)
        if len(args) != len(self.label_names):
            raise ValueError(f"{self.name}: expected {len(self.label_names)} label values, got {len(args)}")
        return tuple(str(a) for a in args)

    def _new_child(self):
        raise NotImplementedError

    def labels(self, *args: str, **kwargs: str):
        key = self._key(args, kwargs)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = self._children[key] = self._new_child()
            return child

    def _default(self):
        if self.label_names:
            raise ValueError(f"{self.name} has labels; call labels() first")
        return self.labels()

    def _label_text(self, key: tuple[str, ...], extra: str = "") -> str:
        parts = [f'{n}="{v}"' for n, v in zip(self.label_names, key)]
        if extra:
            parts.append(extra)
        return "{" + ",".join(parts) + "}" if parts else ""

    def _samples(self) -> list[str]:
        raise NotImplementedError

    def render(self) -> str:
        lines = [f"# HELP {self.name} {self.help}", f"# TYPE {self.name} {self.kind}"]
        lines.extend(self._samples())
        return "\n".join(lines) + "\n"


class _ValueChild:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.value = 0.0


class _CounterChild(_ValueChild):
    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counters can only increase")
        with self._lock:
            self.value += amount


class _GaugeChild(_ValueChild):
    def set(self, value: float) -> None:
        with self._lock:
            self.value = float(value)

    def inc(self, amount: float = 1.0) -> None:
        with self._lock:
            self.value += amount


class _HistogramChild:
    def __init__(self, buckets: tuple[float, ...]) -> None:
        self._lock = threading.Lock()
        self.buckets = buckets
        self.bucket_counts = [0] * len(buckets)
        self.count = 0
        self.sum = 0.0

    def observe(self, value: float) -> None:
        with self._lock:
            self.count += 1
            self.sum += value
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    self.bucket_counts[i] += 1


class Counter(_Metric):
    """Monotonically increasing value."""

    kind = "counter"

    def __init__(self, name: str, help: str = "", label_names: Iterable[str] = ()) -> None:
        super().__init__(name, help, label_names)

    def _new_child(self):
        return _CounterChild()

    def labels(self, *args: str, **kwargs: str) -> _CounterChild:
        return super().labels(*args, **kwargs)

    def inc(self, amount: float = 1.0) -> None:
        self._default().inc(amount)

    def value(self, *args: str, **kwargs: str) -> float:
        return self.labels(*args, **kwargs).value

    def _samples(self) -> list[str]:
        return [f"{self.name}{self._label_text(k)} {_fmt(c.value)}" for k, c in sorted(self._children.items())]


class Gauge(_Metric):
    """Value that can go up and down."""

    kind = "gauge"

    def __init__(self, name: str, help: str = "", label_names: Iterable[str] = ()) -> None:
        super().__init__(name, help, label_names)

    def _new_child(self):
        return _GaugeChild()

    def labels(self, *args: str, **kwargs: str) -> _GaugeChild:
        return super().labels(*args, **kwargs)

    def set(self, value: float) -> None:
        self._default().set(value)

    def inc(self, amount: float = 1.0) -> None:
        self._default().inc(amount)

    def value(self, *args: str, **kwargs: str) -> float:
        return self.labels(*args, **kwargs).value

    def _samples(self) -> list[str]:
        return [f"{self.name}{self._label_text(k)} {_fmt(c.value)}" for k, c in sorted(self._children.items())]


class Histogram(_Metric):
    """Distribution of observations over cumulative buckets."""

    kind = "histogram"

    def __init__(self, name: str, help: str = "", label_names: Iterable[str] = (),
                 buckets: Iterable[float] = DEFAULT_BUCKETS) -> None:
        super().__init__(name, help, label_names)
        self.buckets = tuple(sorted(float(b) for b in buckets))
        if not self.buckets:
            raise ValueError("histogram needs at least one bucket")

    def _new_child(self):
        return _HistogramChild(self.buckets)

    def labels(self, *args: str, **kwargs: str) -> _HistogramChild:
        return super().labels(*args, **kwargs)

    def observe(self, value: float) -> None:
        self._default().observe(value)

    def count(self, *args: str, **kwargs: str) -> int:
        return self.labels(*args, **kwargs).count

    def sum(self, *args: str, **kwargs: str) -> float:
        return self.labels(*args, **kwargs).sum

    def _samples(self) -> list[str]:
        lines = []
        for key, child in sorted(self._children.items()):
            for bound, n in zip(child.buckets, child.bucket_counts):
                le = 'le="' + _fmt(bound) + '"'
                lines.append(f"{self.name}_bucket{self._label_text(key, le)} {n}")
            inf = 'le="+Inf"'
            lines.append(f"{self.name}_bucket{self._label_text(key, inf)} {child.count}")
            lines.append(f"{self.name}_sum{self._label_text(key)} {_fmt(child.sum)}")
            lines.append(f"{self.name}_count{self._label_text(key)} {child.count}")
        return lines


class MetricsRegistry:
    """Named collection of metrics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: dict[str, _Metric] = {}

    def register(self, metric: _Metric) -> _Metric:
        with self._lock:
            if metric.name in self._metrics:
                raise DuplicateMetricError(f"metric {metric.name!r} is already registered")
            self._metrics[metric.name] = metric
        return metric

    def get(self, name: str) -> _Metric:
        with self._lock:
            return self._metrics[name]

    def __contains__(self, name: str) -> bool:
        return name in self._metrics

    def render(self) -> str:
        with self._lock:
            metrics = [self._metrics[n] for n in sorted(self._metrics)]
        return "".join(m.render() for m in metrics)


@dataclass
class PrometheusConfig:
    port: int = 9090
    path: str = "/metrics"
    enabled: bool = False


def tag_keys(tags: Mapping[str, str]) -> list[str]:
    """Label names of a tag mapping, sorted."""
    return sorted(tags)


class PrometheusMetricsProvider:
    """Creates metrics on first use and optionally serves them over HTTP."""

    name = "prometheus_metrics_provider"

    def __init__(self, config: PrometheusConfig | None = None) -> None:
        self.config = config or PrometheusConfig()
        self.registry = MetricsRegistry()
        self.counters: dict[str, Counter] = {}
        self.histograms: dict[str, Histogram] = {}
        self.gauges: dict[str, Gauge] = {}
        self._lock = threading.Lock()
        self.http_server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        if self.config.enabled:
            self._start_http_server(self.config.port, self.config.path)

    @property
    def port(self) -> int | None:
        return self.http_server.server_address[1] if self.http_server else None

    def _get(self, store: dict, name: str, factory):
        with self._lock:
            metric = store.get(name)
            if metric is None:
                metric = self.registry.register(factory())
                store[name] = metric
            return metric

    def inc_counter(self, name: str, tags: Mapping[str, str]) -> None:
        counter = self._get(self.counters, name, lambda: Counter(name, f"Counter metric for {name}", tag_keys(tags)))
        counter.labels(**tags).inc()

    def observe_histogram(self, name: str, value: float, tags: Mapping[str, str]) -> None:
        histogram = self._get(
            self.histograms, name, lambda: Histogram(name, f"Histogram metric for {name}", tag_keys(tags))
        )
        histogram.labels(**tags).observe(value)

    def set_gauge(self, name: str, value: float, tags: Mapping[str, str]) -> None:
        gauge = self._get(self.gauges, name, lambda: Gauge(name, f"Gauge metric for {name}", tag_keys(tags)))
        gauge.labels(**tags).set(value)

    def _start_http_server(self, port: int, path: str) -> None:
        registry = self.registry

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:  # noqa: N802
                if self.path.split("?", 1)[0] != path:
                    self.send_error(404)
                    return
                body = registry.render().encode()
                self.send_response(200)
                self.send_header("Content-Type", "text/plain; version=0.0.4")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format, *args) -> None:
                _log.debug("%s - %s", self.address_string(), format % args)

        self.http_server = ThreadingHTTPServer(("", port), Handler)
        self.http_server.timeout = 5
        self._thread = threading.Thread(target=self.http_server.serve_forever, daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        """Stop the HTTP exporter, if running. Safe to call repeatedly."""
        server, self.http_server = self.http_server, None
        if server is not None:
            server.shutdown()
            server.server_close()
        if self._thread is not None:
            self._thread.join()
            self._thread = None