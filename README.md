# detectviz

Building blocks for a small monitoring platform, all running in-process:

- **`detectviz.metrics`**: `Counter`, `Gauge` and `Histogram` with labels, a
  `MetricsRegistry` that renders them in the Prometheus text format, and a
  `PrometheusMetricsProvider` that creates metrics on first use and can serve
  them over HTTP.
- **`detectviz.collector`**: `MetricsCollector`, a fixed set of platform
  metrics (HTTP requests, plugin calls and health, system resources,
  detections, data imports, errors, config reloads). Durations may be given in
  seconds or as `timedelta`.
- **`detectviz.system_monitor`**: `SystemMonitor`, which samples the current
  process's memory, thread count, CPU usage, open files and garbage-collector
  statistics into a `MetricsCollector`, once on `start()` and then at a fixed
  interval on a background thread until `stop()`.
- **`detectviz.tracing`**: spans with tags, errors and parent/child trace ids.
  `create_tracing_provider` gives a recording `TracingProvider` when tracing is
  enabled and a `NoOpTracingProvider` when it is not.
- **`detectviz.telemetry_logger`**: `ConsoleLogger` and `create_logger`, a
  small leveled logger with printf-style messages and bound fields.
- **`detectviz.optimizer`**: `PerformanceOptimizer` with a TTL cache
  (`CacheManager`), named object pools (`PoolManager`), a garbage-collection
  trigger (`GCOptimizer`) and a `limit()` context manager that caps concurrency.
- **`detectviz.threshold_detector`**: `ThresholdDetectorPlugin`, which flags
  values above an upper or below a lower threshold, plus the plain functions
  `extract_value` and `check_threshold`.
- **`detectviz.plugin_registry`**: `PluginRegistry`, a thread-safe registry of
  named plugins with metadata and JSON Schema validation of plugin configs.
- **`detectviz.csv_importer`**: `CSVImporterPlugin`, which reads CSV files and
  inserts their rows in batches through a DB-API connection.

Requires Python 3.10 or later. Runtime dependencies are `psutil` and
`jsonschema`.

## Metrics

```python
from detectviz.metrics import PrometheusConfig, PrometheusMetricsProvider

provider = PrometheusMetricsProvider(PrometheusConfig(port=9090, path="/metrics", enabled=False))
provider.inc_counter("jobs_total", {"queue": "default"})
provider.observe_histogram("job_duration_seconds", 0.42, {"queue": "default"})
provider.set_gauge("workers_busy", 3, {"pool": "main"})
print(provider.registry.render())
provider.shutdown()
```

With `enabled=True` the provider serves the rendered metrics on the given port
and path until `shutdown()` is called; other paths answer 404. Registering two
metrics with the same name in one `MetricsRegistry` raises
`DuplicateMetricError`.

## Platform metrics and system monitoring

```python
from detectviz.collector import MetricsCollector
from detectviz.system_monitor import SystemMonitor
from detectviz.telemetry_logger import ConsoleLogger

collector = MetricsCollector()
collector.record_http_request("GET", "/api/v1/users", "200", 0.1, 1024)

monitor = SystemMonitor(collector, ConsoleLogger(), interval=15)
monitor.start()
print(monitor.get_metrics()["rss"])
monitor.stop()
```

## Threshold detection

```python
from detectviz.telemetry_logger import create_logger
from detectviz.threshold_detector import ThresholdDetectorPlugin

detector = ThresholdDetectorPlugin(create_logger({"level": "info"}), None)
detector.initialize({
    "field_name": "cpu_usage",
    "upper_threshold": 80.0,
    "lower_threshold": 20.0,
    "severity": "high",
})
detector.start()
result = detector.execute({"cpu_usage": 95.0}, {})
print(result.is_anomalous, result.threshold_type)               # True upper
detector.execute({"cpu_usage": 85.0}, {"upper_threshold": 90.0})  # runtime override
detector.stop()
```

A missing field or a value that is not a number raises `ValueExtractionError`;
an invalid configuration raises `DetectorConfigError`; calling `start` or
`execute` before `initialize` raises `PluginNotInitializedError`. Pass a
`PrometheusMetricsProvider` instead of `None` to have executions, anomalies and
durations counted.

## Tracing

```python
from detectviz.tracing import TracingConfig, create_tracing_provider

provider = create_tracing_provider(TracingConfig(service_name="api", enabled=True))
with provider.start_span("load-config") as span:
    span.set_tag("source", "file")
print([s.name for s in provider.finished_spans()])
provider.shutdown()
```

Spans opened inside another span's `with` block share its trace id and
sampling decision. An exception leaving the block is recorded on the span.

## Plugin registry

```python
from detectviz.plugin_registry import PluginRegistry

registry = PluginRegistry(None, "schemas/plugins")
registry.register("threshold", object())
registry.update_metadata("threshold", {"version": "1.0.0"})
print(registry.names())
print(registry.get_metadata("threshold"))
```

`validate_plugins_config` checks each entry's `config` against
`<schema_dir>/<type>.json` when such a schema file exists, and raises
`PluginConfigError` on a missing field or a failed validation. Without a schema
file the entry is skipped with a warning.

## CSV import

```python
import sqlite3

from detectviz.csv_importer import CSVImporterPlugin
from detectviz.telemetry_logger import ConsoleLogger


class SQLiteClient:
    def __init__(self, conn):
        self.conn = conn

    def get_db(self):
        return self.conn


conn = sqlite3.connect(":memory:")
conn.execute("CREATE TABLE samples (timestamp, cpu, memory)")
importer = CSVImporterPlugin(SQLiteClient(conn), ConsoleLogger())
importer.initialize({"table_name": "samples", "batch_size": 500})
importer.start()
rows = importer.import_data("samples.csv")
```

`import_data` returns the number of rows imported. If `get_db()` returns
`None`, the insert statements are built and logged but nothing is executed.

## What it does not do

- There is no command-line program; everything is used as a library.
- `TracingProvider` keeps finished spans in memory only. It does not send them
  to the configured `otlp_endpoint` or to any other collector.
- The package provides no database client of its own; `CSVImporterPlugin`
  needs one supplied that hands out a DB-API connection.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.