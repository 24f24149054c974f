"""Platform-wide metrics: HTTP, plugins, system, business, errors and config."""

from __future__ import annotations

from datetime import timedelta

from detectviz.metrics import DEFAULT_BUCKETS, Counter, Gauge, Histogram, MetricsRegistry

_RESPONSE_SIZE_BUCKETS = (100, 1000, 10000, 100000, 1000000)
_DETECTION_LATENCY_BUCKETS = (0.001, 0.01, 0.1, 1, 10, 60)
_IMPORT_SIZE_BUCKETS = (1024, 10240, 102400, 1048576, 10485760)
_CONFIG_LOAD_BUCKETS = (0.001, 0.01, 0.1, 1, 5)


def _seconds(duration: float | timedelta) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


class MetricsCollector:
    """Owns the platform's named metrics and records events into them.

    Durations may be given as seconds or as ``timedelta``.
    """

    name = "metrics_collector"

    def __init__(self, registry: MetricsRegistry | None = None, prefix: str = "detectviz") -> None:
        self.registry = registry if registry is not None else MetricsRegistry()
        self.prefix = prefix

        def counter(suffix: str, help: str, labels: tuple[str, ...]) -> Counter:
            return self.registry.register(Counter(f"{prefix}_{suffix}", help, labels))

        def gauge(suffix: str, help: str, labels: tuple[str, ...] = ()) -> Gauge:
            return self.registry.register(Gauge(f"{prefix}_{suffix}", help, labels))

        def histogram(suffix: str, help: str, labels: tuple[str, ...], buckets) -> Histogram:
            return self.registry.register(Histogram(f"{prefix}_{suffix}", help, labels, buckets))

        # HTTP
        self.http_requests_total = counter(
            "http_requests_total", "Total number of HTTP requests", ("method", "endpoint", "status_code"))
        self.http_request_duration = histogram(
            "http_request_duration_seconds", "HTTP request duration in seconds",
            ("method", "endpoint"), DEFAULT_BUCKETS)
        self.http_requests_in_flight = gauge(
            "http_requests_in_flight", "Number of HTTP requests currently being processed",
            ("method", "endpoint"))
        self.http_response_size = histogram(
            "http_response_size_bytes", "HTTP response size in bytes",
            ("method", "endpoint"), _RESPONSE_SIZE_BUCKETS)

        # Plugins
        self.plugin_requests_total = counter(
            "plugin_requests_total", "Total number of plugin requests",
            ("plugin_name", "plugin_type", "status"))
        self.plugin_request_duration = histogram(
            "plugin_request_duration_seconds", "Plugin request duration in seconds",
            ("plugin_name", "plugin_type"), DEFAULT_BUCKETS)
        self.plugin_health_status = gauge(
            "plugin_health_status", "Plugin health status (1=healthy, 0=unhealthy)",
            ("plugin_name", "plugin_type"))
        self.plugin_errors = counter(
            "plugin_errors_total", "Total number of plugin errors",
            ("plugin_name", "plugin_type", "error_type"))

        # System
        self.system_memory_usage = gauge(
            "system_memory_usage_bytes", "System memory usage in bytes", ("type",))
        self.system_cpu_usage = gauge(
            "system_cpu_usage_percent", "System CPU usage percentage", ("type",))
        self.system_threads = gauge("system_threads", "Number of threads")
        self.system_open_files = gauge("system_open_files", "Number of open file descriptors")

        # Business
        self.detections_total = counter(
            "detections_total", "Total number of detections performed", ("detector_type", "result_type"))
        self.detections_latency = histogram(
            "detection_latency_seconds", "Detection latency in seconds",
            ("detector_type",), _DETECTION_LATENCY_BUCKETS)
        self.data_imports_total = counter(
            "data_imports_total", "Total number of data imports", ("importer_type", "status"))
        self.data_import_size = histogram(
            "data_import_size_bytes", "Data import size in bytes",
            ("importer_type",), _IMPORT_SIZE_BUCKETS)

        # Errors
        self.errors_total = counter("errors_total", "Total number of errors", ("component", "error_type"))
        self.panics_total = counter("panics_total", "Total number of panics", ("component",))

        # Configuration
        self.config_reloads = counter(
            "config_reloads_total", "Total number of configuration reloads", ("config_type", "status"))
        self.config_load_duration = histogram(
            "config_load_duration_seconds", "Configuration load duration in seconds",
            ("config_type",), _CONFIG_LOAD_BUCKETS)

    def record_http_request(self, method: str, endpoint: str, status_code: str,
                            duration: float | timedelta, response_size: int) -> None:
        self.http_requests_total.labels(method, endpoint, status_code).inc()
        self.http_request_duration.labels(method, endpoint).observe(_seconds(duration))
        self.http_response_size.labels(method, endpoint).observe(float(response_size))

    def record_http_request_in_flight(self, method: str, endpoint: str, delta: float) -> None:
        self.http_requests_in_flight.labels(method, endpoint).inc(delta)

    def record_plugin_request(self, plugin_name: str, plugin_type: str, status: str,
                              duration: float | timedelta) -> None:
        self.plugin_requests_total.labels(plugin_name, plugin_type, status).inc()
        self.plugin_request_duration.labels(plugin_name, plugin_type).observe(_seconds(duration))

    def record_plugin_health(self, plugin_name: str, plugin_type: str, healthy: bool) -> None:
        self.plugin_health_status.labels(plugin_name, plugin_type).set(1.0 if healthy else 0.0)

    def record_plugin_error(self, plugin_name: str, plugin_type: str, error_type: str) -> None:
        self.plugin_errors.labels(plugin_name, plugin_type, error_type).inc()

    def record_system_memory(self, mem_type: str, value: float) -> None:
        self.system_memory_usage.labels(mem_type).set(value)

    def record_system_cpu(self, cpu_type: str, percent: float) -> None:
        self.system_cpu_usage.labels(cpu_type).set(percent)

    def record_system_threads(self, count: float) -> None:
        self.system_threads.set(count)

    def record_system_open_files(self, count: float) -> None:
        self.system_open_files.set(count)

    def record_detection(self, detector_type: str, result_type: str, latency: float | timedelta) -> None:
        self.detections_total.labels(detector_type, result_type).inc()
        self.detections_latency.labels(detector_type).observe(_seconds(latency))

    def record_data_import(self, importer_type: str, status: str, size: int) -> None:
        self.data_imports_total.labels(importer_type, status).inc()
        self.data_import_size.labels(importer_type).observe(float(size))

    def record_error(self, component: str, error_type: str) -> None:
        self.errors_total.labels(component, error_type).inc()

    def record_panic(self, component: str) -> None:
        self.panics_total.labels(component).inc()

    def record_config_reload(self, config_type: str, status: str, duration: float | timedelta) -> None:
        self.config_reloads.labels(config_type, status).inc()
        self.config_load_duration.labels(config_type).observe(_seconds(duration))