"""Span-based tracing with sampling and in-memory span export."""

from __future__ import annotations

import random
import secrets
import threading
import time
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

_current_span: ContextVar["Span | None"] = ContextVar("detectviz_current_span", default=None)


@dataclass
class TracingConfig:
    service_name: str = ""
    service_version: str = ""
    environment: str = ""
    otlp_endpoint: str = ""
    sampling_rate: float = 1.0
    enabled: bool = False


class Span:
    """A timed operation with tags and an optional error status."""

    def __init__(self, provider: "TracingProvider", name: str, parent: "Span | None", sampled: bool) -> None:
        self._provider = provider
        self.name = name
        self.trace_id = parent.trace_id if parent else secrets.token_hex(16)
        self.span_id = secrets.token_hex(8)
        self.parent_id = parent.span_id if parent else None
        self.sampled = sampled
        self.tags: dict[str, Any] = {}
        self.errors: list[str] = []
        self.status: str = "unset"
        self.status_message = ""
        self.start_time = time.time()
        self.end_time: float | None = None
        self._token = None

    def set_tag(self, key: str, value: Any) -> None:
        if isinstance(value, (str, bool, int, float)):
            self.tags[key] = value
        else:
            self.tags[key] = str(value)

    def set_error(self, error: BaseException) -> None:
        self.errors.append(str(error))
        self.status = "error"
        self.status_message = str(error)

    def finish(self) -> None:
        if self.end_time is not None:
            return
        self.end_time = time.time()
        self._provider._on_finish(self)

    @property
    def finished(self) -> bool:
        return self.end_time is not None

    def __enter__(self) -> "Span":
        self._token = _current_span.set(self)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            self.set_error(exc)
        if self._token is not None:
            _current_span.reset(self._token)
            self._token = None
        self.finish()
        return False


class TracingProvider:
    """Creates spans and keeps the sampled, finished ones for export."""

    name = "jaeger_tracing_provider"

    def __init__(self, config: TracingConfig) -> None:
        if not 0.0 <= config.sampling_rate <= 1.0:
            raise ValueError("sampling_rate must be between 0 and 1")
        self.config = config
        self.resource = {
            "service.name": config.service_name,
            "service.version": config.service_version,
            "deployment.environment": config.environment,
        }
        self._lock = threading.Lock()
        self._finished: list[Span] = []
        self._closed = False

    def _sample(self) -> bool:
        rate = self.config.sampling_rate
        return rate >= 1.0 or (rate > 0.0 and random.random() < rate)

    def start_span(self, operation_name: str) -> Span:
        parent = _current_span.get()
        sampled = parent.sampled if parent is not None else self._sample()
        return Span(self, operation_name, parent, sampled)

    def _on_finish(self, span: Span) -> None:
        if not span.sampled:
            return
        with self._lock:
            if not self._closed:
                self._finished.append(span)

    def finished_spans(self) -> list[Span]:
        with self._lock:
            return list(self._finished)

    def shutdown(self) -> None:
        """Stop recording spans. Safe to call repeatedly."""
        with self._lock:
            self._closed = True


class NoOpSpan:
    """Span that exports nothing; it only counts what it discarded."""

    def __init__(self) -> None:
        self.dropped_tags = 0
        self.dropped_errors = 0
        self.finished = False

    def set_tag(self, key: str, value: Any) -> None:
        self.dropped_tags += 1

    def set_error(self, error: BaseException) -> None:
        self.dropped_errors += 1

    def finish(self) -> None:
        self.finished = True

    def __enter__(self) -> "NoOpSpan":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            self.set_error(exc)
        self.finish()
        return False


class NoOpTracingProvider:
    """Provider used when tracing is disabled."""

    name = "noop_tracing_provider"

    def __init__(self) -> None:
        self.closed = False

    def start_span(self, operation_name: str) -> NoOpSpan:
        return NoOpSpan()

    def finished_spans(self) -> list:
        return []

    def shutdown(self) -> None:
        """Mark the provider closed. Safe to call repeatedly."""
        self.closed = True


def create_tracing_provider(config: TracingConfig) -> TracingProvider | NoOpTracingProvider:
    """Return a recording provider when enabled, otherwise a no-op one."""
    if not config.enabled:
        return NoOpTracingProvider()
    return TracingProvider(config)