"""Threshold-based anomaly detector plugin."""

from __future__ import annotations

import dataclasses
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

_VALID_SEVERITIES = frozenset({"low", "medium", "high", "critical"})
_DETECTOR_TYPE = "threshold"


class PluginNotInitializedError(RuntimeError):
    """The plugin was used before a successful ``initialize``."""


class DetectorConfigError(ValueError):
    """The detector configuration is invalid."""


class ValueExtractionError(ValueError):
    """The value to check could not be read from the data."""


@dataclass
class ThresholdDetectorConfig:
    field_name: str = ""
    upper_threshold: float = 0.0
    lower_threshold: float = 0.0
    severity: str = "medium"
    description: str = ""
    enable_upper: bool = True
    enable_lower: bool = True
    tolerant_count: int = 1


@dataclass
class ThresholdDetectionResult:
    is_anomalous: bool
    value: float
    threshold: float = 0.0
    threshold_type: str = ""
    severity: str = ""
    description: str = ""
    detected_at: datetime = field(default_factory=datetime.now)
    field_name: str = ""
    confidence: float = 1.0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def extract_value(data: Mapping[str, Any], field_name: str) -> float:
    """Read ``field_name`` from ``data`` as a float.

    Numbers are converted directly and strings are parsed; anything else
    raises :class:`ValueExtractionError`.
    """
    if field_name not in data:
        raise ValueExtractionError(f"field {field_name} does not exist")
    raw = data[field_name]
    if _is_number(raw):
        try:
            return float(raw)
        except OverflowError as exc:
            raise ValueExtractionError(f"value of field {field_name} is out of range") from exc
    if isinstance(raw, str):
        if raw != raw.strip() or "_" in raw:
            raise ValueExtractionError(f"cannot convert string '{raw}' to a number")
        try:
            return float(raw)
        except ValueError as exc:
            raise ValueExtractionError(f"cannot convert string '{raw}' to a number") from exc
    raise ValueExtractionError(f"unsupported data type: {type(raw).__name__}")


def check_threshold(value: float, config: ThresholdDetectorConfig) -> ThresholdDetectionResult:
    """Compare ``value`` with the configured limits; the upper limit is checked first."""
    result = ThresholdDetectionResult(
        is_anomalous=False,
        value=value,
        severity=config.severity,
        description=config.description,
        field_name=config.field_name,
        confidence=1.0,
    )
    if config.enable_upper and value > config.upper_threshold:
        result.is_anomalous = True
        result.threshold = config.upper_threshold
        result.threshold_type = "upper"
    elif config.enable_lower and value < config.lower_threshold:
        result.is_anomalous = True
        result.threshold = config.lower_threshold
        result.threshold_type = "lower"
    return result


class ThresholdDetectorPlugin:
    """Flags values of one data field that lie outside configured limits."""

    name = "threshold_detector_plugin"

    def __init__(self, logger: Any, metrics_provider: Any = None) -> None:
        self.logger = logger
        self.metrics_provider = metrics_provider
        self.config = ThresholdDetectorConfig()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _tags(self, **extra: str) -> dict[str, str]:
        return {"detector_type": _DETECTOR_TYPE, "plugin": self.name, **extra}

    def _count(self, metric: str, **extra: str) -> None:
        if self.metrics_provider is not None:
            self.metrics_provider.inc_counter(metric, self._tags(**extra))

    def initialize(self, config: Mapping[str, Any]) -> None:
        self.logger.info("initialising threshold detector plugin %s", self.name)
        self._parse_config(config)
        try:
            self._validate_config()
        except DetectorConfigError as exc:
            raise DetectorConfigError(f"configuration validation failed: {exc}") from exc
        self._initialized = True
        self.logger.info(
            "threshold detector plugin %s initialised: field=%s upper=%s lower=%s",
            self.name, self.config.field_name,
            self.config.upper_threshold, self.config.lower_threshold,
        )

    def _parse_config(self, cfg: Mapping[str, Any]) -> None:
        updates: dict[str, Any] = {}
        for key in ("field_name", "severity", "description"):
            if isinstance(cfg.get(key), str):
                updates[key] = cfg[key]
        for key in ("upper_threshold", "lower_threshold"):
            if _is_number(cfg.get(key)):
                updates[key] = float(cfg[key])
        for key in ("enable_upper", "enable_lower"):
            if isinstance(cfg.get(key), bool):
                updates[key] = cfg[key]
        tolerant = cfg.get("tolerant_count")
        if isinstance(tolerant, int) and not isinstance(tolerant, bool):
            updates["tolerant_count"] = tolerant
        self.config = dataclasses.replace(self.config, **updates)

    def _validate_config(self) -> None:
        cfg = self.config
        if not cfg.field_name:
            raise DetectorConfigError("field_name must not be empty")
        if not cfg.enable_upper and not cfg.enable_lower:
            raise DetectorConfigError("at least one of upper or lower checking must be enabled")
        if cfg.enable_upper and cfg.enable_lower and cfg.upper_threshold <= cfg.lower_threshold:
            raise DetectorConfigError("upper threshold must be greater than lower threshold")
        if cfg.severity not in _VALID_SEVERITIES:
            raise DetectorConfigError(f"invalid severity: {cfg.severity}")
        if cfg.tolerant_count < 1:
            raise DetectorConfigError("tolerant_count must be at least 1")

    def start(self) -> None:
        if not self._initialized:
            raise PluginNotInitializedError("plugin is not initialised")
        self.logger.info("threshold detector plugin %s started", self.name)
        self._count("detector_started_total")

    def stop(self) -> None:
        self.logger.info("threshold detector plugin %s stopping", self.name)
        self._initialized = False
        self._count("detector_stopped_total")

    def execute(self, data: Mapping[str, Any],
                detector_config: Mapping[str, Any] | None = None) -> ThresholdDetectionResult:
        """Check ``data`` against the limits, optionally overridden for this call."""
        if not self._initialized:
            raise PluginNotInitializedError("plugin is not initialised")
        started = time.perf_counter()
        try:
            return self._execute(data, detector_config or {})
        finally:
            if self.metrics_provider is not None:
                self.metrics_provider.observe_histogram(
                    "detector_execution_duration_seconds", time.perf_counter() - started, self._tags()
                )

    def _runtime_config(self, overrides: Mapping[str, Any]) -> ThresholdDetectorConfig:
        updates: dict[str, Any] = {}
        for key in ("upper_threshold", "lower_threshold"):
            if _is_number(overrides.get(key)):
                updates[key] = float(overrides[key])
        if isinstance(overrides.get("severity"), str):
            updates["severity"] = overrides["severity"]
        return dataclasses.replace(self.config, **updates)

    def _execute(self, data: Mapping[str, Any], overrides: Mapping[str, Any]) -> ThresholdDetectionResult:
        self.logger.debug("running threshold detection on field %s", self.config.field_name)
        config = self._runtime_config(overrides)
        try:
            value = extract_value(data, config.field_name)
        except ValueExtractionError as exc:
            self.logger.warn("failed to extract value of field %s: %s", config.field_name, exc)
            self._count("detector_extraction_errors_total", field=config.field_name)
            raise
        result = check_threshold(value, config)
        self._count("detector_executions_total", anomalous="true" if result.is_anomalous else "false")
        if result.is_anomalous:
            self._count("detector_anomalies_total", severity=result.severity,
                        threshold_type=result.threshold_type)
        self.logger.info(
            "threshold detection finished: field=%s value=%s anomalous=%s severity=%s",
            config.field_name, value if math.isfinite(value) else str(value),
            result.is_anomalous, result.severity,
        )
        return result