"""Metrics, tracing, system monitoring, threshold detection, plugin registry and CSV import."""

__version__ = "0.1.0"