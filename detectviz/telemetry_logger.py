"""Console logger used by the platform's infrastructure components."""

from __future__ import annotations

import sys
from typing import Any, Mapping, TextIO

_LEVELS = {"debug": 10, "info": 20, "warn": 30, "error": 40, "fatal": 50}
_CONTEXT_KEYS = ("trace_id", "span_id")


class ConsoleLogger:
    """Writes ``[LEVEL] message`` lines to a stream.

    Messages are %-formatted with the extra arguments when they match;
    otherwise the arguments are appended to the message. Fields bound with
    :meth:`with_fields` or :meth:`with_context` follow as ``key=value``.
    """

    def __init__(self, name: str = "otelzap", level: str = "info", stream: TextIO | None = None) -> None:
        level = level.lower()
        if level not in _LEVELS:
            raise ValueError(f"unknown log level: {level}")
        self.name = name
        self.level = level
        self.stream = stream if stream is not None else sys.stderr
        self.fields: tuple[tuple[str, Any], ...] = ()

    def _emit(self, level: str, msg: str, args: tuple[Any, ...]) -> None:
        if _LEVELS[level] < _LEVELS[self.level]:
            return
        text = msg
        if args:
            try:
                text = msg % args
            except (TypeError, ValueError):
                text = " ".join([msg, *map(str, args)])
        if self.fields:
            text = " ".join([text, *(f"{key}={value}" for key, value in self.fields)])
        self.stream.write(f"[{level.upper()}] {text}\n")
        self.stream.flush()

    def debug(self, msg: str, *args: Any) -> None:
        self._emit("debug", msg, args)

    def info(self, msg: str, *args: Any) -> None:
        self._emit("info", msg, args)

    def warn(self, msg: str, *args: Any) -> None:
        self._emit("warn", msg, args)

    def error(self, msg: str, *args: Any) -> None:
        self._emit("error", msg, args)

    def fatal(self, msg: str, *args: Any) -> None:
        """Log the message and terminate with exit status 1."""
        self._emit("fatal", msg, args)
        raise SystemExit(1)

    def _bind(self, fields: list[tuple[str, Any]]) -> "ConsoleLogger":
        child = ConsoleLogger(self.name, self.level, self.stream)
        child.fields = self.fields + tuple(fields)
        return child

    def with_fields(self, *args: Any) -> "ConsoleLogger":
        """Return a logger that appends the given key/value pairs to every line."""
        pairs = [(str(key), value) for key, value in zip(args[::2], args[1::2])]
        if len(args) % 2:
            pairs.append((str(args[-1]), None))
        return self._bind(pairs)

    def with_context(self, ctx: Any) -> "ConsoleLogger":
        """Return a logger carrying the trace and span ids found in ``ctx``."""
        fields = []
        for key in _CONTEXT_KEYS:
            if isinstance(ctx, Mapping):
                value = ctx.get(key)
            else:
                value = getattr(ctx, key, None)
            if value is not None:
                fields.append((key, value))
        return self._bind(fields)


def create_logger(config: Mapping[str, Any] | None = None) -> ConsoleLogger:
    """Build a logger from a configuration mapping (``level`` defaults to info)."""
    config = config or {}
    level = config.get("level")
    if not isinstance(level, str):
        level = "info"
    logger = ConsoleLogger(level=level)
    logger.info("logger initialised, level: %s", level)
    return logger