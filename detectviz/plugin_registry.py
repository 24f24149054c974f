"""Registry of named plugin instances with metadata and config validation."""

from __future__ import annotations

import json
import sys
import threading
from pathlib import Path
from typing import Any, Iterable, Mapping

import jsonschema
from jsonschema.validators import validator_for

from detectviz.telemetry_logger import ConsoleLogger


class PluginRegistryError(Exception):
    """A plugin could not be registered or found."""


class PluginConfigError(ValueError):
    """A plugin configuration is malformed or fails its schema."""


def _type_name(obj: Any) -> str:
    cls = type(obj)
    return f"{cls.__module__}.{cls.__qualname__}"


def _error_text(error: jsonschema.ValidationError) -> str:
    path = ".".join(str(p) for p in error.absolute_path) or "(root)"
    return f"{path}: {error.message}"


class PluginRegistry:
    """Holds plugin instances by name.

    Plugin configurations are checked against ``<schema_dir>/<type>.json``
    when such a schema file exists.
    """

    name = "core_registry"

    def __init__(self, logger: Any = None, schema_dir: str | Path = Path("schemas") / "plugins") -> None:
        self.logger = logger if logger is not None else ConsoleLogger(
            name="simple_console", level="debug", stream=sys.stdout
        )
        self.schema_dir = Path(schema_dir)
        self._plugins: dict[str, Any] = {}
        self._metadata: dict[str, dict[str, Any]] = {}
        self._lock = threading.RLock()

    def register(self, name: str, plugin: Any) -> None:
        if not name:
            raise PluginRegistryError("plugin name cannot be empty")
        with self._lock:
            if name in self._plugins:
                raise PluginRegistryError(f"plugin '{name}' is already registered")
            self._plugins[name] = plugin
            self._metadata[name] = {"name": name, "type": _type_name(plugin), "status": "registered"}

    def get(self, name: str) -> Any:
        with self._lock:
            try:
                return self._plugins[name]
            except KeyError:
                raise PluginRegistryError(f"plugin '{name}' not found") from None

    def names(self) -> list[str]:
        with self._lock:
            return list(self._plugins)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._plugins

    def __len__(self) -> int:
        with self._lock:
            return len(self._plugins)

    def get_metadata(self, name: str) -> dict[str, Any]:
        """Return a copy of the plugin's metadata."""
        with self._lock:
            metadata = self._metadata.get(name)
            if metadata is None:
                raise PluginRegistryError(f"metadata for plugin '{name}' not found")
            return dict(metadata)

    def update_metadata(self, name: str, metadata: Mapping[str, Any]) -> None:
        with self._lock:
            if name not in self._plugins:
                raise PluginRegistryError(f"plugin '{name}' not found")
            self._metadata.setdefault(name, {}).update(metadata)

    def validate_plugins_config(self, plugins: Iterable[Mapping[str, Any]]) -> None:
        """Validate each ``{"type", "name", "config"}`` entry; stop at the first failure."""
        for entry in plugins:
            plugin_type = entry.get("type")
            if not isinstance(plugin_type, str):
                raise PluginConfigError("plugin configuration is missing the required 'type' field")
            plugin_name = entry.get("name")
            if not isinstance(plugin_name, str):
                raise PluginConfigError("plugin configuration is missing the required 'name' field")
            config = entry.get("config")
            if not isinstance(config, Mapping):
                raise PluginConfigError(
                    f"plugin {plugin_name} configuration is missing the required 'config' field"
                )
            try:
                self.validate_plugin_config(plugin_type, config)
            except PluginConfigError as exc:
                raise PluginConfigError(
                    f"plugin {plugin_name} (type: {plugin_type}) configuration validation failed: {exc}"
                ) from exc

    def validate_plugin_config(self, plugin_type: str, config: Mapping[str, Any]) -> bool:
        """Check ``config`` against the type's schema.

        Returns False when no schema file exists (validation skipped) and
        True when the configuration passed.
        """
        schema_path = self.schema_dir / f"{plugin_type}.json"
        if not schema_path.exists():
            self.logger.warn("no JSON schema found for plugin %s, skipping validation", plugin_type)
            return False
        try:
            schema = json.loads(schema_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PluginConfigError(f"cannot read plugin schema file {schema_path}: {exc}") from exc
        try:
            document = json.loads(json.dumps(config))
        except (TypeError, ValueError) as exc:
            raise PluginConfigError(f"cannot serialise plugin configuration as JSON: {exc}") from exc
        validator_cls = validator_for(schema, default=jsonschema.Draft7Validator)
        try:
            validator_cls.check_schema(schema)
        except jsonschema.SchemaError as exc:
            raise PluginConfigError(f"plugin schema validation error: {exc.message}") from exc
        errors = sorted(
            validator_cls(schema).iter_errors(document),
            key=lambda e: [str(p) for p in e.absolute_path],
        )
        if errors:
            details = "\n- ".join(_error_text(e) for e in errors)
            raise PluginConfigError(f"plugin {plugin_type} configuration validation failed, errors:\n- {details}")
        self.logger.info("plugin %s configuration passed JSON schema validation", plugin_type)
        return True