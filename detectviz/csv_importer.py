"""CSV importer plugin: reads CSV files and inserts their rows in batches."""

from __future__ import annotations

import csv
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, Mapping, Sequence

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class ImporterNotInitializedError(RuntimeError):
    """The importer was used before a successful ``initialize``."""


class ImporterConfigError(ValueError):
    """The importer configuration is invalid."""


@dataclass
class CSVImporterConfig:
    delimiter: str = ","
    has_header: bool = True
    skip_rows: int = 0
    table_name: str = ""
    column_mapping: dict[str, str] = field(default_factory=dict)
    batch_size: int = 1000
    max_rows: int = 0
    validate_data: bool = True
    datetime_format: str = "%Y-%m-%d %H:%M:%S"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class CSVImporterPlugin:
    """Imports CSV files into a database table.

    ``db_client.get_db()`` supplies a DB-API connection; rows are inserted
    with ``executemany`` using ``?`` placeholders. When it returns None the
    statements are only built and logged.
    """

    name = "csv_importer_plugin"

    def __init__(self, db_client: Any, logger: Any) -> None:
        self.db_client = db_client
        self.logger = logger
        self.config = CSVImporterConfig()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self, config: Mapping[str, Any]) -> None:
        self.logger.info("initialising CSV importer plugin %s", self.name)
        self._parse_config(config)
        try:
            self._validate_config()
        except ImporterConfigError as exc:
            raise ImporterConfigError(f"configuration validation failed: {exc}") from exc
        self._initialized = True
        self.logger.info("CSV importer plugin %s initialised", self.name)

    def _parse_config(self, cfg: Mapping[str, Any]) -> None:
        updates: dict[str, Any] = {}
        for key in ("delimiter", "table_name", "datetime_format"):
            if isinstance(cfg.get(key), str):
                updates[key] = cfg[key]
        for key in ("has_header", "validate_data"):
            if isinstance(cfg.get(key), bool):
                updates[key] = cfg[key]
        for key in ("skip_rows", "batch_size", "max_rows"):
            if _is_int(cfg.get(key)):
                updates[key] = cfg[key]
        mapping = cfg.get("column_mapping")
        if isinstance(mapping, Mapping) and all(
            isinstance(k, str) and isinstance(v, str) for k, v in mapping.items()
        ):
            updates["column_mapping"] = dict(mapping)
        self.config = dataclasses.replace(self.config, **updates)

    def _validate_config(self) -> None:
        cfg = self.config
        if not cfg.table_name:
            raise ImporterConfigError("table_name must not be empty")
        if cfg.batch_size <= 0:
            raise ImporterConfigError("batch_size must be greater than 0")
        if len(cfg.delimiter) != 1:
            raise ImporterConfigError("delimiter must be a single character")

    def start(self) -> None:
        if not self._initialized:
            raise ImporterNotInitializedError("plugin is not initialised")
        self.logger.info("CSV importer plugin %s started", self.name)

    def stop(self) -> None:
        self.logger.info("CSV importer plugin %s stopping", self.name)
        self._initialized = False

    def import_data(self, source: str) -> int:
        """Import the CSV file at ``source`` and return the number of rows imported."""
        if not self._initialized:
            raise ImporterNotInitializedError("plugin is not initialised")
        cfg = self.config
        self.logger.info("importing CSV data from %s into %s", source, cfg.table_name)
        with open(source, newline="", encoding="utf-8") as fh:
            reader = csv.reader(fh, delimiter=cfg.delimiter)
            records = self._records(reader)
            for _ in range(cfg.skip_rows):
                if next(records, None) is None:
                    break
            headers: list[str] = []
            if cfg.has_header:
                first = next(records, None)
                if first is None:
                    raise csv.Error("failed to read header row: no data")
                headers = first
                self.logger.debug("CSV header row: %s", headers)
            return self._import_in_batches(records, headers)

    @staticmethod
    def _records(reader: Any) -> Iterator[list[str]]:
        """Yield non-blank records; every record must be as wide as the first."""
        width: int | None = None
        for record in reader:
            if not record:
                continue
            if width is None:
                width = len(record)
            elif len(record) != width:
                raise csv.Error(f"record on line {reader.line_num}: wrong number of fields")
            yield record

    def _import_in_batches(self, records: Iterator[list[str]], headers: list[str]) -> int:
        cfg = self.config
        db = self.db_client.get_db()
        batch: list[list[str]] = []
        total = 0
        for record in records:
            if cfg.max_rows > 0 and total >= cfg.max_rows:
                self.logger.info("reached max_rows limit %d", cfg.max_rows)
                break
            if cfg.validate_data and not self._validate_record(record, headers, total + 1):
                continue
            batch.append(record)
            total += 1
            if len(batch) >= cfg.batch_size:
                self._insert_batch(db, batch, headers)
                batch = []
                self.logger.debug("inserted batch of %d rows, total %d", cfg.batch_size, total)
        if batch:
            self._insert_batch(db, batch, headers)
        self.logger.info("CSV data import finished: %d rows into %s", total, cfg.table_name)
        return total

    def _validate_record(self, record: Sequence[str], headers: Sequence[str], row: int) -> bool:
        if self.config.has_header and len(record) != len(headers):
            self.logger.warn(
                "row %d failed validation, skipping: expected %d columns, got %d",
                row, len(headers), len(record),
            )
            return False
        for index, value in enumerate(record):
            if not value.strip():
                column = headers[index] if self.config.has_header and index < len(headers) else f"column_{index}"
                self.logger.debug("empty value in column %s (index %d)", column, index)
        return True

    def build_insert_sql(self, headers: Sequence[str] | None, width: int) -> str:
        """Build the parameterised INSERT statement for rows of ``width`` values."""
        cfg = self.config
        if cfg.has_header and headers:
            columns = list(headers)
        else:
            columns = [f"column_{i}" for i in range(1, width + 1)]
        columns = [cfg.column_mapping.get(col, col) for col in columns]
        placeholders = ", ".join("?" * width)
        return f"INSERT INTO {cfg.table_name} ({', '.join(columns)}) VALUES ({placeholders})"

    def _insert_batch(self, db: Any, batch: list[list[str]], headers: list[str]) -> None:
        if not batch:
            return
        sql = self.build_insert_sql(headers, len(batch[0]))
        self.logger.debug("executing insert SQL %s for %d rows", sql, len(batch))
        if db is not None:
            db.executemany(sql, batch)
            commit = getattr(db, "commit", None)
            if callable(commit):
                commit()
        self.logger.info("inserted %d rows into %s", len(batch), self.config.table_name)

    def convert_value(self, value: str, target_type: str) -> Any:
        """Convert a CSV cell to ``int``, ``float``, ``bool``, ``datetime`` or leave it as text."""
        value = value.strip()
        if target_type == "int":
            if "_" in value:
                raise ValueError(f"invalid int value: {value!r}")
            return int(value)
        if target_type == "float":
            if "_" in value:
                raise ValueError(f"invalid float value: {value!r}")
            return float(value)
        if target_type == "bool":
            if value in _TRUE_WORDS:
                return True
            if value in _FALSE_WORDS:
                return False
            raise ValueError(f"invalid bool value: {value!r}")
        if target_type == "datetime":
            return datetime.strptime(value, self.config.datetime_format)
        return value