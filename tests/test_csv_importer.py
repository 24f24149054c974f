import csv
import sqlite3
from datetime import datetime

import pytest

from detectviz.csv_importer import (
    CSVImporterConfig,
    CSVImporterPlugin,
    ImporterConfigError,
    ImporterNotInitializedError,
)


class RecordingLogger:
    def __init__(self):
        self.logs = []

    def _log(self, level, msg, args):
        self.logs.append((level, msg % args if args else msg))

    def debug(self, msg, *args):
        self._log("DEBUG", msg, args)

    def info(self, msg, *args):
        self._log("INFO", msg, args)

    def warn(self, msg, *args):
        self._log("WARN", msg, args)

    def error(self, msg, *args):
        self._log("ERROR", msg, args)


class NullDBClient:
    name = "test_db"

    def get_db(self):
        return None


class SQLiteClient:
    def __init__(self, ddl):
        self.conn = sqlite3.connect(":memory:")
        self.conn.execute(ddl)

    def get_db(self):
        return self.conn


TEST_DATA = "timestamp,cpu,memory\n2024-01-15 10:00:00,45.2,62.8\n2024-01-15 10:01:00,52.1,65.3\n"


def write_csv(tmp_path, text, name="test.csv"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return str(path)


def make_plugin(config, db_client=None):
    logger = RecordingLogger()
    plugin = CSVImporterPlugin(db_client or NullDBClient(), logger)
    plugin.initialize(config)
    plugin.start()
    return plugin, logger


def test_new_plugin_name_and_defaults():
    plugin = CSVImporterPlugin(NullDBClient(), RecordingLogger())
    assert plugin.name == "csv_importer_plugin"
    assert plugin.config == CSVImporterConfig()
    assert plugin.config.batch_size == 1000
    assert plugin.config.delimiter == ","


def test_init_valid_config():
    plugin = CSVImporterPlugin(NullDBClient(), RecordingLogger())
    plugin.initialize(
        {"delimiter": ",", "has_header": True, "table_name": "test_table", "batch_size": 500, "validate_data": True}
    )
    assert plugin.initialized
    assert plugin.config.batch_size == 500
    assert plugin.config.table_name == "test_table"


def test_init_missing_table_name():
    plugin = CSVImporterPlugin(NullDBClient(), RecordingLogger())
    with pytest.raises(ImporterConfigError, match="table_name"):
        plugin.initialize({"delimiter": ",", "has_header": True})
    assert not plugin.initialized


@pytest.mark.parametrize(
    "config, message",
    [
        ({"table_name": "t", "batch_size": 0}, "batch_size"),
        ({"table_name": "t", "delimiter": ";;"}, "delimiter"),
        ({"table_name": "t", "delimiter": ""}, "delimiter"),
    ],
)
def test_init_invalid_config(config, message):
    plugin = CSVImporterPlugin(NullDBClient(), RecordingLogger())
    with pytest.raises(ImporterConfigError, match=message):
        plugin.initialize(config)


def test_start_and_import_require_initialisation(tmp_path):
    plugin = CSVImporterPlugin(NullDBClient(), RecordingLogger())
    with pytest.raises(ImporterNotInitializedError):
        plugin.start()
    with pytest.raises(ImporterNotInitializedError):
        plugin.import_data(write_csv(tmp_path, TEST_DATA))


def test_stop_resets_initialisation(tmp_path):
    plugin, _ = make_plugin({"table_name": "t"})
    plugin.stop()
    assert not plugin.initialized
    with pytest.raises(ImporterNotInitializedError):
        plugin.import_data(write_csv(tmp_path, TEST_DATA))


def test_import_data_logs_completion(tmp_path):
    plugin, logger = make_plugin({"table_name": "test_table", "has_header": True, "batch_size": 2})
    assert plugin.import_data(write_csv(tmp_path, TEST_DATA)) == 2
    assert any(level == "INFO" and "CSV data import finished" in msg for level, msg in logger.logs)


def test_import_data_into_sqlite(tmp_path):
    client = SQLiteClient("CREATE TABLE test_table (timestamp TEXT, cpu TEXT, memory TEXT)")
    plugin, _ = make_plugin({"table_name": "test_table", "batch_size": 2}, client)
    assert plugin.import_data(write_csv(tmp_path, TEST_DATA)) == 2
    rows = client.conn.execute("SELECT timestamp, cpu, memory FROM test_table ORDER BY timestamp").fetchall()
    assert rows == [("2024-01-15 10:00:00", "45.2", "62.8"), ("2024-01-15 10:01:00", "52.1", "65.3")]


def test_import_multiple_batches_and_max_rows(tmp_path):
    text = "a,b\n" + "".join(f"{i},{i * 2}\n" for i in range(10))
    client = SQLiteClient("CREATE TABLE t (a TEXT, b TEXT)")
    plugin, _ = make_plugin({"table_name": "t", "batch_size": 3, "max_rows": 7}, client)
    assert plugin.import_data(write_csv(tmp_path, text)) == 7
    assert client.conn.execute("SELECT COUNT(*) FROM t").fetchone() == (7,)


def test_import_without_header_uses_default_columns(tmp_path):
    client = SQLiteClient("CREATE TABLE t (column_1 TEXT, column_2 TEXT)")
    plugin, _ = make_plugin({"table_name": "t", "has_header": False}, client)
    assert plugin.import_data(write_csv(tmp_path, "x,1\ny,2\n")) == 2
    assert client.conn.execute("SELECT column_1, column_2 FROM t ORDER BY column_1").fetchall() == [
        ("x", "1"),
        ("y", "2"),
    ]


def test_import_skip_rows_and_column_mapping(tmp_path):
    text = "generated by tool;\nname;value\nalpha;1\n"
    client = SQLiteClient("CREATE TABLE t (label TEXT, value TEXT)")
    plugin, _ = make_plugin(
        {"table_name": "t", "delimiter": ";", "skip_rows": 1, "column_mapping": {"name": "label"}}, client
    )
    assert plugin.import_data(write_csv(tmp_path, text)) == 1
    assert client.conn.execute("SELECT label, value FROM t").fetchall() == [("alpha", "1")]


def test_import_ragged_rows_raise(tmp_path):
    plugin, _ = make_plugin({"table_name": "t"})
    with pytest.raises(csv.Error, match="wrong number of fields"):
        plugin.import_data(write_csv(tmp_path, "a,b\n1,2\n3\n"))


def test_import_empty_file_with_header_raises(tmp_path):
    plugin, _ = make_plugin({"table_name": "t"})
    with pytest.raises(csv.Error, match="header"):
        plugin.import_data(write_csv(tmp_path, ""))


def test_import_missing_file_raises(tmp_path):
    plugin, _ = make_plugin({"table_name": "t"})
    with pytest.raises(FileNotFoundError):
        plugin.import_data(str(tmp_path / "missing.csv"))


def test_build_insert_sql_with_headers_and_mapping():
    plugin = CSVImporterPlugin(NullDBClient(), RecordingLogger())
    plugin.initialize({"table_name": "metrics", "column_mapping": {"cpu": "cpu_usage"}})
    assert plugin.build_insert_sql(["ts", "cpu"], 2) == "INSERT INTO metrics (ts, cpu_usage) VALUES (?, ?)"


def test_build_insert_sql_without_headers():
    plugin = CSVImporterPlugin(NullDBClient(), RecordingLogger())
    plugin.initialize({"table_name": "metrics", "has_header": False})
    assert plugin.build_insert_sql(None, 3) == (
        "INSERT INTO metrics (column_1, column_2, column_3) VALUES (?, ?, ?)"
    )


@pytest.mark.parametrize(
    "value, target, expected",
    [
        (" 42 ", "int", 42),
        ("-7", "int", -7),
        ("3.5", "float", 3.5),
        ("true", "bool", True),
        ("F", "bool", False),
        ("1", "bool", True),
        ("2024-01-15 10:00:00", "datetime", datetime(2024, 1, 15, 10, 0, 0)),
        ("  text ", "string", "text"),
    ],
)
def test_convert_value(value, target, expected):
    plugin = CSVImporterPlugin(NullDBClient(), RecordingLogger())
    assert plugin.convert_value(value, target) == expected


@pytest.mark.parametrize(
    "value, target",
    [("abc", "int"), ("1_000", "int"), ("x", "float"), ("yes", "bool"), ("15/01/2024", "datetime")],
)
def test_convert_value_errors(value, target):
    plugin = CSVImporterPlugin(NullDBClient(), RecordingLogger())
    with pytest.raises(ValueError):
        plugin.convert_value(value, target)