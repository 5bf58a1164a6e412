"""Common runtime devkit for config files, database access and observability."""

from devkit.config import ConfigFileError, format_duration, parse_duration, read_json_config, write_json_config
from devkit.db import (
    AsyncDatabaseManager,
    Base,
    create_all_tables,
    create_async_engine,
    create_session_factory,
    has_table,
    normalize_sqlite_dsn,
)
from devkit.observability import configure_logging, configure_otel

__all__ = [
    "AsyncDatabaseManager",
    "Base",
    "ConfigFileError",
    "format_duration",
    "configure_logging",
    "configure_otel",
    "create_all_tables",
    "create_async_engine",
    "create_session_factory",
    "has_table",
    "normalize_sqlite_dsn",
    "parse_duration",
    "read_json_config",
    "write_json_config",
]
