from __future__ import annotations

import json
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.column_mapping import DEFAULT_COLUMN_MAPPING, ColumnMapping, ColumnMappingError
from ..models.config_models import (
    DatabaseConfig,
    DestinationConfig,
    IngestConfig,
    StatisticsConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config (default: config/ingest.yml)
- Validate against the bundled JSON schema (config_schema.json)
- Apply defaults for every omitted key
- Build the column mapping (bijection checked by ColumnMapping itself)
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
]

DEFAULT_CONFIG_PATH = Path("config/ingest.yml")
SCHEMA_PATH = Path(__file__).parent / "config_schema.json"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or the
            config data fails schema validation (unknown keys, wrong types,
            invalid table identifiers, ...).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _build_column_mapping(raw: list[dict[str, str]] | None) -> ColumnMapping:
    if raw is None:
        return DEFAULT_COLUMN_MAPPING
    try:
        return ColumnMapping.from_pairs((entry["column"], entry["source"]) for entry in raw)
    except ColumnMappingError as e:
        raise ConfigError(f"invalid column_mapping: {e}") from e


def load_config(path: Path) -> IngestConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

    _validate_config_schema(data)

    defaults = IngestConfig()
    db_raw = data.get("database") or {}
    dest_raw = data.get("destination") or {}
    stats_raw = data.get("statistics") or {}

    database = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    destination = DestinationConfig(
        table=dest_raw.get("table", defaults.destination.table),
        dataset_table=dest_raw.get("dataset_table", defaults.destination.dataset_table),
    )
    if destination.table == destination.dataset_table:
        raise ConfigError("destination.table and destination.dataset_table must differ")
    timezone = data.get("timezone", defaults.timezone)
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"unknown timezone: {timezone}") from e
    statistics = StatisticsConfig(
        enabled=stats_raw.get("enabled", defaults.statistics.enabled),
        top_n=stats_raw.get("top_n", defaults.statistics.top_n),
        min_group_count=stats_raw.get("min_group_count", defaults.statistics.min_group_count),
    )
    return IngestConfig(
        batch_size=data.get("batch_size", defaults.batch_size),
        channel_capacity=data.get("channel_capacity", defaults.channel_capacity),
        progress_interval=data.get("progress_interval", defaults.progress_interval),
        timezone=timezone,
        source_encoding=data.get("source_encoding", defaults.source_encoding),
        row_limit=data.get("row_limit", defaults.row_limit),
        error_log_dir=data.get("error_log_dir", defaults.error_log_dir),
        column_mapping=_build_column_mapping(data.get("column_mapping")),
        destination=destination,
        statistics=statistics,
        database=database,
    )
