from __future__ import annotations

from dataclasses import dataclass, field

from .batch import DEFAULT_BATCH_CAPACITY
from .column_mapping import DEFAULT_COLUMN_MAPPING, ColumnMapping

"""Config dataclasses for the CSV -> PostgreSQL ingestion tool.

The loader in txn_ingest/config/loader.py parses and validates YAML and then
builds these objects; everything downstream only sees typed configuration.
"""

__all__ = [
    "DatabaseConfig",
    "DestinationConfig",
    "IngestConfig",
    "StatisticsConfig",
]


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class DestinationConfig:
    """Target tables. Names are validated identifiers (no quoting needed)."""
    table: str = "transactions"
    dataset_table: str = "datasets"


@dataclass(frozen=True)
class StatisticsConfig:
    """Post-load report settings."""
    enabled: bool = True
    top_n: int = 10
    min_group_count: int = 1000  # HAVING COUNT(*) > min_group_count


@dataclass(frozen=True)
class IngestConfig:
    """Root configuration object for one ingestion run."""
    batch_size: int = DEFAULT_BATCH_CAPACITY  # C
    channel_capacity: int | None = None  # None -> batch_size
    progress_interval: int = 10_000  # K: persist counters every K processed rows
    timezone: str = "UTC"  # naive timestamps are interpreted in this zone
    source_encoding: str = "utf-8-sig"
    row_limit: int | None = None  # sample loads: stop after N records
    error_log_dir: str = "./logs"
    column_mapping: ColumnMapping = DEFAULT_COLUMN_MAPPING
    destination: DestinationConfig = field(default_factory=DestinationConfig)
    statistics: StatisticsConfig = field(default_factory=StatisticsConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    @property
    def effective_channel_capacity(self) -> int:
        return self.channel_capacity or self.batch_size
