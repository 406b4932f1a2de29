"""Domain models for the CSV -> PostgreSQL transaction ingestion tool.

This package contains the domain model classes shared by the reader, the
database layer and the services.
"""

from .batch import Batch, BatchOverflowError
from .column_mapping import ColumnKind, ColumnMapping, ColumnMappingError, DEFAULT_COLUMN_MAPPING
from .config_models import DatabaseConfig, DestinationConfig, IngestConfig, StatisticsConfig
from .dataset import Dataset, DatasetStatus, InvalidStatusTransition
from .records import CanonicalRecord, RawRecord

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "DestinationConfig",
    "IngestConfig",
    "StatisticsConfig",
    # Mapping
    "ColumnKind",
    "ColumnMapping",
    "ColumnMappingError",
    "DEFAULT_COLUMN_MAPPING",
    # Processing models
    "Batch",
    "BatchOverflowError",
    "CanonicalRecord",
    "Dataset",
    "DatasetStatus",
    "InvalidStatusTransition",
    "RawRecord",
]
