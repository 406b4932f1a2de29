from __future__ import annotations

import re

from ..models.column_mapping import DESTINATION_COLUMNS
from ..models.config_models import DestinationConfig
from .session import StorageSession

"""DDL for the destination and dataset-tracking tables.

ensure_schema() is an idempotent bootstrap (CREATE ... IF NOT EXISTS); it is
not a migration system and never alters existing tables.
"""

__all__ = [
    "dataset_table_ddl",
    "destination_table_ddl",
    "ensure_schema",
    "truncate_destination",
    "validate_identifier",
]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# 頻出クエリ向けインデックス (列名, ...)
_DESTINATION_INDEXES: tuple[tuple[str, ...], ...] = (
    ("user_id",),
    ("merchant_id",),
    ("txn_date_time",),
    ("fraud",),
    ("decline",),
    ("outcome",),
    ("merchant_country",),
    ("mcc",),
    ("payment_method",),
    ("user_id", "txn_date_time"),
    ("fraud", "charged_amount"),
    ("merchant_id", "txn_date_time"),
)


def validate_identifier(name: str) -> str:
    """Return name unchanged if it is a plain SQL identifier, else raise ValueError."""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"invalid SQL identifier: {name!r}")
    return name


def destination_table_ddl(table: str) -> list[str]:
    table = validate_identifier(table)
    columns = ",\n    ".join(f"{col.name} {col.sql_type}" for col in DESTINATION_COLUMNS)
    statements = [
        f"CREATE TABLE IF NOT EXISTS {table} (\n"
        f"    id BIGSERIAL PRIMARY KEY,\n"
        f"    {columns},\n"
        f"    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP\n"
        f")"
    ]
    for cols in _DESTINATION_INDEXES:
        index_name = f"idx_{table}_{'_'.join(cols)}"
        statements.append(f"CREATE INDEX IF NOT EXISTS {index_name} ON {table}({', '.join(cols)})")
    return statements


def dataset_table_ddl(table: str) -> list[str]:
    table = validate_identifier(table)
    return [
        f"CREATE TABLE IF NOT EXISTS {table} (\n"
        f"    id SERIAL PRIMARY KEY,\n"
        f"    name VARCHAR(255) NOT NULL,\n"
        f"    filename VARCHAR(255),\n"
        f"    total_rows BIGINT DEFAULT 0,\n"
        f"    processed_rows BIGINT DEFAULT 0,\n"
        f"    status VARCHAR(50) DEFAULT 'pending',\n"
        f"    upload_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP,\n"
        f"    processing_started_at TIMESTAMP,\n"
        f"    processing_completed_at TIMESTAMP,\n"
        f"    error_message TEXT\n"
        f")"
    ]


def ensure_schema(session: StorageSession, destination: DestinationConfig) -> int:
    """Create missing tables and indexes in one transaction. Returns statement count."""
    statements = destination_table_ddl(destination.table) + dataset_table_ddl(
        destination.dataset_table
    )
    try:
        for sql in statements:
            session.execute(sql)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return len(statements)


def truncate_destination(session: StorageSession, table: str) -> None:
    """Empty the destination table and reset its identity sequence (committed)."""
    session.execute(f"TRUNCATE TABLE {validate_identifier(table)} RESTART IDENTITY")
    session.commit()
