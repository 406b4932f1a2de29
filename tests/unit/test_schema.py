from __future__ import annotations

import psycopg2
import pytest

from txn_ingest.db.schema import (
    dataset_table_ddl,
    destination_table_ddl,
    ensure_schema,
    truncate_destination,
    validate_identifier,
)
from txn_ingest.models.column_mapping import DESTINATION_COLUMNS
from txn_ingest.models.config_models import DestinationConfig


def test_destination_ddl_has_every_column():
    ddl = destination_table_ddl("transactions")
    create = ddl[0]
    assert create.startswith("CREATE TABLE IF NOT EXISTS transactions")
    for col in DESTINATION_COLUMNS:
        assert f"{col.name} {col.sql_type}" in create
    assert all(s.startswith("CREATE INDEX IF NOT EXISTS") for s in ddl[1:])


def test_dataset_ddl_columns():
    create = dataset_table_ddl("datasets")[0]
    for col in ("processed_rows", "total_rows", "status", "error_message", "processing_started_at"):
        assert col in create


@pytest.mark.parametrize("name", ["1abc", "a-b", "t; drop", ""])
def test_invalid_identifiers(name):
    with pytest.raises(ValueError):
        validate_identifier(name)


def test_ensure_schema_commits_once(fake_session, fake_cursor, fake_connection):
    n = ensure_schema(fake_session, DestinationConfig())
    assert n == len(fake_cursor.executed)
    assert fake_connection.commits == 1


def test_ensure_schema_rolls_back_on_error(fake_session, fake_cursor, fake_connection):
    fake_cursor.fail_when = lambda sql: "datasets" in sql
    with pytest.raises(psycopg2.Error):
        ensure_schema(fake_session, DestinationConfig())
    assert fake_connection.rollbacks == 1
    assert fake_connection.commits == 0


def test_truncate_restarts_identity(fake_session, fake_cursor, fake_connection):
    truncate_destination(fake_session, "transactions")
    assert fake_cursor.executed == [("TRUNCATE TABLE transactions RESTART IDENTITY", None)]
    assert fake_connection.commits == 1
