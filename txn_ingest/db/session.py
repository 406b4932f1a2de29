from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2

from ..models.config_models import DatabaseConfig

"""Storage session: one exclusive connection + cursor per ingestion run.

The session is opened once at run start and passed explicitly to the bulk
writer, the progress recorder and the statistics reporter. open_session() is
the only way to obtain one and always closes cursor and connection, also
when the run aborts.

Connection parameter resolution order:
    1. DATABASE_URL / PGDSN environment variables (.env is loaded by the CLI
       with override=True, so it wins over the shell environment)
    2. database.dsn from the config file
    3. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE, falling back to
       the matching keys of the config's database section
"""

__all__ = [
    "SessionError",
    "StorageSession",
    "open_session",
    "resolve_dsn",
]

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Raised when the database connection cannot be established."""


class StorageSession:
    """Thin wrapper over a psycopg2 connection with explicit transactions."""

    def __init__(self, connection: Any, cursor: Any) -> None:
        self.connection = connection
        self.cursor = cursor

    def execute(self, sql: str, params: Any = None) -> None:
        self.cursor.execute(sql, params)

    def fetchone(self) -> Any:
        return self.cursor.fetchone()

    def fetchall(self) -> list[Any]:
        return self.cursor.fetchall()

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def open_session(db_cfg: DatabaseConfig) -> Iterator[StorageSession]:
    """Yield a StorageSession; the connection is closed on every exit path.

    Autocommit is off: every batch and every progress update is committed
    explicitly by its owner. Anything left uncommitted when the block exits
    is rolled back by closing the connection.
    """
    try:
        conn = psycopg2.connect(resolve_dsn(db_cfg))
    except psycopg2.Error as e:
        raise SessionError(f"cannot connect to database: {e}") from e

    conn.autocommit = False
    cur = conn.cursor()
    try:
        yield StorageSession(conn, cur)
    finally:
        try:
            cur.close()
        except psycopg2.Error:  # pragma: no cover
            logger.debug("cursor close failed", exc_info=True)
        conn.close()
