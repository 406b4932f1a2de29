# Shared pytest fixtures
from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Callable

import psycopg2
import pytest

from txn_ingest.db.session import StorageSession
from txn_ingest.logging.init import reset_logging

HEADER = (
    "user_id,merchant_id,charged_amount,txn_date_time,outcome,fraud,decline,"
    "merchant_country,merchant_name,mcc,type"
)


class FakeCursor:
    """Records every statement; answers `RETURNING id` with dataset_id."""

    def __init__(self, dataset_id: int = 1) -> None:
        self.dataset_id = dataset_id
        self.executed: list[tuple[str, Any]] = []
        self.fetchone_results: list[Any] = []
        self.fetchall_results: list[list[Any]] = []
        self.fail_when: Callable[[str], bool] | None = None
        self.closed = False
        self._returning: tuple[int] | None = None

    def execute(self, sql: str, params: Any = None) -> None:
        if self.fail_when is not None and self.fail_when(sql):
            raise psycopg2.OperationalError("simulated statement failure")
        self.executed.append((sql, params))
        if "RETURNING id" in sql:
            self._returning = (self.dataset_id,)

    def fetchone(self) -> Any:
        if self._returning is not None:
            row, self._returning = self._returning, None
            return row
        return self.fetchone_results.pop(0) if self.fetchone_results else None

    def fetchall(self) -> list[Any]:
        return self.fetchall_results.pop(0) if self.fetchall_results else []

    def close(self) -> None:
        self.closed = True

    def statements(self, prefix: str) -> list[tuple[str, Any]]:
        return [(sql, p) for sql, p in self.executed if sql.lstrip().startswith(prefix)]


class FakeConnection:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0
        self.closed = False
        self.autocommit = True
        self.fail_commit = False

    def commit(self) -> None:
        if self.fail_commit:
            raise psycopg2.OperationalError("simulated commit failure")
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True


class InsertRecorder:
    """Stand-in for psycopg2.extras.execute_values.

    fail_on: 1-based call number that raises IntegrityError (None = never).
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.fail_on: int | None = None

    def __call__(self, cursor: Any, sql: str, rows: Any, page_size: int = 100, template: Any = None) -> None:
        self.calls.append({"sql": sql, "rows": list(rows), "page_size": page_size})
        if self.fail_on is not None and len(self.calls) == self.fail_on:
            raise psycopg2.IntegrityError("duplicate key value violates unique constraint")

    @property
    def batch_sizes(self) -> list[int]:
        return [len(c["rows"]) for c in self.calls]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """batch_size: 1000
progress_interval: 1000
timezone: UTC
error_log_dir: ./logs
destination:
  table: transactions
  dataset_table: datasets
statistics:
  enabled: false
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "ingest.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def fake_cursor() -> FakeCursor:
    return FakeCursor(dataset_id=7)


@pytest.fixture()
def fake_connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture()
def fake_session(fake_connection: FakeConnection, fake_cursor: FakeCursor) -> StorageSession:
    return StorageSession(fake_connection, fake_cursor)


@pytest.fixture()
def insert_recorder(monkeypatch) -> InsertRecorder:
    import txn_ingest.db.batch_insert as bi

    recorder = InsertRecorder()
    monkeypatch.setattr(bi, "execute_values", recorder)
    return recorder


def transaction_line(i: int) -> str:
    """One well-formed source line; every 3rd record is flagged as fraud."""
    fraud = 1 if i % 3 == 0 else 0
    return (
        f"U{i:05d},M{i % 50:03d},{i % 500}.25,2024-01-{1 + i % 28:02d} 10:00:00,"
        f"approved,{fraud},0,BR,Shop {i % 50},5411.0,credit"
    )


@pytest.fixture()
def make_csv(tmp_path: Path) -> Callable[..., Path]:
    """Write a transactions CSV with `rows` generated records (or explicit lines)."""

    def _make(
        rows: int = 0,
        *,
        lines: list[str] | None = None,
        header: str = HEADER,
        name: str = "transactions.csv",
    ) -> Path:
        body = lines if lines is not None else [transaction_line(i) for i in range(1, rows + 1)]
        path = tmp_path / name
        path.write_text("\n".join([header, *body]) + "\n", encoding="utf-8")
        return path

    return _make


@pytest.fixture()
def clean_logging():
    reset_logging()
    yield
    reset_logging()
