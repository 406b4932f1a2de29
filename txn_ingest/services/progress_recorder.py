from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime

import psycopg2

from ..db.schema import validate_identifier
from ..db.session import StorageSession
from ..errors import IngestionError
from ..models.dataset import Dataset, DatasetStatus, InvalidStatusTransition

"""Dataset tracking row owner.

Lifecycle of one run:
    start()        INSERT status=processing (before any data record is read)
    record_flush() after every committed batch; persisted every K rows only
    complete()     final counters + status=completed in one UPDATE
    fail()         counters + status=failed + error_message in one UPDATE

In-memory counters are always exact; the persisted row may lag by up to K
processed rows while the run is in progress. Every storage failure is rolled
back and surfaces as ProgressPersistenceError; batches committed earlier are
not affected.
"""

__all__ = [
    "DatasetNotFoundError",
    "ProgressPersistenceError",
    "ProgressRecorder",
    "load_dataset",
]

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_INTERVAL = 10_000


class ProgressPersistenceError(IngestionError):
    pass


class DatasetNotFoundError(Exception):
    pass


def _now() -> datetime:
    return datetime.now(UTC)


class ProgressRecorder:
    def __init__(
        self,
        session: StorageSession,
        table: str = "datasets",
        persist_every: int = DEFAULT_PROGRESS_INTERVAL,
    ) -> None:
        if persist_every < 1:
            raise ValueError(f"persist_every must be positive, got {persist_every}")
        self.session = session
        self.table = validate_identifier(table)
        self.persist_every = persist_every
        self._dataset: Dataset | None = None
        self.persisted_processed_rows = 0
        self.persist_count = 0

    @property
    def dataset(self) -> Dataset:
        if self._dataset is None:
            raise RuntimeError("progress recorder not started")
        return self._dataset

    def _execute(self, sql: str, params: tuple, what: str) -> None:
        try:
            self.session.execute(sql, params)
            self.session.commit()
        except psycopg2.Error as e:
            try:
                self.session.rollback()
            except psycopg2.Error:
                logger.debug("rollback after failed %s also failed", what, exc_info=True)
            raise ProgressPersistenceError(f"failed to persist {what}: {e}") from e

    def _transition(self, target: DatasetStatus) -> None:
        current = self.dataset.status
        if not current.can_transition_to(target):
            raise InvalidStatusTransition(
                f"dataset {self.dataset.id}: {current.value} -> {target.value} not allowed"
            )

    def start(self, name: str, filename: str) -> Dataset:
        """Insert the tracking row with status=processing and return it."""
        if self._dataset is not None:
            raise RuntimeError("progress recorder already started")
        started_at = _now()
        try:
            self.session.execute(
                f"INSERT INTO {self.table} (name, filename, status, processing_started_at) "
                "VALUES (%s, %s, %s, %s) RETURNING id",
                (name, filename, DatasetStatus.PROCESSING.value, started_at),
            )
            row = self.session.fetchone()
            self.session.commit()
        except psycopg2.Error as e:
            try:
                self.session.rollback()
            except psycopg2.Error:
                logger.debug("rollback after failed dataset insert also failed", exc_info=True)
            raise ProgressPersistenceError(f"failed to create dataset row: {e}") from e
        if row is None:
            raise ProgressPersistenceError("dataset insert returned no id")

        self._dataset = Dataset(
            id=int(row[0]),
            name=name,
            filename=filename,
            status=DatasetStatus.PROCESSING,
            started_at=started_at,
        )
        logger.info("dataset=%d created name=%s file=%s", self._dataset.id, name, filename)
        return self._dataset

    def record_flush(self, batch_size: int, rows_read: int) -> bool:
        """Account for a committed batch. Returns True if counters were persisted.

        rows_read is the number of records decoded so far (>= processed).
        """
        ds = self.dataset
        processed = ds.processed_rows + batch_size
        total = max(ds.total_rows, rows_read, processed)
        self._dataset = replace(ds, processed_rows=processed, total_rows=total)

        if processed // self.persist_every <= self.persisted_processed_rows // self.persist_every:
            return False
        self._execute(
            f"UPDATE {self.table} SET processed_rows = %s, total_rows = %s WHERE id = %s",
            (processed, total, ds.id),
            "progress",
        )
        self.persisted_processed_rows = processed
        self.persist_count += 1
        logger.info("dataset=%d processed %s rows", ds.id, f"{processed:,}")
        return True

    def complete(self, total_rows: int) -> Dataset:
        """Persist final counters and status=completed in one update."""
        self._transition(DatasetStatus.COMPLETED)
        ds = self.dataset
        if ds.processed_rows != total_rows:
            raise ProgressPersistenceError(
                f"dataset {ds.id}: processed_rows={ds.processed_rows} != total_rows={total_rows}"
            )
        completed_at = _now()
        self._execute(
            f"UPDATE {self.table} SET status = %s, total_rows = %s, processed_rows = %s, "
            "processing_completed_at = %s WHERE id = %s",
            (DatasetStatus.COMPLETED.value, total_rows, ds.processed_rows, completed_at, ds.id),
            "completion",
        )
        self._dataset = replace(
            ds, status=DatasetStatus.COMPLETED, total_rows=total_rows, completed_at=completed_at
        )
        self.persisted_processed_rows = ds.processed_rows
        return self._dataset

    def fail(self, message: str, rows_read: int = 0) -> Dataset:
        """Persist status=failed with the current counters and the error message.

        rows_read lets the final total include records decoded after the last
        persisted update.
        """
        self._transition(DatasetStatus.FAILED)
        ds = replace(self.dataset, total_rows=max(self.dataset.total_rows, rows_read))
        completed_at = _now()
        self._execute(
            f"UPDATE {self.table} SET status = %s, total_rows = %s, processed_rows = %s, "
            "processing_completed_at = %s, error_message = %s WHERE id = %s",
            (
                DatasetStatus.FAILED.value,
                ds.total_rows,
                ds.processed_rows,
                completed_at,
                message,
                ds.id,
            ),
            "failure status",
        )
        self._dataset = replace(
            ds, status=DatasetStatus.FAILED, completed_at=completed_at, error_message=message
        )
        self.persisted_processed_rows = ds.processed_rows
        return self._dataset


def load_dataset(session: StorageSession, table: str, dataset_id: int) -> Dataset:
    """Read one tracking row back (read-only)."""
    session.execute(
        f"SELECT id, name, filename, status, total_rows, processed_rows, "
        f"processing_started_at, processing_completed_at, error_message "
        f"FROM {validate_identifier(table)} WHERE id = %s",
        (dataset_id,),
    )
    row = session.fetchone()
    if row is None:
        raise DatasetNotFoundError(f"dataset {dataset_id} not found")
    return Dataset(
        id=int(row[0]),
        name=row[1],
        filename=row[2],
        status=DatasetStatus(row[3]),
        total_rows=int(row[4] or 0),
        processed_rows=int(row[5] or 0),
        started_at=row[6],
        completed_at=row[7],
        error_message=row[8],
    )
