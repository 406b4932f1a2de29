from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

import psycopg2

from ..errors import IngestionError
from ..models.records import CanonicalRecord
from .batch_insert import BatchInsertError, BatchMetrics, batch_insert
from .schema import validate_identifier
from .session import StorageSession

"""Atomic batch writer.

write() = one multi-row INSERT + COMMIT. Either every row of the batch is
committed or, after a rollback, none is. There is no retry: a failed batch is
fatal for the run.
"""

__all__ = [
    "BatchWriteError",
    "BulkWriter",
]

logger = logging.getLogger(__name__)


class BatchWriteError(IngestionError):
    """A batch could not be committed; nothing of it was persisted."""

    def __init__(self, message: str, *, first_record: int = -1, size: int = 0) -> None:
        super().__init__(message)
        self.first_record = first_record
        self.size = size


class BulkWriter:
    def __init__(
        self,
        session: StorageSession,
        table: str,
        columns: Sequence[str],
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
    ) -> None:
        self.session = session
        self.table = validate_identifier(table)
        self.columns = list(columns)
        self.metrics_callback = metrics_callback
        self.batches_written = 0
        self.rows_written = 0

    def write(self, records: Sequence[CanonicalRecord]) -> int:
        """Commit all records as one unit and return the number written."""
        if not records:
            raise ValueError("refusing to write an empty batch")
        first = records[0].record_number
        try:
            result = batch_insert(
                self.session.cursor,
                self.table,
                self.columns,
                [r.values for r in records],
                metrics_callback=self.metrics_callback,
            )
            self.session.commit()
        except (BatchInsertError, psycopg2.Error) as e:
            self._rollback()
            raise BatchWriteError(
                f"batch of {len(records)} records starting at record {first} failed: {e}",
                first_record=first,
                size=len(records),
            ) from e

        self.batches_written += 1
        self.rows_written += result.inserted_rows
        logger.debug(
            "batch=%d committed rows=%d first_record=%d",
            self.batches_written,
            result.inserted_rows,
            first,
        )
        return result.inserted_rows

    def _rollback(self) -> None:
        try:
            self.session.rollback()
        except psycopg2.Error:
            # 接続断の場合 rollback も失敗する。未コミット分はサーバ側で破棄される
            logger.warning("rollback after failed batch also failed", exc_info=True)
