from __future__ import annotations

import logging
from contextlib import closing
from datetime import UTC, datetime
from pathlib import Path

import psycopg2

from ..db.bulk_writer import BatchWriteError, BulkWriter
from ..db.schema import truncate_destination
from ..db.session import StorageSession
from ..errors import IngestionError
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.batch import Batch
from ..models.config_models import IngestConfig
from ..models.dataset import Dataset, InvalidStatusTransition
from ..models.processing_result import BatchStatsAccumulator, IngestionResult
from ..reader.csv_reader import (
    CsvRecordReader,
    HeaderError,
    MalformedRecordError,
    MissingColumnsError,
    SourceUnavailableError,
)
from .flow_control import RecordChannel
from .progress import ProgressTracker
from .progress_recorder import ProgressPersistenceError, ProgressRecorder
from .row_mapper import RowMapper

"""Run orchestration for one source file.

run_ingestion() wires the components together:

    CsvRecordReader -> RowMapper -> RecordChannel -> Batch -> BulkWriter
                                                        \\-> ProgressRecorder

Source and header problems are raised as-is, before any Dataset row exists.
Once the Dataset row is created every fatal error marks it failed and is
re-raised as IngestionAborted, chained to the original exception. Batches
committed before the failure stay committed.
"""

__all__ = [
    "IngestionAborted",
    "run_ingestion",
]

logger = logging.getLogger(__name__)

STAGE_DECODE = "decode"
STAGE_WRITE = "write"
STAGE_PROGRESS = "progress"
STAGE_SETUP = "setup"


class IngestionAborted(IngestionError):
    """A started run was aborted; `dataset` is its last known state."""

    def __init__(self, stage: str, dataset: Dataset, message: str) -> None:
        super().__init__(f"ingestion aborted at {stage} stage: {message}")
        self.stage = stage
        self.dataset = dataset


def _classify(error: Exception) -> tuple[str, str]:
    """(stage, error_type) for a fatal error raised after the Dataset was created."""
    if isinstance(error, MalformedRecordError):
        return STAGE_DECODE, "DECODE_ERROR"
    if isinstance(error, BatchWriteError):
        return STAGE_WRITE, "BATCH_WRITE_ERROR"
    if isinstance(error, ProgressPersistenceError):
        return STAGE_PROGRESS, "PROGRESS_PERSIST_ERROR"
    return STAGE_SETUP, "SETUP_ERROR"


def _pre_run_error_type(error: IngestionError) -> str:
    if isinstance(error, SourceUnavailableError):
        return "SOURCE_UNAVAILABLE"
    if isinstance(error, MissingColumnsError):
        return "MISSING_COLUMNS"
    if isinstance(error, HeaderError):
        return "HEADER_ERROR"
    if isinstance(error, MalformedRecordError):
        return "DECODE_ERROR"
    return "SETUP_ERROR"


def run_ingestion(
    session: StorageSession,
    source_path: Path,
    config: IngestConfig,
    name: str | None = None,
    *,
    error_log: ErrorLogBuffer | None = None,
) -> IngestionResult:
    """Ingest one CSV file into the destination table.

    Parameters
    ----------
    session: open storage session, used only from the calling thread
    source_path: CSV file to load
    config: validated configuration (batch size, mapping, tables, ...)
    name: Dataset name, defaults to the file stem
    error_log: buffer for JSONL error records; a new one writing to
        config.error_log_dir is used when omitted. Always flushed on return.

    Raises
    ------
    SourceUnavailableError, HeaderError, MissingColumnsError, MalformedRecordError:
        before the Dataset row was created
    ProgressPersistenceError: the Dataset row itself could not be created
    IngestionAborted: any fatal error after the Dataset row was created
    """
    source_path = Path(source_path)
    if error_log is None:
        error_log = ErrorLogBuffer(Path(config.error_log_dir))
    try:
        return _run(session, source_path, config, name or source_path.stem, error_log)
    finally:
        try:
            path = error_log.flush()
        except OSError:
            logger.warning("failed to write error log %s", error_log.file_path, exc_info=True)
        else:
            if path is not None:
                logger.info("error details written to %s", path)


def _run(
    session: StorageSession,
    source_path: Path,
    config: IngestConfig,
    name: str,
    error_log: ErrorLogBuffer,
) -> IngestionResult:
    start_time = datetime.now(UTC)
    reader = CsvRecordReader(
        source_path,
        encoding=config.source_encoding,
        chunk_rows=config.batch_size,
        row_limit=config.row_limit,
    )

    try:
        reader.open()
        mapper = RowMapper(config.column_mapping, reader.header, timezone=config.timezone)
        if mapper.missing_sources:
            logger.warning(
                "source columns not found in %s, loaded as empty: %s",
                source_path.name,
                mapper.missing_sources,
            )
        if len(mapper.missing_sources) == len(mapper.resolved):
            raise MissingColumnsError(
                f"none of the mapped source columns exist in {source_path.name}; "
                f"header={reader.header}"
            )
    except IngestionError as e:
        reader.close()
        error_log.append(
            ErrorRecord.create(
                file=source_path.name,
                dataset_id=None,
                row=-1,
                error_type=_pre_run_error_type(e),
                message=str(e),
            )
        )
        raise

    with closing(reader):
        recorder = ProgressRecorder(
            session,
            table=config.destination.dataset_table,
            persist_every=config.progress_interval,
        )
        dataset = recorder.start(name, source_path.name)
        logger.info(
            "dataset=%d loading %s into %s (batch_size=%d channel_capacity=%d)",
            dataset.id,
            source_path.name,
            config.destination.table,
            config.batch_size,
            config.effective_channel_capacity,
        )

        stats = BatchStatsAccumulator()
        batch_sizes: list[int] = []
        try:
            try:
                truncate_destination(session, config.destination.table)
            except psycopg2.Error as e:
                session.rollback()
                raise IngestionError(f"cannot truncate {config.destination.table}: {e}") from e

            writer = BulkWriter(
                session,
                config.destination.table,
                mapper.columns,
                metrics_callback=lambda m: stats.add_batch_time(m.elapsed_seconds),
            )
            batch: Batch = Batch(config.batch_size)

            def flush() -> None:
                size = writer.write(batch.records)
                batch.clear()
                batch_sizes.append(size)
                recorder.record_flush(size, reader.records_read)
                progress.advance(size)
                progress.set_postfix(dataset=dataset.id, buffered=channel.buffered)

            with ProgressTracker(description=source_path.name) as progress:
                with RecordChannel(
                    mapper.map_all(reader), config.effective_channel_capacity
                ) as channel:
                    for record in channel:
                        if batch.add(record):
                            flush()
                if batch:
                    flush()

            dataset = recorder.complete(reader.records_read)
        except IngestionError as e:
            stage, error_type = _classify(e)
            if isinstance(e, MalformedRecordError):
                row = e.record_number if e.record_number is not None else -1
            elif isinstance(e, BatchWriteError):
                row = e.first_record
            else:
                row = -1
            logger.error("dataset=%d %s failed: %s", dataset.id, stage, e)
            error_log.append(
                ErrorRecord.create(
                    file=source_path.name,
                    dataset_id=dataset.id,
                    row=row,
                    error_type=error_type,
                    message=str(e),
                )
            )
            try:
                failed = recorder.fail(f"{stage}: {e}", rows_read=reader.records_read)
            except (ProgressPersistenceError, InvalidStatusTransition) as fail_error:
                logger.error("dataset=%d could not be marked failed: %s", dataset.id, fail_error)
                failed = recorder.dataset
            raise IngestionAborted(stage, failed, str(e)) from e

    end_time = datetime.now(UTC)
    elapsed = (end_time - start_time).total_seconds()
    throughput = dataset.processed_rows / elapsed if elapsed > 0 else 0.0
    _, avg_batch, p95_batch = stats.get_stats()
    logger.info(
        "dataset=%d completed rows=%s batches=%d",
        dataset.id,
        f"{dataset.processed_rows:,}",
        len(batch_sizes),
    )
    return IngestionResult(
        dataset=dataset,
        batch_sizes=tuple(batch_sizes),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed,
        throughput_rows_per_sec=throughput,
        avg_batch_seconds=avg_batch,
        p95_batch_seconds=p95_batch,
    )
