from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from txn_ingest.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from txn_ingest.db.schema import ensure_schema
from txn_ingest.db.session import SessionError, StorageSession, open_session
from txn_ingest.errors import IngestionError
from txn_ingest.logging.init import log_summary, set_debug, setup_logging
from txn_ingest.models.config_models import IngestConfig
from txn_ingest.models.dataset import Dataset
from txn_ingest.services.pipeline import IngestionAborted, run_ingestion
from txn_ingest.services.progress_recorder import DatasetNotFoundError, load_dataset
from txn_ingest.services.statistics import (
    ReportError,
    build_report,
    ensure_latest_dataset,
    report_to_dict,
)
from txn_ingest.services.summary import (
    render_aborted_line,
    render_report_lines,
    render_summary_line,
)

"""CLI entrypoint.

    txn-ingest [--config PATH] [--debug] ingest FILE [--name NAME] [--limit N]
               [--report-json PATH] [--no-report]
    txn-ingest [--config PATH] [--debug] report --dataset-id ID [--report-json PATH]
    txn-ingest [--config PATH] [--debug] init-schema

Exit codes:
    0  success
    1  fatal before a run started (config, DB connection, source file, header)
    2  run aborted after its Dataset row was created / report on a
       dataset that is not completed
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True: .env の値で既存環境変数を上書きし、DB 接続情報を最優先にする。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="txn-ingest", description="CSV -> PostgreSQL transaction ingestion"
    )
    p.add_argument(
        "--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config file"
    )
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Load one CSV file into the destination table")
    ingest.add_argument("file", type=Path, help="CSV file to ingest")
    ingest.add_argument("--name", help="Dataset name (default: file stem)")
    ingest.add_argument("--limit", type=int, help="Stop after N data records (sample load)")
    ingest.add_argument("--report-json", type=Path, help="Write the statistics report as JSON")
    ingest.add_argument("--no-report", action="store_true", help="Skip post-load statistics")

    report = sub.add_parser("report", help="Print statistics for a completed dataset")
    report.add_argument("--dataset-id", type=int, required=True)
    report.add_argument("--report-json", type=Path, help="Write the statistics report as JSON")

    sub.add_parser("init-schema", help="Create destination and dataset tables if missing")
    return p.parse_args(argv)


def _emit_report(
    session: StorageSession,
    cfg: IngestConfig,
    dataset: Dataset,
    json_path: Path | None,
    logger: logging.Logger,
) -> None:
    report = build_report(
        session,
        dataset,
        cfg.destination.table,
        top_n=cfg.statistics.top_n,
        min_group_count=cfg.statistics.min_group_count,
    )
    for line in render_report_lines(report):
        logger.info(line)
    if json_path is not None:
        json_path.parent.mkdir(parents=True, exist_ok=True)
        json_path.write_text(
            json.dumps(report_to_dict(report), ensure_ascii=False, indent=2), encoding="utf-8"
        )
        logger.info(f"report written to {json_path}")


def _cmd_ingest(args: argparse.Namespace, cfg: IngestConfig, logger: logging.Logger) -> int:
    if args.limit is not None:
        if args.limit < 1:
            logger.error(f"--limit must be positive, got {args.limit}")
            return EXIT_FATAL
        cfg = dataclasses.replace(cfg, row_limit=args.limit)

    source: Path = args.file
    if not source.is_file():
        logger.error(f"source file not found: {source}")
        return EXIT_FATAL

    logger.info(f"Ingesting {source} -> {cfg.destination.table}")
    try:
        with open_session(cfg.database) as session:
            try:
                result = run_ingestion(session, source, cfg, name=args.name)
            except IngestionAborted as e:
                logger.error(f"ingest: {e}")
                log_summary(render_aborted_line(e.dataset, e.stage, prefix=False))
                return EXIT_PARTIAL_FAILURE
            except IngestionError as e:
                logger.error(f"ingest: {e}")
                return EXIT_FATAL

            log_summary(render_summary_line(result, prefix=False))
            logger.debug(
                f"batch timings avg={result.avg_batch_seconds:.4f}s "
                f"p95={result.p95_batch_seconds:.4f}s"
            )

            if cfg.statistics.enabled and not args.no_report:
                try:
                    _emit_report(session, cfg, result.dataset, args.report_json, logger)
                except (psycopg2.Error, OSError) as e:
                    # データは投入済み。統計の失敗は終了コードに影響させない
                    logger.warning(f"statistics report failed: {e}")
    except SessionError as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    return EXIT_SUCCESS_ALL


def _cmd_report(args: argparse.Namespace, cfg: IngestConfig, logger: logging.Logger) -> int:
    try:
        with open_session(cfg.database) as session:
            try:
                dataset = load_dataset(session, cfg.destination.dataset_table, args.dataset_id)
            except DatasetNotFoundError as e:
                logger.error(f"report: {e}")
                return EXIT_FATAL
            try:
                ensure_latest_dataset(session, cfg.destination.dataset_table, dataset)
                _emit_report(session, cfg, dataset, args.report_json, logger)
            except ReportError as e:
                logger.error(f"report: {e}")
                return EXIT_PARTIAL_FAILURE
            except (psycopg2.Error, OSError) as e:
                logger.error(f"report: {e}")
                return EXIT_FATAL
    except SessionError as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error(f"report: {e}")
        return EXIT_FATAL
    return EXIT_SUCCESS_ALL


def _cmd_init_schema(cfg: IngestConfig, logger: logging.Logger) -> int:
    try:
        with open_session(cfg.database) as session:
            count = ensure_schema(session, cfg.destination)
    except SessionError as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error(f"init-schema: {e}")
        return EXIT_FATAL
    logger.info(
        f"schema ready: {cfg.destination.table}, {cfg.destination.dataset_table} "
        f"({count} statements)"
    )
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # Initialize logging system with labeled prefixes
    logger = setup_logging()

    # None のときのみシステム引数を読む ([] はテストからの明示的な空引数)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "ingest":
        return _cmd_ingest(args, cfg, logger)
    if args.command == "report":
        return _cmd_report(args, cfg, logger)
    return _cmd_init_schema(cfg, logger)
