from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from ..db.schema import validate_identifier
from ..db.session import StorageSession
from ..models.dataset import Dataset, DatasetStatus

"""Post-load statistics over the destination table.

Read-only aggregate queries, run once the dataset is completed. Nothing is
written and nothing is committed, so a report can be rebuilt at any time
(`txn-ingest report --dataset-id N`).
"""

__all__ = [
    "CategoryCount",
    "OverviewStats",
    "RateRow",
    "ReportError",
    "StatisticsReport",
    "build_report",
    "ensure_latest_dataset",
    "report_to_dict",
]

logger = logging.getLogger(__name__)


class ReportError(Exception):
    pass


@dataclass(frozen=True)
class OverviewStats:
    total_transactions: int
    unique_users: int
    unique_merchants: int
    fraud_transactions: int
    declined_transactions: int
    earliest_transaction: datetime | None
    latest_transaction: datetime | None
    avg_amount: Decimal | None
    total_volume: Decimal | None


@dataclass(frozen=True)
class CategoryCount:
    value: str
    count: int


@dataclass(frozen=True)
class RateRow:
    """Flagged-row rate for one category value."""
    value: str
    total: int
    flagged: int
    rate_pct: Decimal


@dataclass(frozen=True)
class StatisticsReport:
    dataset_id: int
    overview: OverviewStats
    top_countries: list[CategoryCount]
    outcomes: list[CategoryCount]
    payment_methods: list[CategoryCount]
    fraud_rate_by_country: list[RateRow]
    min_group_count: int


def _overview(session: StorageSession, table: str) -> OverviewStats:
    session.execute(
        f"""
        SELECT
            COUNT(*),
            COUNT(DISTINCT user_id),
            COUNT(DISTINCT merchant_id),
            COALESCE(SUM(CASE WHEN fraud = 1 THEN 1 ELSE 0 END), 0),
            COALESCE(SUM(CASE WHEN decline = 1 THEN 1 ELSE 0 END), 0),
            MIN(txn_date_time),
            MAX(txn_date_time),
            ROUND(AVG(charged_amount), 2),
            ROUND(SUM(charged_amount), 2)
        FROM {table}
        """
    )
    row = session.fetchone()
    return OverviewStats(
        total_transactions=int(row[0]),
        unique_users=int(row[1]),
        unique_merchants=int(row[2]),
        fraud_transactions=int(row[3]),
        declined_transactions=int(row[4]),
        earliest_transaction=row[5],
        latest_transaction=row[6],
        avg_amount=row[7],
        total_volume=row[8],
    )


def _breakdown(session: StorageSession, table: str, column: str, limit: int) -> list[CategoryCount]:
    column = validate_identifier(column)
    session.execute(
        f"""
        SELECT {column}, COUNT(*) AS n
        FROM {table}
        WHERE {column} IS NOT NULL
        GROUP BY {column}
        ORDER BY n DESC, {column}
        LIMIT %s
        """,
        (limit,),
    )
    return [CategoryCount(value=str(r[0]), count=int(r[1])) for r in session.fetchall()]


def _flag_rate(
    session: StorageSession,
    table: str,
    group_column: str,
    flag_column: str,
    min_group_count: int,
    limit: int,
) -> list[RateRow]:
    group_column = validate_identifier(group_column)
    flag_column = validate_identifier(flag_column)
    session.execute(
        f"""
        SELECT
            {group_column},
            COUNT(*) AS total_txns,
            SUM({flag_column}) AS flagged_txns,
            ROUND(100.0 * SUM({flag_column}) / COUNT(*), 2) AS rate_pct
        FROM {table}
        WHERE {group_column} IS NOT NULL
        GROUP BY {group_column}
        HAVING COUNT(*) > %s
        ORDER BY rate_pct DESC, {group_column}
        LIMIT %s
        """,
        (min_group_count, limit),
    )
    return [
        RateRow(value=str(r[0]), total=int(r[1]), flagged=int(r[2] or 0), rate_pct=Decimal(str(r[3])))
        for r in session.fetchall()
    ]


def build_report(
    session: StorageSession,
    dataset: Dataset,
    table: str = "transactions",
    *,
    top_n: int = 10,
    min_group_count: int = 1000,
) -> StatisticsReport:
    """Run the aggregate queries for a completed dataset."""
    if dataset.status is not DatasetStatus.COMPLETED:
        raise ReportError(
            f"dataset {dataset.id} is {dataset.status.value}; statistics need a completed load"
        )
    table = validate_identifier(table)
    logger.debug("building statistics dataset=%d table=%s", dataset.id, table)
    return StatisticsReport(
        dataset_id=dataset.id,
        overview=_overview(session, table),
        top_countries=_breakdown(session, table, "merchant_country", top_n),
        outcomes=_breakdown(session, table, "outcome", top_n),
        payment_methods=_breakdown(session, table, "payment_method", top_n),
        fraud_rate_by_country=_flag_rate(
            session, table, "merchant_country", "fraud", min_group_count, top_n
        ),
        min_group_count=min_group_count,
    )


def ensure_latest_dataset(session: StorageSession, dataset_table: str, dataset: Dataset) -> None:
    """Raise ReportError unless `dataset` is the newest run on the destination table.

    Every run truncates the destination table after creating its dataset row,
    so once a newer row exists the table no longer holds this dataset's records.
    """
    session.execute(
        f"SELECT id, status FROM {validate_identifier(dataset_table)} "
        "WHERE id > %s ORDER BY id LIMIT 1",
        (dataset.id,),
    )
    newer = session.fetchone()
    if newer is not None:
        raise ReportError(
            f"dataset {dataset.id} was replaced by dataset {newer[0]} ({newer[1]}); "
            "the destination table no longer holds its rows"
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def report_to_dict(report: StatisticsReport) -> dict[str, Any]:
    """JSON-ready dict (Decimal -> float, datetime -> ISO string)."""
    return _jsonable(asdict(report))
