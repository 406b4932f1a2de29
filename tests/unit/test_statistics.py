from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal

import pytest

from txn_ingest.models.dataset import Dataset, DatasetStatus
from txn_ingest.services.statistics import (
    ReportError,
    build_report,
    ensure_latest_dataset,
    report_to_dict,
)


def _completed() -> Dataset:
    return Dataset(
        id=7, name="n", filename="f.csv", status=DatasetStatus.COMPLETED,
        total_rows=3000, processed_rows=3000,
    )


def _prime(cursor) -> None:
    cursor.fetchone_results.append(
        (
            3000, 120, 40, 60, 240,
            datetime(2024, 1, 1), datetime(2024, 1, 28),
            Decimal("250.25"), Decimal("750750.00"),
        )
    )
    cursor.fetchall_results.extend(
        [
            [("BR", 2000), ("MX", 1000)],
            [("approved", 2760), ("declined", 240)],
            [("credit", 3000)],
            [("BR", 2000, 50, Decimal("2.50"))],
        ]
    )


def test_build_report(fake_session, fake_cursor):
    _prime(fake_cursor)
    report = build_report(fake_session, _completed(), "transactions", top_n=5, min_group_count=1500)
    assert report.dataset_id == 7
    assert report.overview.total_transactions == 3000
    assert report.overview.unique_users == 120
    assert report.overview.fraud_transactions == 60
    assert [(c.value, c.count) for c in report.top_countries] == [("BR", 2000), ("MX", 1000)]
    assert report.outcomes[1].value == "declined"
    assert report.payment_methods[0].count == 3000
    rate = report.fraud_rate_by_country[0]
    assert (rate.value, rate.total, rate.flagged, rate.rate_pct) == ("BR", 2000, 50, Decimal("2.50"))
    # HAVING COUNT(*) > min_group_count, LIMIT top_n
    rate_sql, rate_params = fake_cursor.executed[-1]
    assert "HAVING COUNT(*) > %s" in rate_sql
    assert rate_params == (1500, 5)


def test_report_is_read_only(fake_session, fake_cursor, fake_connection):
    _prime(fake_cursor)
    build_report(fake_session, _completed())
    assert fake_connection.commits == 0
    assert all(sql.lstrip().startswith("SELECT") for sql, _ in fake_cursor.executed)


@pytest.mark.parametrize("status", [DatasetStatus.PROCESSING, DatasetStatus.FAILED])
def test_report_requires_completed_dataset(fake_session, fake_cursor, status):
    ds = Dataset(id=1, name="n", filename="f.csv", status=status)
    with pytest.raises(ReportError):
        build_report(fake_session, ds)
    assert fake_cursor.executed == []


def test_empty_table_report(fake_session, fake_cursor):
    fake_cursor.fetchone_results.append((0, 0, 0, 0, 0, None, None, None, None))
    report = build_report(fake_session, _completed())
    assert report.overview.total_transactions == 0
    assert report.top_countries == []
    assert report.fraud_rate_by_country == []


def test_report_to_dict_is_json_ready(fake_session, fake_cursor):
    _prime(fake_cursor)
    data = report_to_dict(build_report(fake_session, _completed()))
    text = json.dumps(data)
    assert json.loads(text)["overview"]["avg_amount"] == 250.25
    assert data["overview"]["earliest_transaction"] == "2024-01-01T00:00:00"
    assert data["fraud_rate_by_country"][0]["rate_pct"] == 2.5


def test_newest_dataset_may_be_reported(fake_session, fake_cursor):
    ensure_latest_dataset(fake_session, "datasets", _completed())
    sql, params = fake_cursor.executed[-1]
    assert sql.startswith("SELECT id, status FROM datasets WHERE id > %s")
    assert params == (7,)


@pytest.mark.parametrize("newer_status", ["completed", "processing", "failed"])
def test_replaced_dataset_is_rejected(fake_session, fake_cursor, newer_status):
    # a newer run truncated the destination table
    fake_cursor.fetchone_results.append((8, newer_status))
    with pytest.raises(ReportError, match=f"replaced by dataset 8 \\({newer_status}\\)"):
        ensure_latest_dataset(fake_session, "datasets", _completed())
