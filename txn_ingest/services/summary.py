from __future__ import annotations

from ..models.dataset import Dataset
from ..models.processing_result import IngestionResult
from .statistics import StatisticsReport

"""SUMMARY line and statistics report rendering.

SUMMARY format:
SUMMARY dataset={id} status={status} rows={processed}/{total} batches={n}
elapsed_sec={elapsed} throughput_rps={throughput}

Aborted runs replace the timing fields with the failing stage:
SUMMARY dataset={id} status=failed rows={processed}/{total} stage={stage}

With prefix=False the leading "SUMMARY " is left off, for log_summary() which
adds the label itself.
"""

SUMMARY_LABEL = "SUMMARY"


def _format_number(value: float) -> str:
    """Integers without decimals, tiny values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip('0').rstrip('.')
    return str(round(value, 3))


def _with_label(body: str, prefix: bool) -> str:
    return f"{SUMMARY_LABEL} {body}" if prefix else body


def render_summary_line(result: IngestionResult, *, prefix: bool = True) -> str:
    """Render the SUMMARY line of a finished run.

    Examples:
        >>> from datetime import datetime, timezone
        >>> from txn_ingest.models.dataset import Dataset, DatasetStatus
        >>> start = datetime(2023, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2023, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> ds = Dataset(id=7, name="x", filename="x.csv", status=DatasetStatus.COMPLETED,
        ...              total_rows=2500, processed_rows=2500)
        >>> result = IngestionResult(
        ...     dataset=ds, batch_sizes=(1000, 1000, 500), start_time=start, end_time=end,
        ...     elapsed_seconds=2.0, throughput_rows_per_sec=1250.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY dataset=7 status=completed rows=2500/2500 batches=3 elapsed_sec=2 throughput_rps=1250'
    """
    ds = result.dataset
    body = (
        f"dataset={ds.id} "
        f"status={ds.status.value} "
        f"rows={ds.processed_rows}/{ds.total_rows} "
        f"batches={result.total_batches} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)} "
        f"throughput_rps={_format_number(result.throughput_rows_per_sec)}"
    )
    return _with_label(body, prefix)


def render_report_lines(report: StatisticsReport) -> list[str]:
    """Human readable statistics, one log line each."""
    ov = report.overview
    lines = [
        f"dataset={report.dataset_id} statistics",
        f"  total_transactions={ov.total_transactions:,}",
        f"  unique_users={ov.unique_users:,} unique_merchants={ov.unique_merchants:,}",
        f"  fraud_transactions={ov.fraud_transactions:,} declined_transactions={ov.declined_transactions:,}",
        f"  date_range={ov.earliest_transaction} .. {ov.latest_transaction}",
        f"  avg_amount={ov.avg_amount} total_volume={ov.total_volume}",
    ]
    if report.top_countries:
        lines.append("  top countries by transactions:")
        lines.extend(f"    {c.value}: {c.count:,}" for c in report.top_countries)
    if report.outcomes:
        lines.append("  outcomes:")
        lines.extend(f"    {c.value}: {c.count:,}" for c in report.outcomes)
    if report.payment_methods:
        lines.append("  payment methods:")
        lines.extend(f"    {c.value}: {c.count:,}" for c in report.payment_methods)
    lines.append(f"  fraud rate by country (more than {report.min_group_count:,} transactions):")
    if report.fraud_rate_by_country:
        lines.extend(
            f"    {r.value}: {r.rate_pct}% ({r.flagged}/{r.total})"
            for r in report.fraud_rate_by_country
        )
    else:
        lines.append("    (no country above the minimum count)")
    return lines


def render_aborted_line(dataset: Dataset, stage: str, *, prefix: bool = True) -> str:
    """SUMMARY line of an aborted run (no timing, the run never finished)."""
    body = (
        f"dataset={dataset.id} "
        f"status={dataset.status.value} "
        f"rows={dataset.processed_rows}/{dataset.total_rows} "
        f"stage={stage}"
    )
    return _with_label(body, prefix)
