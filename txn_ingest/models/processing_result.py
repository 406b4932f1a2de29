from __future__ import annotations

import statistics
from dataclasses import dataclass
from datetime import datetime

from .dataset import Dataset

"""Processing result models for the ingestion tool.

IngestionResult is what run_ingestion() returns on success: the final Dataset
state plus flush-level metrics used for the SUMMARY line.
"""

__all__ = [
    "BatchStatsAccumulator",
    "IngestionResult",
]


@dataclass(frozen=True)
class IngestionResult:
    """Aggregated results of one successful ingestion run."""
    dataset: Dataset  # final state (status=completed)
    batch_sizes: tuple[int, ...]  # flushed batch sizes in flush order
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_rows_per_sec: float  # processed_rows / elapsed
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0

    @property
    def total_batches(self) -> int:
        return len(self.batch_sizes)

    @property
    def flushed_rows(self) -> int:
        return sum(self.batch_sizes)


class BatchStatsAccumulator:
    """Collects per-batch INSERT timings and summarizes them."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th out of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
