from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

"""Dataset domain model and DatasetStatus enum.

A Dataset is the persisted tracking row of one ingestion run. External
progress pollers only ever read it; the ProgressRecorder is its only writer.
"""

__all__ = [
    "Dataset",
    "DatasetStatus",
    "InvalidStatusTransition",
]


class InvalidStatusTransition(Exception):
    """Raised when a status change would move backwards or leave a terminal state."""


class DatasetStatus(Enum):
    """Status enum for the dataset lifecycle.

    State transitions: pending → processing → (completed | failed)

    - PENDING: Row exists but ingestion has not started
    - PROCESSING: Rows are being streamed into the destination table
    - COMPLETED: Every record was committed (terminal)
    - FAILED: The run aborted on a fatal error (terminal)
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DatasetStatus.COMPLETED, DatasetStatus.FAILED)

    def can_transition_to(self, target: DatasetStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS.get(self, frozenset())


_ALLOWED_TRANSITIONS: dict[DatasetStatus, frozenset[DatasetStatus]] = {
    DatasetStatus.PENDING: frozenset({DatasetStatus.PROCESSING, DatasetStatus.FAILED}),
    DatasetStatus.PROCESSING: frozenset({DatasetStatus.COMPLETED, DatasetStatus.FAILED}),
}


@dataclass(frozen=True)
class Dataset:
    """Tracking row for one ingestion run.

    processed_rows counts records committed to the destination table.
    total_rows counts records decoded from the source so far and becomes
    final when the run completes.
    """
    id: int
    name: str
    filename: str
    status: DatasetStatus = DatasetStatus.PENDING
    total_rows: int = 0
    processed_rows: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
