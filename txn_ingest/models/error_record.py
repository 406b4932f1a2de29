from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

ErrorRecord is the structured JSON Lines entry written for every fatal
condition of a run. row=-1 is the sentinel for errors that cannot be tied to
a specific source record (header problems, progress persistence, ...).
dataset_id is None when the run failed before its Dataset row existed.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Source CSV filename being ingested
        dataset_id: Dataset row id, None if no Dataset was created
        row: Data record number (1-based). Use -1 when unknown
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Database or decoder error message
    """
    timestamp: str  # ISO8601 UTC
    file: str
    dataset_id: int | None
    row: int  # 不明な場合 -1
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(
        file: str, dataset_id: int | None, row: int, error_type: str, message: str
    ) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            dataset_id=dataset_id,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        """Serialize to one JSON line without extra keys."""
        return json.dumps(asdict(self), ensure_ascii=False)
