from __future__ import annotations

from .records import CanonicalRecord

"""Batch accumulator model.

A Batch is the bounded, ordered group of canonical records committed together
by one multi-row INSERT. It never holds more than `capacity` records; the
caller must flush once `is_full` becomes true.
"""

__all__ = [
    "Batch",
    "BatchOverflowError",
    "DEFAULT_BATCH_CAPACITY",
]

DEFAULT_BATCH_CAPACITY = 1000


class BatchOverflowError(Exception):
    """Raised when a record is added to a batch that is already full."""


class Batch:
    """Bounded buffer of canonical records (single owner, not thread safe)."""

    def __init__(self, capacity: int = DEFAULT_BATCH_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"batch capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._records: list[CanonicalRecord] = []

    def add(self, record: CanonicalRecord) -> bool:
        """Append a record and return True when the batch has become full."""
        if self.is_full:
            raise BatchOverflowError(
                f"batch already holds {self.capacity} records; flush before adding"
            )
        self._records.append(record)
        return self.is_full

    @property
    def is_full(self) -> bool:
        return len(self._records) >= self.capacity

    @property
    def records(self) -> tuple[CanonicalRecord, ...]:
        return tuple(self._records)

    def clear(self) -> None:
        self._records = []

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)
