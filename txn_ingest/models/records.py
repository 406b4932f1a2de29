from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""Record models flowing through the ingestion pipeline.

RawRecord is what the CSV reader produces: source field name -> raw string.
CanonicalRecord is one destination row of coerced values, ordered like the
column mapping's canonical columns.
"""

__all__ = [
    "CanonicalRecord",
    "RawRecord",
]


@dataclass(frozen=True)
class RawRecord:
    """One decoded data row of the source file.

    record_number is 1-based and counts data records only (the header is not
    a record). A field is None when the decoder produced no string for it.
    """
    record_number: int
    fields: dict[str, str | None]

    def get(self, name: str) -> str | None:
        return self.fields.get(name)


@dataclass(frozen=True)
class CanonicalRecord:
    """One destination row worth of typed values (immutable)."""
    record_number: int
    values: tuple[Any, ...]
