from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

"""Destination schema and the source -> canonical column mapping.

The destination table has a fixed set of canonical columns, each with a
semantic kind that selects its coercion rule. A ColumnMapping pairs canonical
columns with source CSV field names. It is validated once, never mutated, and
resolved against the CSV header a single time per run.
"""

__all__ = [
    "ColumnKind",
    "ColumnMapping",
    "ColumnMappingError",
    "ColumnDef",
    "DEFAULT_COLUMN_MAPPING",
    "DESTINATION_COLUMNS",
    "ResolvedColumn",
]


class ColumnMappingError(Exception):
    """Raised when a mapping is not a bijection or names unknown columns."""


class ColumnKind(Enum):
    """Semantic kind of a canonical column (selects the coercion rule)."""
    AMOUNT = "amount"
    TIMESTAMP = "timestamp"
    FLAG = "flag"
    CODE = "code"  # categorical numeric code, e.g. MCC
    TEXT = "text"


@dataclass(frozen=True)
class ColumnDef:
    name: str
    kind: ColumnKind
    sql_type: str


DESTINATION_COLUMNS: tuple[ColumnDef, ...] = (
    ColumnDef("user_id", ColumnKind.TEXT, "VARCHAR(255)"),
    ColumnDef("merchant_id", ColumnKind.TEXT, "VARCHAR(255)"),
    ColumnDef("charged_amount", ColumnKind.AMOUNT, "DECIMAL(15,2)"),
    ColumnDef("txn_date_time", ColumnKind.TIMESTAMP, "TIMESTAMP"),
    ColumnDef("outcome", ColumnKind.TEXT, "VARCHAR(50)"),
    ColumnDef("fraud", ColumnKind.FLAG, "INTEGER DEFAULT 0"),
    ColumnDef("decline", ColumnKind.FLAG, "INTEGER DEFAULT 0"),
    ColumnDef("merchant_country", ColumnKind.TEXT, "VARCHAR(100)"),
    ColumnDef("merchant_name", ColumnKind.TEXT, "TEXT"),
    ColumnDef("mcc", ColumnKind.CODE, "VARCHAR(10)"),
    ColumnDef("payment_method", ColumnKind.TEXT, "VARCHAR(100)"),
)

_DEFS_BY_NAME: dict[str, ColumnDef] = {d.name: d for d in DESTINATION_COLUMNS}


@dataclass(frozen=True)
class ResolvedColumn:
    """A mapping pair bound to a concrete header (source is None if absent)."""
    canonical: str
    kind: ColumnKind
    source: str | None


@dataclass(frozen=True)
class ColumnMapping:
    """Ordered (canonical column, source column) pairs.

    Each canonical column has at most one source column and each source
    column feeds at most one canonical column.
    """
    pairs: tuple[tuple[str, str], ...]

    def __post_init__(self) -> None:
        seen_canonical: set[str] = set()
        seen_source: set[str] = set()
        for canonical, source in self.pairs:
            if canonical not in _DEFS_BY_NAME:
                raise ColumnMappingError(f"unknown destination column: {canonical!r}")
            if not source:
                raise ColumnMappingError(f"empty source column for {canonical!r}")
            if canonical in seen_canonical:
                raise ColumnMappingError(f"destination column mapped twice: {canonical!r}")
            if source in seen_source:
                raise ColumnMappingError(f"source column mapped twice: {source!r}")
            seen_canonical.add(canonical)
            seen_source.add(source)
        if not self.pairs:
            raise ColumnMappingError("column mapping is empty")

    @classmethod
    def from_pairs(cls, pairs: Iterable[Sequence[str]]) -> ColumnMapping:
        return cls(pairs=tuple((str(c), str(s)) for c, s in pairs))

    @property
    def canonical_columns(self) -> list[str]:
        return [canonical for canonical, _ in self.pairs]

    @property
    def source_columns(self) -> list[str]:
        return [source for _, source in self.pairs]

    def kind_of(self, canonical: str) -> ColumnKind:
        return _DEFS_BY_NAME[canonical].kind

    def resolve(self, header: Sequence[str]) -> list[ResolvedColumn]:
        """Bind every pair to the header; sources missing from it resolve to None."""
        present = set(header)
        return [
            ResolvedColumn(
                canonical=canonical,
                kind=self.kind_of(canonical),
                source=source if source in present else None,
            )
            for canonical, source in self.pairs
        ]


# 元データ (LATAM export) は決済種別を "type" 列で持つ
DEFAULT_COLUMN_MAPPING = ColumnMapping.from_pairs(
    [
        ("user_id", "user_id"),
        ("merchant_id", "merchant_id"),
        ("charged_amount", "charged_amount"),
        ("txn_date_time", "txn_date_time"),
        ("outcome", "outcome"),
        ("fraud", "fraud"),
        ("decline", "decline"),
        ("merchant_country", "merchant_country"),
        ("merchant_name", "merchant_name"),
        ("mcc", "mcc"),
        ("payment_method", "type"),
    ]
)
