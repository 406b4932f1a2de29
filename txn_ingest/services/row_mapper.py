from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

import pandas as pd

from ..models.column_mapping import ColumnKind, ColumnMapping, ResolvedColumn
from ..models.records import CanonicalRecord, RawRecord

"""Row mapping and per-kind value coercion.

Coercion never raises: an unusable raw value becomes the column kind's
defined default. amount / timestamp / code default to None, flag defaults to
0.

| kind      | rule                                                        |
|-----------|-------------------------------------------------------------|
| amount    | Decimal; empty / unparsable / non-finite -> None            |
| timestamp | UTC ISO-8601 "YYYY-MM-DDTHH:MM:SS.mmmZ"; unparsable -> None |
| flag      | leading integer ("1.0" -> 1); empty / unparsable -> 0        |
| code      | integer prefix ("5411.0" -> "5411"); empty -> None          |
| text      | unchanged; absent -> None                                   |
"""

__all__ = [
    "COERCERS",
    "RowMapper",
    "coerce_amount",
    "coerce_code",
    "coerce_flag",
    "coerce_text",
    "coerce_timestamp",
]

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
# pandas also accepts "now" / "today"; only digit-led values are dates
_DATE_START = re.compile(r"\s*\d")

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1

FLAG_DEFAULT = 0


def coerce_amount(raw: str | None) -> Decimal | None:
    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


def coerce_timestamp(raw: str | None, timezone: str = "UTC") -> str | None:
    if raw is None or _DATE_START.match(raw) is None:
        return None
    try:
        ts = pd.Timestamp(raw.strip())
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        # DST gaps / overlaps in the local zone become NaT instead of raising
        ts = ts.tz_localize(timezone, nonexistent="NaT", ambiguous="NaT")
        if pd.isna(ts):
            return None
    ts = ts.tz_convert("UTC")
    return ts.to_pydatetime(warn=False).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def coerce_flag(raw: str | None) -> int:
    if raw is None:
        return FLAG_DEFAULT
    match = _LEADING_INT.match(raw)
    if match is None:
        return FLAG_DEFAULT
    value = int(match.group(1))
    if not INT32_MIN <= value <= INT32_MAX:
        return FLAG_DEFAULT
    return value


def coerce_code(raw: str | None) -> str | None:
    if raw is None:
        return None
    prefix = raw.strip().split(".", 1)[0]
    return prefix or None


def coerce_text(raw: str | None) -> str | None:
    return raw


COERCERS: dict[ColumnKind, Callable[[str | None], Any]] = {
    ColumnKind.AMOUNT: coerce_amount,
    ColumnKind.TIMESTAMP: coerce_timestamp,
    ColumnKind.FLAG: coerce_flag,
    ColumnKind.CODE: coerce_code,
    ColumnKind.TEXT: coerce_text,
}


class RowMapper:
    """Turns RawRecords into CanonicalRecords for one source header.

    The mapping is resolved against the header once; mapping a row is then a
    fixed list of (source field, coercer) lookups. Pure and order preserving.
    """

    def __init__(self, mapping: ColumnMapping, header: Sequence[str], *, timezone: str = "UTC") -> None:
        self.mapping = mapping
        self.timezone = timezone
        self.resolved: list[ResolvedColumn] = mapping.resolve(header)
        self._plan: list[tuple[str | None, Callable[[str | None], Any]]] = [
            (col.source, self._coercer_for(col.kind)) for col in self.resolved
        ]

    def _coercer_for(self, kind: ColumnKind) -> Callable[[str | None], Any]:
        if kind is ColumnKind.TIMESTAMP:
            tz = self.timezone
            return lambda raw: coerce_timestamp(raw, tz)
        return COERCERS[kind]

    @property
    def columns(self) -> list[str]:
        return [col.canonical for col in self.resolved]

    @property
    def missing_sources(self) -> list[str]:
        return [src for (_, src), col in zip(self.mapping.pairs, self.resolved) if col.source is None]

    def map(self, raw: RawRecord) -> CanonicalRecord:
        values = tuple(
            coerce(raw.get(source) if source is not None else None)
            for source, coerce in self._plan
        )
        return CanonicalRecord(record_number=raw.record_number, values=values)

    def map_all(self, records: Iterable[RawRecord]) -> Iterator[CanonicalRecord]:
        for raw in records:
            yield self.map(raw)
