from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path
from typing import IO, Any

import pandas as pd

from ..errors import IngestionError
from ..models.records import RawRecord

"""Streaming CSV reader.

The file is read with pandas in fixed-size chunks (header=None) so memory stays
bounded regardless of file size. The first physical row is the header; every
following row becomes one RawRecord, in file order.

Decoding is strict: an unterminated quote, a row with more fields than the
header or invalid UTF-8 is fatal for the whole run (MalformedRecordError).
Values are kept as raw strings (no NA inference, "NA" stays "NA"); coercion
happens later in the row mapper.
"""

__all__ = [
    "CsvRecordReader",
    "DEFAULT_CHUNK_ROWS",
    "HeaderError",
    "MalformedRecordError",
    "MissingColumnsError",
    "SourceUnavailableError",
]

DEFAULT_CHUNK_ROWS = 1000

# C tokenizer: "Expected 11 fields in line 1202, saw 12" (1-based physical line)
_PARSER_LINE = re.compile(r"\bline (\d+)\b")


class SourceUnavailableError(IngestionError):
    """Raised when the input file is missing or cannot be opened."""


class HeaderError(IngestionError):
    """Raised when the header row is missing or invalid."""


class MissingColumnsError(IngestionError):
    """Raised when none of the mapped source columns exist in the header."""


class MalformedRecordError(IngestionError):
    """Raised when a data row cannot be decoded.

    record_number is the 1-based data record the decoder rejected, or None
    when the decoder did not report a position.
    """

    def __init__(self, message: str, record_number: int | None = None) -> None:
        super().__init__(message)
        self.record_number = record_number


def _record_number_from(error: Exception) -> int | None:
    """Data record number for a parser error, from its physical line number.

    The header is line 1, so record N sits on line N + 1 (blank lines and
    quoted line breaks shift this).
    """
    match = _PARSER_LINE.search(str(error))
    if match is None:
        return None
    record = int(match.group(1)) - 1
    return record if record >= 1 else None


class CsvRecordReader:
    """Lazy, finite, single-pass reader of RawRecords.

    Usage::

        with CsvRecordReader(path) as reader:
            header = reader.header
            for record in reader:
                ...
    """

    def __init__(
        self,
        path: Path,
        *,
        encoding: str = "utf-8-sig",
        chunk_rows: int = DEFAULT_CHUNK_ROWS,
        row_limit: int | None = None,
    ) -> None:
        self.path = Path(path)
        self.encoding = encoding
        self.chunk_rows = chunk_rows
        self.row_limit = row_limit
        self._handle: IO[str] | None = None
        self._chunks: Any = None  # pandas TextFileReader
        self._header: list[str] | None = None
        self._records_read = 0
        self._consumed = False

    def open(self) -> CsvRecordReader:
        """Open the file and decode the header row."""
        try:
            self._handle = self.path.open("r", encoding=self.encoding, newline="")
        except OSError as e:
            raise SourceUnavailableError(f"cannot open source file {self.path}: {e}") from e

        try:
            self._chunks = pd.read_csv(
                self._handle,
                header=None,
                dtype=str,
                keep_default_na=False,
                na_filter=False,
                skip_blank_lines=True,
                chunksize=self.chunk_rows,
                nrows=self.row_limit + 1 if self.row_limit is not None else None,
            )
            # ヘッダ行だけ先に読む。データ行の不正は反復時に検出される
            first = self._chunks.get_chunk(1)
        except (pd.errors.EmptyDataError, StopIteration) as e:
            self.close()
            raise HeaderError(f"source file {self.path.name} has no header row") from e
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            self.close()
            raise MalformedRecordError(f"cannot decode {self.path.name}: {e}") from e

        self._header = self._validate_header(first.iloc[0].tolist())
        return self

    def _validate_header(self, raw: list[Any]) -> list[str]:
        columns = [str(c).strip() if isinstance(c, str) else "" for c in raw]
        if any(c == "" for c in columns):
            self.close()
            raise HeaderError(f"source file {self.path.name} has a blank header name: {columns}")
        duplicates = sorted({c for c in columns if columns.count(c) > 1})
        if duplicates:
            self.close()
            raise HeaderError(f"source file {self.path.name} has duplicate header names: {duplicates}")
        return columns

    @property
    def header(self) -> list[str]:
        if self._header is None:
            raise RuntimeError("reader is not open")
        return list(self._header)

    @property
    def records_read(self) -> int:
        return self._records_read

    def __iter__(self) -> Iterator[RawRecord]:
        if self._header is None:
            raise RuntimeError("reader is not open")
        if self._consumed:
            raise RuntimeError("source records can only be iterated once")
        self._consumed = True
        return self._generate()

    def _generate(self) -> Iterator[RawRecord]:
        header = self._header or []
        try:
            for frame in self._chunks:
                for values in frame.itertuples(index=False, name=None):
                    if self.row_limit is not None and self._records_read >= self.row_limit:
                        return
                    self._records_read += 1
                    fields = {
                        name: (value if isinstance(value, str) else None)
                        for name, value in zip(header, values, strict=False)
                    }
                    yield RawRecord(record_number=self._records_read, fields=fields)
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            record = _record_number_from(e) if isinstance(e, pd.errors.ParserError) else None
            where = f" at record {record}" if record is not None else ""
            raise MalformedRecordError(
                f"cannot decode {self.path.name}{where}: {e}", record_number=record
            ) from e

    def close(self) -> None:
        if self._chunks is not None:
            self._chunks.close()
            self._chunks = None
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> CsvRecordReader:
        return self.open()

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
