from __future__ import annotations

from pathlib import Path

import pytest

from txn_ingest.reader.csv_reader import (
    CsvRecordReader,
    HeaderError,
    MalformedRecordError,
    SourceUnavailableError,
)


def _write(tmp_path: Path, text: str, name: str = "t.csv") -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_header_and_records_in_file_order(tmp_path: Path):
    p = _write(tmp_path, "a,b,c\n1,2,3\n4,5,6\n7,8,9\n")
    with CsvRecordReader(p, chunk_rows=2) as reader:
        assert reader.header == ["a", "b", "c"]
        records = list(reader)
    assert [r.record_number for r in records] == [1, 2, 3]
    assert records[0].fields == {"a": "1", "b": "2", "c": "3"}
    assert records[2].get("c") == "9"
    assert reader.records_read == 3


def test_values_are_kept_as_raw_strings(tmp_path: Path):
    p = _write(tmp_path, 'a,b,c\nNA,"x, y",\nnull, 01 ,N/A\n')
    with CsvRecordReader(p) as reader:
        records = list(reader)
    assert records[0].fields == {"a": "NA", "b": "x, y", "c": ""}
    assert records[1].fields == {"a": "null", "b": " 01 ", "c": "N/A"}


def test_bom_is_tolerated(tmp_path: Path):
    p = tmp_path / "bom.csv"
    p.write_bytes("\ufeffuser_id,mcc\nU1,5411\n".encode("utf-8"))
    with CsvRecordReader(p) as reader:
        assert reader.header == ["user_id", "mcc"]
        assert [r.fields for r in reader] == [{"user_id": "U1", "mcc": "5411"}]


def test_header_only_file_yields_nothing(tmp_path: Path):
    p = _write(tmp_path, "a,b\n")
    with CsvRecordReader(p) as reader:
        assert reader.header == ["a", "b"]
        assert list(reader) == []


def test_missing_file(tmp_path: Path):
    with pytest.raises(SourceUnavailableError):
        CsvRecordReader(tmp_path / "nope.csv").open()


def test_empty_file_has_no_header(tmp_path: Path):
    p = _write(tmp_path, "")
    with pytest.raises(HeaderError):
        CsvRecordReader(p).open()


@pytest.mark.parametrize("header", ["a,,c", "a,b,a"])
def test_invalid_header_names(tmp_path: Path, header: str):
    p = _write(tmp_path, header + "\n1,2,3\n")
    with pytest.raises(HeaderError):
        CsvRecordReader(p).open()


def test_unterminated_quote_is_malformed(tmp_path: Path):
    p = _write(tmp_path, 'a,b\n1,2\n3,"unterminated\n5,6\n')
    with CsvRecordReader(p, chunk_rows=10) as reader:
        assert reader.header == ["a", "b"]
        with pytest.raises(MalformedRecordError):
            list(reader)


def test_invalid_utf8_is_malformed(tmp_path: Path):
    p = tmp_path / "latin1.csv"
    p.write_bytes(b"a,b\n1,caf\xe9\n")
    with pytest.raises(MalformedRecordError):
        with CsvRecordReader(p) as reader:
            list(reader)


def test_single_pass_only(tmp_path: Path):
    p = _write(tmp_path, "a\n1\n")
    with CsvRecordReader(p) as reader:
        list(reader)
        with pytest.raises(RuntimeError):
            iter(reader)


def test_row_limit(tmp_path: Path):
    p = _write(tmp_path, "a\n" + "\n".join(str(i) for i in range(10)) + "\n")
    with CsvRecordReader(p, chunk_rows=3, row_limit=4) as reader:
        records = list(reader)
    assert [r.get("a") for r in records] == ["0", "1", "2", "3"]
    assert reader.records_read == 4


def test_extra_field_reports_the_rejected_record(tmp_path: Path):
    rows = [f"{i},{i}" for i in range(1, 1501)]
    rows[1200] = "x,y,z"  # record 1201, in the middle of the second chunk
    p = _write(tmp_path, "a,b\n" + "\n".join(rows) + "\n")
    seen = []
    with CsvRecordReader(p, chunk_rows=1000) as reader:
        with pytest.raises(MalformedRecordError) as exc:
            for record in reader:
                seen.append(record.record_number)
    assert exc.value.record_number == 1201
    assert "record 1201" in str(exc.value)
    # the rejected chunk yields nothing
    assert seen == list(range(1, 1001))


def test_row_limit_stops_before_a_later_malformed_row(tmp_path: Path):
    rows = [f"{i},{i}" for i in range(1, 11)]
    rows[7] = "x,y,z"
    p = _write(tmp_path, "a,b\n" + "\n".join(rows) + "\n")
    with CsvRecordReader(p, chunk_rows=10, row_limit=5) as reader:
        records = list(reader)
    assert [r.get("a") for r in records] == ["1", "2", "3", "4", "5"]
