from __future__ import annotations

import pytest

from txn_ingest.models.column_mapping import (
    DEFAULT_COLUMN_MAPPING,
    DESTINATION_COLUMNS,
    ColumnKind,
    ColumnMapping,
    ColumnMappingError,
)


def test_default_mapping_covers_destination_schema():
    assert DEFAULT_COLUMN_MAPPING.canonical_columns == [c.name for c in DESTINATION_COLUMNS]
    assert dict(DEFAULT_COLUMN_MAPPING.pairs)["payment_method"] == "type"


def test_default_mapping_is_a_bijection():
    pairs = DEFAULT_COLUMN_MAPPING.pairs
    assert len({c for c, _ in pairs}) == len(pairs)
    assert len({s for _, s in pairs}) == len(pairs)


def test_kinds():
    m = DEFAULT_COLUMN_MAPPING
    assert m.kind_of("charged_amount") is ColumnKind.AMOUNT
    assert m.kind_of("txn_date_time") is ColumnKind.TIMESTAMP
    assert m.kind_of("fraud") is ColumnKind.FLAG
    assert m.kind_of("mcc") is ColumnKind.CODE
    assert m.kind_of("merchant_name") is ColumnKind.TEXT


@pytest.mark.parametrize(
    "pairs",
    [
        [("user_id", "a"), ("user_id", "b")],  # canonical twice
        [("user_id", "a"), ("merchant_id", "a")],  # source twice
        [("not_a_column", "a")],
        [("user_id", "")],
        [],
    ],
)
def test_invalid_mappings_rejected(pairs):
    with pytest.raises(ColumnMappingError):
        ColumnMapping.from_pairs(pairs)


def test_mapping_is_immutable():
    with pytest.raises(AttributeError):
        DEFAULT_COLUMN_MAPPING.pairs = ()  # type: ignore[misc]


def test_resolve_marks_missing_sources():
    m = ColumnMapping.from_pairs([("user_id", "uid"), ("mcc", "mcc_code")])
    resolved = m.resolve(["uid", "other"])
    assert [(r.canonical, r.source) for r in resolved] == [("user_id", "uid"), ("mcc", None)]
    assert resolved[1].kind is ColumnKind.CODE
