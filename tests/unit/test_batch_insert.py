from __future__ import annotations

import pytest

from txn_ingest.db.batch_insert import BatchInsertError, InsertResult, batch_insert


class DummyCursor:
    pass


def test_single_statement_per_batch(insert_recorder):
    rows = [(i, f"U{i}") for i in range(1, 6)]
    res = batch_insert(DummyCursor(), "transactions", ["id", "user_id"], rows)
    assert isinstance(res, InsertResult)
    assert res.inserted_rows == 5
    assert len(insert_recorder.calls) == 1
    call = insert_recorder.calls[0]
    assert call["sql"] == 'INSERT INTO transactions ("id","user_id") VALUES %s'
    assert call["page_size"] == 5
    assert call["rows"] == rows


def test_empty_rows_do_nothing(insert_recorder):
    res = batch_insert(DummyCursor(), "transactions", ["id"], [])
    assert res.inserted_rows == 0
    assert insert_recorder.calls == []


def test_driver_error_is_wrapped(insert_recorder):
    insert_recorder.fail_on = 1
    with pytest.raises(BatchInsertError, match="duplicate key"):
        batch_insert(DummyCursor(), "transactions", ["id"], [(1,)])


def test_metrics_callback_called_on_success_and_failure(insert_recorder):
    captured = []
    batch_insert(DummyCursor(), "t", ["c"], [(1,), (2,)], metrics_callback=captured.append)
    insert_recorder.fail_on = 2
    with pytest.raises(BatchInsertError):
        batch_insert(DummyCursor(), "t", ["c"], [(3,)], metrics_callback=captured.append)
    assert [m.batch_size for m in captured] == [2, 1]
    assert all(m.elapsed_seconds >= 0 for m in captured)
    assert all(m.end_time >= m.start_time for m in captured)
