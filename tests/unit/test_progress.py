from __future__ import annotations

from unittest.mock import patch

from txn_ingest.services.progress import ProgressTracker, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch('sys.stdout.isatty', return_value=True):
        assert is_tty_enabled() is True

    with patch('sys.stdout.isatty', return_value=False):
        assert is_tty_enabled() is False


class TestProgressTracker:
    def test_init_with_tty_enabled(self):
        with patch('txn_ingest.services.progress.is_tty_enabled', return_value=True), \
             patch('txn_ingest.services.progress.tqdm') as mock_tqdm:
            tracker = ProgressTracker(description="data.csv")

            assert tracker.enabled is True
            mock_tqdm.assert_called_once_with(
                total=None,
                desc="data.csv",
                unit="row",
                unit_scale=True,
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def test_init_with_tty_disabled(self):
        with patch('txn_ingest.services.progress.is_tty_enabled', return_value=False), \
             patch('txn_ingest.services.progress.tqdm') as mock_tqdm:
            tracker = ProgressTracker()

            assert tracker.enabled is False
            assert tracker.pbar is None
            mock_tqdm.assert_not_called()

    def test_advance_updates_bar_per_batch(self):
        with patch('txn_ingest.services.progress.is_tty_enabled', return_value=True), \
             patch('txn_ingest.services.progress.tqdm') as mock_tqdm:
            pbar = mock_tqdm.return_value
            with ProgressTracker() as tracker:
                tracker.advance(1000)
                tracker.advance(500)

            assert (tracker.rows, tracker.batches) == (1500, 2)
            assert [c.args for c in pbar.update.call_args_list] == [(1000,), (500,)]
            pbar.close.assert_called_once()

    def test_advance_counts_without_tty(self):
        with patch('txn_ingest.services.progress.is_tty_enabled', return_value=False):
            tracker = ProgressTracker()
            tracker.advance(10)
            tracker.set_postfix(rows=10)
            tracker.close()
            assert tracker.rows == 10
