from __future__ import annotations

from unittest.mock import Mock, patch

from data_alchemist.services.progress import ProgressTracker, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch("sys.stdout.isatty", return_value=True):
        assert is_tty_enabled() is True
    with patch("sys.stdout.isatty", return_value=False):
        assert is_tty_enabled() is False


def test_no_bar_without_tty():
    with patch("data_alchemist.services.progress.is_tty_enabled", return_value=False), \
         patch("data_alchemist.services.progress.tqdm") as mock_tqdm:
        with ProgressTracker(4) as tracker:
            tracker.start_step("clients")
            tracker.finish_step(rows=2)
        assert tracker.pbar is None
        assert tracker.completed == 1
        mock_tqdm.assert_not_called()


def test_bar_updates_on_tty():
    mock_pbar = Mock()
    with patch("data_alchemist.services.progress.is_tty_enabled", return_value=True), \
         patch("data_alchemist.services.progress.tqdm", return_value=mock_pbar) as mock_tqdm:
        tracker = ProgressTracker(4, description="Validating")
        tracker.start_step("workers")
        mock_pbar.set_description.assert_called_with("Validating (workers)")
        tracker.finish_step(errors=3)
        mock_pbar.update.assert_called_once_with(1)
        mock_pbar.set_postfix.assert_called_once_with(errors=3)
        tracker.close()
        mock_pbar.close.assert_called_once()
        assert tracker.pbar is None
        assert mock_tqdm.call_args.kwargs["total"] == 4
