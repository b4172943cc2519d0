"""Tests for smd.notifications."""

from unittest.mock import MagicMock, patch

from smd.notifications import notify, notify_exhausted, notify_stalled


class TestNotify:

    @patch("smd.notifications.subprocess.run")
    @patch("smd.notifications.shutil.which", return_value=None)
    def test_skipped_without_notify_send(self, mock_which, mock_run):
        notify("Simply Done", "hello")
        mock_run.assert_not_called()

    @patch("smd.notifications.subprocess.run")
    @patch("smd.notifications.shutil.which", return_value="/usr/bin/notify-send")
    def test_sends_and_truncates(self, mock_which, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stderr="")
        notify("Simply Done", "x" * 300, urgency="bogus")
        cmd = mock_run.call_args.args[0]
        assert cmd[:5] == ["notify-send", "--urgency", "normal", "--app-name", "Simply Done"]
        assert cmd[-1] == "x" * 200 + "..."

    @patch("smd.notifications.notify")
    def test_stalled_message(self, mock_notify):
        notify_stalled(3, 5, 2)
        mock_notify.assert_called_once_with("Simply Done", "Stalled at 3/5, 2 failed", "critical")

    @patch("smd.notifications.notify")
    def test_exhausted_message(self, mock_notify):
        notify_exhausted(1, 4, 20)
        assert mock_notify.call_args.args[1] == "Reached 20 iterations at 1/4 complete"
