"""Tests for the smd command line."""

from unittest.mock import patch

import pytest

from smd import __version__
from smd.cli import build_parser, get_run_config, main


class TestParser:

    def test_run_defaults(self):
        args = build_parser().parse_args(["run"])
        assert args.smd_dir == ".smd"
        assert args.args == []
        assert args.yes is False
        assert args.workers is None

    def test_run_positional_and_options(self):
        args = build_parser().parse_args(["--smd-dir", "/w/.smd", "run", "tasks/smd-prd-a.md", "5", "-y", "-w", "3"])
        assert args.smd_dir == "/w/.smd"
        assert args.args == ["tasks/smd-prd-a.md", "5"]
        assert args.yes is True
        assert args.workers == 3

    def test_reset_options(self):
        args = build_parser().parse_args(["reset", "US-001", "US-002", "--failed"])
        assert args.ids == ["US-001", "US-002"]
        assert args.failed is True
        assert args.all is False

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            build_parser().parse_args(["--version"])
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out


class TestGetRunConfig:

    def test_invalid_env_exits(self, smd_dir, capsys):
        (smd_dir / "smd.env").write_text("MAX_PARALLEL_WORKERS=lots\n")
        args = build_parser().parse_args(["--smd-dir", str(smd_dir), "status"])
        with pytest.raises(SystemExit) as exc:
            get_run_config(args)
        assert exc.value.code == 1
        assert "ERROR: MAX_PARALLEL_WORKERS must be an integer" in capsys.readouterr().out

    def test_loads_env(self, smd_dir):
        (smd_dir / "smd.env").write_text("MAX_PARALLEL_WORKERS=2\n")
        args = build_parser().parse_args(["--smd-dir", str(smd_dir), "status"])
        assert get_run_config(args).max_workers == 2


class TestMain:

    def test_dispatches_to_command(self, smd_dir):
        with patch("smd.cli.cmd_status_module.cmd_status", return_value=0) as mock_status:
            assert main(["--smd-dir", str(smd_dir), "status"]) == 0
        args, config = mock_status.call_args.args
        assert config.smd_dir == smd_dir

    def test_exit_code_propagates(self, smd_dir):
        with patch("smd.cli.cmd_run_module.cmd_run", return_value=130):
            assert main(["--smd-dir", str(smd_dir), "run"]) == 130
