"""Tests for smd.lib.config."""

from pathlib import Path

import pytest

from smd.lib.config import (
    ConfigError,
    RunConfig,
    find_task_documents,
    load_run_config,
    resolve_prd_path,
)
from smd.lib.constants import DEFAULT_FAILURE_KEYWORDS


class TestLoadRunConfig:

    def test_defaults_without_env_file(self, smd_dir):
        config = load_run_config(smd_dir)
        assert config.max_workers == 5
        assert config.max_iterations == 20
        assert config.poll_interval == 2.0
        assert config.stop_timeout == 10.0
        assert config.convert_timeout == 900
        assert config.failure_keywords == DEFAULT_FAILURE_KEYWORDS
        assert config.notifications is True

    def test_values_from_env_file(self, smd_dir):
        (smd_dir / "smd.env").write_text(
            "MAX_PARALLEL_WORKERS=2\n"
            "MAX_ITERATIONS=8\n"
            "POLL_INTERVAL=0.25\n"
            "STOP_TIMEOUT=3\n"
            "FAILURE_KEYWORDS=Panic, traceback\n"
            "NOTIFICATIONS=false\n"
        )
        config = load_run_config(smd_dir)
        assert config.max_workers == 2
        assert config.max_iterations == 8
        assert config.poll_interval == 0.25
        assert config.stop_timeout == 3.0
        assert config.failure_keywords == ("panic", "traceback")
        assert config.notifications is False

    def test_zero_workers_allowed(self, smd_dir):
        (smd_dir / "smd.env").write_text("MAX_PARALLEL_WORKERS=0\n")
        assert load_run_config(smd_dir).max_workers == 0

    def test_zero_iterations_rejected(self, smd_dir):
        (smd_dir / "smd.env").write_text("MAX_ITERATIONS=0\n")
        with pytest.raises(ConfigError, match="MAX_ITERATIONS"):
            load_run_config(smd_dir)

    def test_non_numeric_rejected(self, smd_dir):
        (smd_dir / "smd.env").write_text("MAX_PARALLEL_WORKERS=lots\n")
        with pytest.raises(ConfigError, match="integer"):
            load_run_config(smd_dir)

    def test_malformed_file_is_config_error(self, smd_dir):
        (smd_dir / "smd.env").write_text("this is not an env file\n")
        with pytest.raises(ConfigError):
            load_run_config(smd_dir)

    def test_empty_keywords_warns(self, smd_dir, caplog):
        (smd_dir / "smd.env").write_text("FAILURE_KEYWORDS=\n")
        config = load_run_config(smd_dir)
        assert config.failure_keywords == ()
        assert "FAILURE_KEYWORDS is empty" in caplog.text

    def test_unknown_notifications_value_warns(self, smd_dir, caplog):
        (smd_dir / "smd.env").write_text("NOTIFICATIONS=maybe\n")
        assert load_run_config(smd_dir).notifications is True
        assert "NOTIFICATIONS" in caplog.text


class TestRunConfigPaths:

    def test_paths_inside_smd_dir(self, smd_dir):
        config = RunConfig(smd_dir=smd_dir)
        assert config.prd_file == smd_dir / "smd-prd.json"
        assert config.prompt_file == smd_dir / "smd-prompt.md"
        assert config.progress_file == smd_dir / "smd-progress.txt"
        assert config.tasks_dir == smd_dir / "tasks"
        assert config.repo_dir == smd_dir.resolve().parent


class TestPrdPaths:

    def test_relative_to_smd_dir(self, smd_dir):
        assert resolve_prd_path(smd_dir, "tasks/smd-prd-a.md") == smd_dir / "tasks/smd-prd-a.md"

    def test_absolute_kept(self, smd_dir):
        assert resolve_prd_path(smd_dir, "/tmp/x.md") == Path("/tmp/x.md")

    def test_find_task_documents_sorted(self, smd_dir):
        tasks = smd_dir / "tasks"
        tasks.mkdir()
        (tasks / "smd-prd-b.md").write_text("b")
        (tasks / "smd-prd-a.md").write_text("a")
        (tasks / "notes.md").write_text("ignored")
        assert [p.name for p in find_task_documents(smd_dir)] == ["smd-prd-a.md", "smd-prd-b.md"]

    def test_find_task_documents_without_dir(self, smd_dir):
        assert find_task_documents(smd_dir) == []
