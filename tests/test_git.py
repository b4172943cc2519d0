"""Tests for smd.git module."""

import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from smd.git import branch_exists, checkout_branch, get_current_branch, is_git_repo
from smd.git.runner import GitResult, run_git


class TestGitResult:
    """Test GitResult dataclass."""

    def test_success_when_returncode_zero(self):
        result = GitResult(returncode=0, stdout="ok", stderr="")
        assert result.success is True

    def test_failure_when_returncode_nonzero(self):
        result = GitResult(returncode=1, stdout="", stderr="error")
        assert result.success is False

    def test_failure_when_timed_out(self):
        result = GitResult(returncode=0, stdout="ok", stderr="", timed_out=True)
        assert result.success is False


class TestRunGit:
    """Test run_git function."""

    @patch("smd.git.runner.subprocess.run")
    def test_returns_result_on_success(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="output", stderr="")
        result = run_git(["status"], Path("/tmp"))
        assert result.success
        assert result.stdout == "output"
        assert mock_run.call_args.args[0] == ["git", "-C", "/tmp", "status"]

    @patch("smd.git.runner.subprocess.run")
    def test_handles_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="git", timeout=30)
        result = run_git(["status"], Path("/tmp"))
        assert not result.success
        assert result.timed_out

    @patch("smd.git.runner.subprocess.run")
    def test_missing_git(self, mock_run):
        mock_run.side_effect = FileNotFoundError("git")
        result = run_git(["status"], Path("/tmp"))
        assert result.returncode == 127
        assert get_current_branch(Path("/tmp")) is None


@pytest.fixture
def repo(tmp_path):
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    path = tmp_path / "repo"
    path.mkdir()
    for args in (
        ["init", "-b", "main"],
        ["config", "user.email", "test@example.com"],
        ["config", "user.name", "Test"],
        ["commit", "--allow-empty", "-m", "initial"],
    ):
        assert run_git(args, path).success
    return path


class TestBranches:

    def test_not_a_repo(self, tmp_path):
        assert not is_git_repo(tmp_path)
        assert get_current_branch(tmp_path) is None

    def test_current_branch(self, repo):
        assert is_git_repo(repo)
        assert get_current_branch(repo) == "main"

    def test_checkout_creates_branch(self, repo):
        assert not branch_exists(repo, "smd/login")
        assert checkout_branch(repo, "smd/login").success
        assert get_current_branch(repo) == "smd/login"
        assert branch_exists(repo, "smd/login")

    def test_checkout_existing_branch(self, repo):
        checkout_branch(repo, "smd/login")
        assert checkout_branch(repo, "main").success
        assert get_current_branch(repo) == "main"
