"""Tests for smd.lib.envparse."""

import pytest

from smd.lib.envparse import load_env, parse_env


class TestParseEnv:

    def test_simple_pairs(self):
        env = parse_env("MAX_PARALLEL_WORKERS=3\nPOLL_INTERVAL=0.5\n")
        assert env == {"MAX_PARALLEL_WORKERS": "3", "POLL_INTERVAL": "0.5"}

    def test_comments_and_blank_lines_ignored(self):
        env = parse_env("# settings\n\nMAX_ITERATIONS=7\n   # indented comment\n")
        assert env == {"MAX_ITERATIONS": "7"}

    def test_quotes_stripped(self):
        env = parse_env('FAILURE_KEYWORDS="error,panic"\nNOTIFICATIONS=\'false\'')
        assert env["FAILURE_KEYWORDS"] == "error,panic"
        assert env["NOTIFICATIONS"] == "false"

    def test_export_prefix_accepted(self):
        assert parse_env("export MAX_ITERATIONS=4") == {"MAX_ITERATIONS": "4"}

    def test_value_may_contain_equals(self):
        assert parse_env("FAILURE_KEYWORDS=a=b") == {"FAILURE_KEYWORDS": "a=b"}

    def test_missing_equals_raises_with_line(self):
        with pytest.raises(ValueError, match="smd.env:2"):
            parse_env("A=1\nnonsense\n", source="smd.env")

    def test_lowercase_key_rejected(self):
        with pytest.raises(ValueError, match="invalid key"):
            parse_env("max_workers=3")

    @pytest.mark.parametrize("value", ["$(whoami)", "`id`", "${HOME}", "a;b", "a && b", "a | b"])
    def test_shell_syntax_rejected(self, value):
        with pytest.raises(ValueError, match="forbidden"):
            parse_env(f"FAILURE_KEYWORDS={value}")


class TestLoadEnv:

    def test_missing_optional_file(self, tmp_path):
        assert load_env(tmp_path / "smd.env", required=False) == {}

    def test_missing_required_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_env(tmp_path / "smd.env")

    def test_reads_file(self, tmp_path):
        path = tmp_path / "smd.env"
        path.write_text("MAX_PARALLEL_WORKERS=2\n")
        assert load_env(path) == {"MAX_PARALLEL_WORKERS": "2"}
