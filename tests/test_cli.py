"""Tests for ptyexpect.cli (typer app)."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from ptyexpect.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for var in ("PTYEXPECT_NEWLINE", "PTYEXPECT_ROWS", "PTYEXPECT_COLS", "PTYEXPECT_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRunCommand:
    def test_match_exits_zero(self) -> None:
        result = runner.invoke(
            app,
            ["run", "/bin/sh", "--send", "echo $((6 * 7))", "--expect", "42", "--timeout", "5"],
        )
        assert result.exit_code == 0, result.output
        assert "42" in result.output

    def test_no_match_exits_one(self) -> None:
        result = runner.invoke(
            app, ["run", "/bin/sh", "--expect", "NEVER_PRINTED_[0-9]", "--timeout", "0.2"]
        )
        assert result.exit_code == 1
        assert "No match" in result.output

    def test_first_pattern_reported(self) -> None:
        result = runner.invoke(
            app,
            [
                "run",
                "/bin/sh",
                "-s",
                "echo done_$((1 + 1))",
                "-e",
                "missing_x",
                "-e",
                "done_2",
                "-t",
                "5",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "done_2" in result.output

    def test_no_patterns(self) -> None:
        result = runner.invoke(app, ["run", "/bin/sh", "--send", "true"])
        assert result.exit_code == 0, result.output

    def test_invalid_newline(self) -> None:
        result = runner.invoke(app, ["run", "/bin/sh", "--newline", "crlf"])
        assert result.exit_code == 2

    def test_missing_program(self) -> None:
        result = runner.invoke(
            app, ["run", "/nonexistent/program", "--expect", "x", "--timeout", "0.1"]
        )
        assert result.exit_code == 2
        assert "Error" in result.output


# ---------------------------------------------------------------------------
# winsize
# ---------------------------------------------------------------------------


class TestWinsizeCommand:
    def test_set_rows_cols(self) -> None:
        result = runner.invoke(app, ["winsize", "--rows", "30", "--cols", "100"])
        assert result.exit_code == 0, result.output
        assert "30x100" in result.output

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PTYEXPECT_ROWS", "25")
        monkeypatch.setenv("PTYEXPECT_COLS", "81")
        result = runner.invoke(app, ["winsize"])
        assert result.exit_code == 0, result.output
        assert "25x81" in result.output
