# tests/unit/test_main.py — v2
"""Tests for main.py — CLI entry point."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from a11ybatch.logging.logger import ROOT_LOGGER_NAME
from a11ybatch.main import (
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_OK,
    _build_parser,
    _cmd_run,
    main,
    read_url_file,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_env(tmp_path, monkeypatch, scanner):
    """SQLite state in tmp_path, no delays, scripted scanner."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("STATE_BACKEND", "sqlite")
    monkeypatch.setenv("STATE_SQLITE_PATH", str(tmp_path / "state.db"))
    monkeypatch.setenv("NOTIFIER_BACKEND", "memory")
    monkeypatch.setenv("INTER_PAGE_DELAY_S", "0")
    monkeypatch.setenv("TRANSIENT_RETRY_DELAY_S", "0")
    monkeypatch.setenv("RATE_LIMIT_RETRY_DELAY_S", "0")
    monkeypatch.setenv("DEFAULT_OWNER_ID", "cli-user")
    with patch("a11ybatch.api.facade.create_page_scanner", return_value=scanner):
        yield tmp_path
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.NOTSET)


@pytest.fixture
def urls_file(tmp_path) -> Path:
    path = tmp_path / "urls.txt"
    path.write_text(
        "# marketing pages\n"
        "https://example.com/\n"
        "\n"
        "  https://example.com/pricing  \n"
        "https://example.com/contact\n",
        encoding="utf-8",
    )
    return path


def _batch_id(stdout: str) -> str:
    line = next(l for l in stdout.splitlines() if l.startswith("Batch ") and "created" in l)
    return line.split()[1]


# ---------------------------------------------------------------------------
# Parser tests
# ---------------------------------------------------------------------------


class TestBuildParser:
    def test_version_flag(self):
        with pytest.raises(SystemExit) as exc_info:
            _build_parser().parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_run_subcommand(self):
        args = _build_parser().parse_args(
            ["run", "urls.txt", "--viewport", "mobile", "--name", "Shop", "--owner", "o1"],
        )
        assert args.command == "run"
        assert args.urls_file == Path("urls.txt")
        assert args.viewport == "mobile"
        assert args.name == "Shop"
        assert args.owner == "o1"

    def test_run_defaults(self):
        args = _build_parser().parse_args(["run", "urls.txt"])
        assert args.viewport == "desktop"
        assert args.name is None
        assert args.sitemap_url is None

    def test_invalid_viewport(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["run", "urls.txt", "--viewport", "tablet"])

    def test_report_subcommand(self):
        args = _build_parser().parse_args(["report", "b1", "--format", "html", "-o", "r.html"])
        assert args.batch_id == "b1"
        assert args.fmt == "html"
        assert args.output == Path("r.html")

    def test_list_defaults(self):
        args = _build_parser().parse_args(["list"])
        assert args.limit == 20
        assert args.offset == 0
        assert args.owner is None

    @pytest.mark.parametrize("command", ["status", "pages", "pause", "resume", "cancel"])
    def test_batch_commands(self, command):
        args = _build_parser().parse_args([command, "b1", "--owner", "o1"])
        assert args.batch_id == "b1"
        assert args.owner == "o1"


class TestReadUrlFile:
    def test_skips_blanks_and_comments(self, urls_file):
        assert read_url_file(urls_file) == [
            "https://example.com/",
            "https://example.com/pricing",
            "https://example.com/contact",
        ]


# ---------------------------------------------------------------------------
# main() tests
# ---------------------------------------------------------------------------


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == EXIT_FAILURE
        assert "usage:" in capsys.readouterr().out

    def test_invalid_configuration(self, monkeypatch, tmp_path, capsys):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("MAX_ATTEMPTS", "0")
        assert main(["list"]) == EXIT_FAILURE
        assert "Invalid configuration" in capsys.readouterr().err

    def test_run_then_inspect(self, cli_env, urls_file, scanner, outcomes, capsys):
        scanner.script("https://example.com/pricing", outcomes.success(2, rule_id="label"))
        scanner.script("https://example.com/contact", outcomes.failure("PAGE_NOT_FOUND"))

        assert main(["run", str(urls_file), "--name", "Marketing"]) == EXIT_OK
        out = capsys.readouterr().out
        batch_id = _batch_id(out)
        assert "created with 3 pages" in out
        assert f"Batch {batch_id} completed:" in out

        assert main(["status", batch_id, "--json"]) == EXIT_OK
        status = json.loads(capsys.readouterr().out)
        assert status["batch"]["status"] == "completed"
        assert status["progress"]["failedPages"] == 1
        assert status["progress"]["totalViolations"] == 2

        assert main(["pages", batch_id, "--status", "failed"]) == EXIT_OK
        pages_out = capsys.readouterr().out
        assert "PAGE_NOT_FOUND" in pages_out
        assert "https://example.com/contact" in pages_out

        assert main(["list"]) == EXIT_OK
        assert "1 of 1 batches" in capsys.readouterr().out

    def test_run_missing_file(self, cli_env):
        assert main(["run", str(cli_env / "nope.txt")]) == EXIT_FAILURE

    def test_run_invalid_urls(self, cli_env, capsys):
        bad = cli_env / "bad.txt"
        bad.write_text("not-a-url\n", encoding="utf-8")
        assert main(["run", str(bad)]) == EXIT_FAILURE
        assert "created" not in capsys.readouterr().out

    def test_report_to_file(self, cli_env, urls_file, capsys):
        main(["run", str(urls_file)])
        batch_id = _batch_id(capsys.readouterr().out)
        output = cli_env / "reports" / "report.html"

        assert main(["report", batch_id, "--format", "html", "-o", str(output)]) == EXIT_OK
        assert f"Report written to {output}" in capsys.readouterr().out
        assert output.read_text(encoding="utf-8").startswith("<!DOCTYPE html>")

    def test_report_to_stdout(self, cli_env, urls_file, capsys):
        main(["run", str(urls_file)])
        batch_id = _batch_id(capsys.readouterr().out)

        assert main(["report", batch_id]) == EXIT_OK
        assert json.loads(capsys.readouterr().out)["summary"]["totalPages"] == 3

    def test_unknown_batch(self, cli_env):
        assert main(["status", "missing"]) == EXIT_FAILURE
        assert main(["report", "missing"]) == EXIT_FAILURE

    def test_control_error_exit_code(self, cli_env, urls_file, capsys):
        main(["run", str(urls_file)])
        batch_id = _batch_id(capsys.readouterr().out)

        assert main(["pause", batch_id]) == EXIT_FAILURE
        assert "Error (invalid_operation)" in capsys.readouterr().err

    def test_foreign_owner_cannot_cancel(self, cli_env, urls_file, capsys):
        main(["run", str(urls_file), "--owner", "alice"])
        batch_id = _batch_id(capsys.readouterr().out)

        assert main(["cancel", batch_id, "--owner", "bob"]) == EXIT_FAILURE
        assert "Error (not_found)" in capsys.readouterr().err

    def test_keyboard_interrupt(self, cli_env):
        with patch("a11ybatch.main._dispatch", side_effect=KeyboardInterrupt):
            assert main(["list"]) == EXIT_INTERRUPTED

    def test_fatal_error(self, cli_env):
        with patch("a11ybatch.main._dispatch", side_effect=RuntimeError("boom")):
            assert main(["list"]) == EXIT_FAILURE


class TestReportSettings:
    def test_save_uses_report_output_dir(self, cli_env, urls_file, monkeypatch, capsys):
        monkeypatch.setenv("REPORT_OUTPUT_DIR", str(cli_env / "out"))
        main(["run", str(urls_file)])
        batch_id = _batch_id(capsys.readouterr().out)

        assert main(["report", batch_id, "--save"]) == EXIT_OK

        saved = cli_env / "out" / f"{batch_id}.json"
        assert f"Report written to {saved}" in capsys.readouterr().out
        assert json.loads(saved.read_text(encoding="utf-8"))["batchId"] == batch_id

    def test_save_and_output_are_exclusive(self):
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["report", "b1", "--save", "-o", "r.json"])

    def test_html_honours_top_recommendations(
        self, cli_env, urls_file, scanner, outcomes, monkeypatch, capsys,
    ):
        monkeypatch.setenv("REPORT_TOP_RECOMMENDATIONS_HTML", "1")
        scanner.script("https://example.com/", outcomes.success(1, rule_id="label"))
        scanner.script("https://example.com/pricing", outcomes.success(1, rule_id="image-alt"))
        main(["run", str(urls_file)])
        batch_id = _batch_id(capsys.readouterr().out)

        assert main(["report", batch_id, "--format", "html"]) == EXIT_OK
        assert capsys.readouterr().out.count('class="recommendation ') == 1


class TestRunInterrupted:
    @pytest.mark.asyncio
    async def test_cancelled_run_pauses_batch(self, urls_file):
        service = MagicMock()
        service.create_batch = AsyncMock(return_value=MagicMock(id="b1", total_pages=3))
        service.run_batch = AsyncMock(side_effect=asyncio.CancelledError)
        service.pause_batch = AsyncMock()
        args = _build_parser().parse_args(["run", str(urls_file)])

        with pytest.raises(asyncio.CancelledError):
            await _cmd_run(args, service)

        service.pause_batch.assert_awaited_once_with("b1")
