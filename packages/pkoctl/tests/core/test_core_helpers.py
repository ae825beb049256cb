from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from pkoctl.config.settings import Settings
from pkoctl.core.console import Console
from pkoctl.core.context import RunContext
from pkoctl.core.process import EXIT_NOT_FOUND, EXIT_TIMEOUT, run_command
from pkoctl.core.prompt import CannedPrompt, ConsolePrompt, UnattendedPrompt
from pkoctl.logging import log_event


def test_console_prefixes_levels_and_keeps_brackets_literal() -> None:
    err, out = io.StringIO(), io.StringIO()
    console = Console(color=False, stderr=err, stdout=out)
    console.info("pods [0/1] ready")
    console.success("done")
    console.warning("careful")
    console.error("broken")
    console.debug("hidden")
    console.echo("plain result")
    lines = err.getvalue().splitlines()
    assert lines == ["[INFO] pods [0/1] ready", "[SUCCESS] done", "[WARNING] careful", "[ERROR] broken"]
    assert out.getvalue() == "plain result\n"


def test_quiet_console_still_reports_problems() -> None:
    err = io.StringIO()
    console = Console(quiet=True, debug=True, color=False, stderr=err, stdout=io.StringIO())
    console.info("noise")
    console.block("table")
    console.warning("w")
    console.debug("d")
    assert err.getvalue().splitlines() == ["[WARNING] w", "[DEBUG] d"]


def test_console_prompt_parses_answers_and_defaults() -> None:
    replies = iter(["y", "NO", "", "maybe"])
    prompt = ConsolePrompt(reader=lambda _q: next(replies))
    assert prompt.confirm("Continue?") is True
    assert prompt.confirm("Continue?", default=True) is False
    assert prompt.confirm("Continue?", default=True) is True
    assert prompt.confirm("Continue?") is False


def test_console_prompt_uses_secret_reader_and_handles_eof() -> None:
    def eof(_question: str) -> str:
        raise EOFError

    asked: list[str] = []
    prompt = ConsolePrompt(reader=eof, secret_reader=lambda q: asked.append(q) or "s3cr3t")
    assert prompt.ask("AWS Secret Access Key", secret=True) == "s3cr3t"
    assert asked == ["AWS Secret Access Key: "]
    assert prompt.ask("AWS Region", default="us-west-2") == "us-west-2"
    assert prompt.confirm("Delete?", default=True) is True


def test_unattended_and_canned_prompts() -> None:
    unattended = UnattendedPrompt()
    assert unattended.confirm("Deploy?", default=True) is True
    assert unattended.confirm("Delete?") is False
    assert unattended.ask("Region", default="us-west-2") == "us-west-2"
    canned = CannedPrompt([False, "AKIA"])
    assert canned.confirm("Reinstall?", default=True) is False
    assert canned.ask("Key") == "AKIA"
    assert canned.ask("Region", default="us-east-1") == "us-east-1"
    assert canned.questions == ["Reinstall?", "Key", "Region"]


def test_run_context_picks_prompt_from_attended_flag(tmp_path: Path) -> None:
    console = Console(color=False, stderr=io.StringIO(), stdout=io.StringIO())
    attended = RunContext.from_args(Settings(), run_id="r", cwd=tmp_path, console=console)
    unattended = RunContext.from_args(Settings(attended=False), run_id="r", cwd=tmp_path, console=console)
    assert isinstance(attended.prompt, ConsolePrompt)
    assert isinstance(unattended.prompt, UnattendedPrompt)
    assert not unattended.attended
    moved = attended.with_settings(Settings(dry_run=True))
    assert moved.dry_run and moved.run_id == "r"


def test_run_command_captures_output_and_exit_code(tmp_path: Path) -> None:
    res = run_command(["sh", "-c", "echo out; echo err >&2; exit 3"], cwd=tmp_path)
    assert res.code == 3
    assert res.stdout == "out\n"
    assert res.stderr == "err\n"
    assert not res.ok
    assert res.combined_output == "out\nerr"


def test_run_command_feeds_stdin(tmp_path: Path) -> None:
    res = run_command(["cat"], cwd=tmp_path, input_text="apiVersion: v1\n")
    assert res.ok
    assert res.stdout == "apiVersion: v1\n"


def test_run_command_maps_timeout_and_missing_binary(tmp_path: Path) -> None:
    slow = run_command(["sleep", "5"], cwd=tmp_path, timeout_seconds=1)
    assert slow.code == EXIT_TIMEOUT
    assert "timed out after 1s" in slow.stderr
    missing = run_command(["pkoctl-no-such-binary"], cwd=tmp_path)
    assert missing.code == EXIT_NOT_FOUND
    assert "command not found" in missing.stderr


def _ctx(tmp_path: Path, verbose: bool, log_json: bool) -> RunContext:
    console = Console(color=False, stderr=io.StringIO(), stdout=io.StringIO())
    return RunContext.from_args(
        Settings(attended=False), run_id="log-run", verbose=verbose, log_json=log_json, cwd=tmp_path, console=console
    )


def test_log_event_is_silent_unless_verbose(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    log_event(_ctx(tmp_path, verbose=False, log_json=False), "info", "cli", "start")
    assert capsys.readouterr().err == ""


def test_log_event_masks_secrets_in_key_value_and_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    log_event(_ctx(tmp_path, True, False), "info", "process", "run-command", command="x PULUMI_ACCESS_TOKEN=abc")
    line = capsys.readouterr().err.strip()
    assert "run_id=log-run component=process action=run-command" in line
    assert "PULUMI_ACCESS_TOKEN=***" in line
    assert "abc" not in line

    log_event(_ctx(tmp_path, True, True), "info", "cli", "finish", exit_code=0)
    payload = json.loads(capsys.readouterr().err)
    assert payload["run_id"] == "log-run"
    assert payload["component"] == "cli"
    assert payload["exit_code"] == 0
