"""Unit tests for plain-text CLI rendering."""

from __future__ import annotations

import pytest

from democtl.checks.base import CheckResult, CheckStatus, RunResult
from democtl.ui.render import CLIRenderer, _color_allowed


def _run() -> RunResult:
    return RunResult(
        scenario_id="sre/cpu-spike",
        stage="broken",
        check_type="verify",
        results=(
            CheckResult("http.get", "app answers", CheckStatus.PASS, "got 200"),
            CheckResult("k8s.podRestartCount", "", CheckStatus.FAIL, "restart count 0 < 3"),
            CheckResult("dns.resolve", "lookup", CheckStatus.SKIP, "unknown check type"),
        ),
    )


def test_run_summary_plain(capsys: pytest.CaptureFixture[str]) -> None:
    CLIRenderer(no_color=True).run_summary(_run())

    assert capsys.readouterr().out.splitlines() == [
        "verify checks for sre/cpu-spike (stage broken)",
        "  PASS  app answers",
        "  FAIL  k8s.podRestartCount",
        "        restart count 0 < 3",
        "  SKIP  lookup",
        "        unknown check type",
        "",
        "1 passed, 1 failed, 1 skipped",
    ]


def test_verbose_shows_pass_messages_and_types(capsys: pytest.CaptureFixture[str]) -> None:
    CLIRenderer(no_color=True, verbose=True).check_result(_run().results[0])

    assert capsys.readouterr().out.splitlines() == [
        "  PASS  app answers",
        "        got 200",
        "        type: http.get",
    ]


def test_multiline_failure_output_is_indented(capsys: pytest.CaptureFixture[str]) -> None:
    failure = CheckResult(
        "playwright.run", "", CheckStatus.FAIL, "Playwright test failed (exit 1)\n  1 failed\nlogin.spec.ts:12"
    )

    CLIRenderer(no_color=True).check_result(failure)

    assert capsys.readouterr().out.splitlines() == [
        "  FAIL  playwright.run",
        "        Playwright test failed (exit 1)",
        "          1 failed",
        "        login.spec.ts:12",
    ]


def test_table_aligns_columns(capsys: pytest.CaptureFixture[str]) -> None:
    renderer = CLIRenderer(no_color=True)

    renderer.table(["ID", "TYPE"], [["eng/login", "engineering"], ["sre/x", "sre"]], title="Scenarios:")
    renderer.table(["ID"], [])

    assert capsys.readouterr().out.splitlines() == [
        "",
        "Scenarios:",
        "  ID         TYPE",
        "  ---------  -----------",
        "  eng/login  engineering",
        "  sre/x      sre",
    ]


def test_status_lines_and_warnings(capsys: pytest.CaptureFixture[str]) -> None:
    renderer = CLIRenderer(no_color=True)

    renderer.ok("done")
    renderer.fail("broken")
    renderer.warning("git fetch: fetch failed")
    renderer.items(["a", "b"])
    renderer.kv("Removed worktrees", 2)

    assert capsys.readouterr().out.splitlines() == [
        "  OK  done",
        "  FAIL  broken",
        "  Warning: git fetch: fetch failed",
        "  - a",
        "  - b",
        "Removed worktrees: 2",
    ]


def test_color_is_disabled_by_flag_env_or_non_tty(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.delenv("NO_COLOR", raising=False)
    assert not _color_allowed(True)

    monkeypatch.setenv("NO_COLOR", "1")
    assert not _color_allowed(False)

    monkeypatch.delenv("NO_COLOR")
    # capsys replaces stdout with a non-terminal stream.
    assert not _color_allowed(False)
