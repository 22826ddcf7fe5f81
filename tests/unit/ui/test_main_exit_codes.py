"""
democtl — unit tests for the process exit-code contract

File: tests/unit/ui/test_main_exit_codes.py

Purpose
- Validate exception routing at the CLI boundary: config and manifest problems exit 2,
  verification and workspace failures exit 1, anything else exits 4 with a traceback.
"""

from __future__ import annotations

import pytest

import democtl.ui.cli as cli_module
from democtl.checks.base import RunResult
from democtl.checks.runner import VerificationFailedError
from democtl.config.loader import ConfigLoadError
from democtl.domain.manifest import ManifestError
from democtl.main import ExitCode, _normalize_exit_code, _route_exception, cli_entrypoint
from democtl.workspace.patches import PatchApplyError
from democtl.workspace.worktree import WorkspaceError


def _raise_from(outer: BaseException, cause: BaseException) -> BaseException:
    try:
        try:
            raise cause
        except BaseException as inner:
            raise outer from inner
    except BaseException as caught:  # noqa: BLE001 - building a chained exception fixture.
        return caught


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ConfigLoadError("config file not found: x"), ExitCode.CONFIG_ERROR),
        (ManifestError("scenario not found: a/b"), ExitCode.CONFIG_ERROR),
        (WorkspaceError("worktree does not exist, use init first"), ExitCode.VERIFICATION_FAILED),
        (
            VerificationFailedError(RunResult(scenario_id="a/b", stage="broken", check_type="verify")),
            ExitCode.VERIFICATION_FAILED,
        ),
        (RuntimeError("boom"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_route_exception(exc: BaseException, expected: ExitCode) -> None:
    assert _route_exception(exc) is expected


def test_route_exception_follows_the_cause_chain() -> None:
    chained = _raise_from(RuntimeError("wrapper"), ConfigLoadError("invalid TOML"))

    assert _route_exception(chained) is ExitCode.CONFIG_ERROR


def test_patch_errors_are_failures(tmp_path) -> None:
    assert _route_exception(PatchApplyError(tmp_path / "0001-a.patch", "conflict")) is (
        ExitCode.VERIFICATION_FAILED
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(None, 0), (0, 0), (1, 1), (2, 2), (4, 4), (3, 4), (130, 4), ("bad", 4)],
)
def test_normalize_exit_code(raw: object, expected: int) -> None:
    assert _normalize_exit_code(raw) == expected


def test_help_and_usage_errors(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["--help"]) == 0
    assert "democtl" in capsys.readouterr().out

    assert cli_entrypoint(["checks", "explode"]) == 2
    assert "invalid choice" in capsys.readouterr().err


def test_unexpected_exception_exits_four_with_traceback(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def _explode(argv=None) -> int:
        raise RuntimeError("unexpected state")

    monkeypatch.setattr(cli_module, "run_cli", _explode)

    assert cli_entrypoint(["config"]) == ExitCode.INTERNAL_ERROR
    err = capsys.readouterr().err
    assert "Traceback" in err
    assert "RuntimeError: unexpected state" in err


def test_known_failures_print_single_error_line(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def _fail(argv=None) -> int:
        raise WorkspaceError("worktree is not clean after applying solved patches")

    monkeypatch.setattr(cli_module, "run_cli", _fail)

    assert cli_entrypoint(["config"]) == ExitCode.VERIFICATION_FAILED
    assert capsys.readouterr().err == "error: worktree is not clean after applying solved patches\n"
